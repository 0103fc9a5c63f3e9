"""
Redis 연결

변경 피드(Pub/Sub) 발행과 구독이 같은 클라이언트를 공유합니다.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis

from carmarket.core.config import settings
from carmarket.core.logging import get_logger

logger = get_logger(__name__)

redis_client: Optional[redis.Redis] = None


async def init_redis() -> redis.Redis:
    global redis_client

    client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except Exception as e:
        logger.error(f"Redis unreachable at startup: {e}")
        await client.aclose()
        raise

    redis_client = client
    logger.info("Redis connection ready")
    return client


async def close_redis():
    global redis_client

    client, redis_client = redis_client, None
    if client is not None:
        await client.aclose()
        logger.info("Redis connection closed")


async def get_redis() -> redis.Redis:
    if redis_client is None:
        return await init_redis()
    return redis_client


async def health_check() -> dict:
    """PING 응답 시간 측정"""
    loop = asyncio.get_running_loop()
    try:
        client = await get_redis()
        started = loop.time()
        await client.ping()
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "ping_ms": round((loop.time() - started) * 1000, 2)}
