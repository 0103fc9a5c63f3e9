import logging

from .redis import close_redis, get_redis, health_check as redis_health_check, init_redis
from .sql import check_sql_connection, close_sql_db, get_async_session, get_session_factory, init_sql_db

logger = logging.getLogger(__name__)


async def init_databases():
    """관계형 저장소와 Redis 초기화 (실패 시 기동 중단)"""
    await init_sql_db()
    await init_redis()
    logger.info("Storage backends initialized")


async def close_databases():
    """
    종료 시 연결 정리

    한쪽 정리가 실패해도 나머지는 닫습니다.
    """
    try:
        await close_sql_db()
    finally:
        await close_redis()


async def check_database_health() -> dict:
    sql_ok = await check_sql_connection()
    redis_ok = (await redis_health_check())["status"] == "healthy"
    return {
        "database": sql_ok,
        "redis": redis_ok,
        "overall": sql_ok and redis_ok
    }


__all__ = [
    "init_databases",
    "close_databases",
    "check_database_health",
    "get_async_session",
    "get_session_factory",
    "get_redis",
]
