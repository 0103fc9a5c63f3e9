import logging

from carmarket.core.config import settings
from carmarket.database.redis import get_redis
from carmarket.schemas.events import ChangeEvent

logger = logging.getLogger(__name__)


def channel_for(table: str) -> str:
    """테이블별 Pub/Sub 채널 이름"""
    return f"{settings.realtime_channel_prefix}:{table}"


async def publish_change(event: ChangeEvent) -> bool:
    """
    커밋된 변경을 피드에 발행합니다.

    발행 실패는 이미 커밋된 쓰기를 실패시키지 않으며 로그만 남깁니다.
    """
    try:
        client = await get_redis()
        await client.publish(channel_for(event.table), event.model_dump_json())
        return True
    except Exception as pub_error:
        logger.error(f"Failed to publish {event.type.value} on {event.table}: {pub_error}")
        return False
