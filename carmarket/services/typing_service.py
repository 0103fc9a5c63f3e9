"""
Typing Presence Tracker

(room, user) 당 한 행의 입력중 표시를 관리합니다. 표시는 일정 시간
(typing_expiry_seconds)이 지나면 삭제 알림 수신 여부와 관계없이 만료된 것으로 봅니다.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.core.config import settings
from carmarket.models.typing_indicators import TypingIndicator
from carmarket.realtime.publisher import publish_change
from carmarket.schemas.events import ChangeEvent, ChangeType
from carmarket.services import chat_room_service
from carmarket.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

TABLE = TypingIndicator.__tablename__


def indicator_row(indicator: TypingIndicator) -> dict:
    return {
        "room_id": indicator.room_id,
        "user_id": indicator.user_id,
        "updated_at": indicator.updated_at.isoformat() if indicator.updated_at else None,
    }


def expiry_cutoff(now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) - timedelta(seconds=settings.typing_expiry_seconds)


async def set_typing(
    db: AsyncSession,
    room_id: str,
    user_id: str,
    is_typing: bool
) -> Optional[TypingIndicator]:
    """
    입력중 상태 설정

    - True: (room, user) 행 upsert (반복 호출에도 한 행)
    - False: (room, user) 행 삭제

    사용자는 자신의 표시만 변경할 수 있습니다.
    """
    await chat_room_service.get_room_for_participant(db, room_id, user_id)

    if is_typing:
        return await _upsert_indicator(db, room_id, user_id)

    await _clear_indicator(db, room_id, user_id)
    return None


async def _upsert_indicator(db: AsyncSession, room_id: str, user_id: str) -> TypingIndicator:
    now = utc_now()
    indicator = await db.get(TypingIndicator, (room_id, user_id))
    change_type = ChangeType.UPDATE if indicator else ChangeType.INSERT
    old_row = indicator_row(indicator) if indicator else None

    if indicator is None:
        db.add(TypingIndicator(room_id=room_id, user_id=user_id, updated_at=now))
    else:
        indicator.updated_at = now

    try:
        await db.commit()
    except IntegrityError:
        # 같은 사용자의 다른 연결이 먼저 INSERT한 경우 갱신으로 처리
        await db.rollback()
        indicator = await db.get(TypingIndicator, (room_id, user_id))
        indicator.updated_at = now
        await db.commit()
        change_type = ChangeType.UPDATE

    indicator = await db.get(TypingIndicator, (room_id, user_id))
    await publish_change(ChangeEvent(
        table=TABLE,
        type=change_type,
        new=indicator_row(indicator),
        old=old_row
    ))

    await sweep_expired(db, now)
    return indicator


async def _clear_indicator(db: AsyncSession, room_id: str, user_id: str) -> bool:
    indicator = await db.get(TypingIndicator, (room_id, user_id))
    if indicator is None:
        return False

    old_row = indicator_row(indicator)
    await db.delete(indicator)
    await db.commit()

    await publish_change(ChangeEvent(table=TABLE, type=ChangeType.DELETE, old=old_row))
    return True


async def sweep_expired(db: AsyncSession, now: Optional[datetime] = None) -> List[dict]:
    """만료된 입력중 표시 삭제 (서버측 sweep)"""
    result = await db.execute(
        select(TypingIndicator).where(TypingIndicator.updated_at < expiry_cutoff(now))
    )
    expired = list(result.scalars().all())
    if not expired:
        return []

    removed_rows = [indicator_row(indicator) for indicator in expired]
    for indicator in expired:
        await db.delete(indicator)
    await db.commit()

    logger.debug(f"Swept {len(removed_rows)} expired typing indicators")

    for row in removed_rows:
        await publish_change(ChangeEvent(table=TABLE, type=ChangeType.DELETE, old=row))
    return removed_rows


async def get_fresh_indicators(
    db: AsyncSession,
    room_id: str,
    now: Optional[datetime] = None,
    exclude_user_id: Optional[str] = None
) -> List[TypingIndicator]:
    """만료되지 않은 입력중 표시 (updated_at 포함)"""
    query = select(TypingIndicator).where(
        TypingIndicator.room_id == room_id,
        TypingIndicator.updated_at >= expiry_cutoff(now)
    )
    if exclude_user_id is not None:
        query = query.where(TypingIndicator.user_id != exclude_user_id)

    result = await db.execute(query.order_by(TypingIndicator.user_id))
    return list(result.scalars().all())


async def get_typing_user_ids(
    db: AsyncSession,
    room_id: str,
    now: Optional[datetime] = None,
    exclude_user_id: Optional[str] = None
) -> List[str]:
    """만료되지 않은 입력중 사용자 ID 목록"""
    indicators = await get_fresh_indicators(db, room_id, now=now, exclude_user_id=exclude_user_id)
    return [indicator.user_id for indicator in indicators]
