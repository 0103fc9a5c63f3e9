"""
Message service layer (Message Store Adapter)

채팅방 단위 메시지 append/조회와 읽음 처리, soft delete를 담당합니다.
커밋된 변경은 realtime 피드에 발행됩니다.
"""

import logging
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.core.config import settings
from carmarket.core.errors import BusinessLogicException, MessageNotFound, Unauthorized
from carmarket.core.logging import log_database_operation, log_security_event
from carmarket.models.chat_messages import ChatMessage
from carmarket.realtime.publisher import publish_change
from carmarket.schemas.events import ChangeEvent, ChangeType
from carmarket.schemas.message import MessageResponse
from carmarket.services import chat_room_service
from carmarket.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

TABLE = ChatMessage.__tablename__


def message_row(message: ChatMessage) -> dict:
    """피드 발행용 행 (삭제된 본문은 제거)"""
    return MessageResponse.from_message(message).model_dump(mode="json")


# =============================================================================
# Message CRUD Operations
# =============================================================================

async def list_messages(db: AsyncSession, room_id: str) -> List[ChatMessage]:
    """
    채팅방 메시지 전체 조회 (생성 시간 오름차순)

    soft delete된 행도 포함하며, 표시 여부는 호출자가 결정합니다.
    """
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.room_id == room_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )
    return list(result.scalars().all())


async def count_messages(db: AsyncSession, room_id: str) -> int:
    """채팅방 메시지 수"""
    result = await db.execute(
        select(func.count()).select_from(ChatMessage).where(ChatMessage.room_id == room_id)
    )
    return result.scalar_one()


async def find_message_by_id(db: AsyncSession, message_id: str) -> Optional[ChatMessage]:
    """메시지 ID로 조회"""
    result = await db.execute(
        select(ChatMessage).where(ChatMessage.id == message_id)
    )
    return result.scalar_one_or_none()


async def append_message(
    db: AsyncSession,
    room_id: str,
    sender_id: str,
    body: str,
    client_token: Optional[str] = None
) -> ChatMessage:
    """
    메시지 추가

    채팅방 last_message_at 갱신은 chat_messages INSERT 훅이 처리합니다.

    Raises:
        RoomNotFound: 채팅방 없음
        Unauthorized: 발신자가 참여자가 아님
        BusinessLogicException: 빈 메시지 또는 길이 초과
    """
    await chat_room_service.get_room_for_participant(db, room_id, sender_id)

    if not body or not body.strip():
        raise BusinessLogicException("Message content cannot be empty")
    if len(body) > settings.max_message_length:
        raise BusinessLogicException(
            f"Message content exceeds maximum length of {settings.max_message_length} characters"
        )

    message = ChatMessage(
        room_id=room_id,
        sender_id=sender_id,
        content=body,
        client_token=client_token,
        created_at=utc_now()
    )

    db.add(message)
    await db.commit()
    await db.refresh(message)

    log_database_operation(logger, "insert", TABLE, affected_rows=1, room_id=room_id, message_id=message.id)

    await publish_change(ChangeEvent(table=TABLE, type=ChangeType.INSERT, new=message_row(message)))
    return message


async def _get_message_and_room(db: AsyncSession, message_id: str, actor_id: str):
    message = await find_message_by_id(db, message_id)
    if not message:
        raise MessageNotFound(message_id)

    chat_room = await chat_room_service.get_room_for_participant(db, message.room_id, actor_id)
    return message, chat_room


async def mark_read(db: AsyncSession, message_id: str, reader_id: str) -> ChatMessage:
    """
    메시지 읽음 처리

    수신자(발신자가 아닌 참여자)만 가능합니다. 이미 읽은 메시지는 그대로 반환합니다.
    """
    message, _ = await _get_message_and_room(db, message_id, reader_id)

    if message.sender_id == reader_id:
        log_security_event(logger, "read_own_message", "low", user_id=reader_id, message_id=message_id)
        raise Unauthorized("Senders cannot mark their own messages as read")

    if message.read_at is not None:
        return message

    old_row = message_row(message)
    message.read_at = utc_now()
    await db.commit()
    await db.refresh(message)

    log_database_operation(logger, "update", TABLE, affected_rows=1, message_id=message_id, field="read_at")

    await publish_change(ChangeEvent(table=TABLE, type=ChangeType.UPDATE, new=message_row(message), old=old_row))
    return message


async def soft_delete(db: AsyncSession, message_id: str, deleter_id: str) -> ChatMessage:
    """
    메시지 soft delete

    발신자만 가능하며 행은 유지됩니다. 이미 삭제된 메시지는 그대로 반환합니다.
    """
    message, _ = await _get_message_and_room(db, message_id, deleter_id)

    if message.sender_id != deleter_id:
        log_security_event(logger, "delete_foreign_message", user_id=deleter_id, message_id=message_id)
        raise Unauthorized("Only the sender can delete this message")

    if message.deleted_at is not None:
        return message

    # 삭제 알림에도 본문이 실리지 않도록 이전 행의 content 제거
    old_row = {**message_row(message), "content": None}
    message.deleted_at = utc_now()
    await db.commit()
    await db.refresh(message)

    log_database_operation(logger, "update", TABLE, affected_rows=1, message_id=message_id, field="deleted_at")

    await publish_change(ChangeEvent(table=TABLE, type=ChangeType.UPDATE, new=message_row(message), old=old_row))
    return message


async def mark_room_read(db: AsyncSession, room_id: str, reader_id: str) -> List[ChatMessage]:
    """상대방이 보낸 읽지 않은 메시지를 모두 읽음 처리"""
    await chat_room_service.get_room_for_participant(db, room_id, reader_id)

    result = await db.execute(
        select(ChatMessage).where(
            ChatMessage.room_id == room_id,
            ChatMessage.sender_id != reader_id,
            ChatMessage.read_at.is_(None),
            ChatMessage.deleted_at.is_(None)
        ).order_by(ChatMessage.created_at.asc())
    )
    unread_messages = list(result.scalars().all())
    if not unread_messages:
        return []

    old_rows = [message_row(message) for message in unread_messages]
    now = utc_now()
    for message in unread_messages:
        message.read_at = now
    await db.commit()

    log_database_operation(logger, "update", TABLE, affected_rows=len(unread_messages), room_id=room_id, field="read_at")

    for message, old_row in zip(unread_messages, old_rows):
        await publish_change(ChangeEvent(table=TABLE, type=ChangeType.UPDATE, new=message_row(message), old=old_row))
    return unread_messages


# =============================================================================
# Inbox helpers
# =============================================================================

async def get_last_message(db: AsyncSession, room_id: str) -> Optional[ChatMessage]:
    """채팅방의 마지막 메시지 (삭제된 메시지 포함)"""
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.room_id == room_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_unread(db: AsyncSession, room_id: str, user_id: str) -> int:
    """사용자가 읽지 않은 상대방 메시지 수"""
    result = await db.execute(
        select(func.count()).select_from(ChatMessage).where(
            ChatMessage.room_id == room_id,
            ChatMessage.sender_id != user_id,
            ChatMessage.read_at.is_(None),
            ChatMessage.deleted_at.is_(None)
        )
    )
    return result.scalar_one()
