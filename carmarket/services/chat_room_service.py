"""
Chat room service layer (Room Resolver)

두 사용자 사이의 유일한 채팅방을 조회하거나 생성합니다.
"""

import logging
from typing import Optional, Tuple
from sqlalchemy import select, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.core.errors import (
    BusinessLogicException,
    RoomInitializationFailed,
    RoomNotFound,
    Unauthorized,
)
from carmarket.core.logging import log_chat_event, log_security_event
from carmarket.models.blocked_users import BlockedUser
from carmarket.models.chat_rooms import ChatRoom
from carmarket.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Chat Room CRUD Operations
# =============================================================================

def canonical_pair(user1_id: str, user2_id: str) -> Tuple[str, str]:
    """참여자 쌍을 오름차순으로 정렬"""
    return (user1_id, user2_id) if user1_id < user2_id else (user2_id, user1_id)


async def find_chat_room_by_id(db: AsyncSession, room_id: str) -> Optional[ChatRoom]:
    """채팅방 ID로 조회"""
    result = await db.execute(
        select(ChatRoom).where(ChatRoom.id == room_id)
    )
    return result.scalar_one_or_none()


async def find_existing_chat_room(db: AsyncSession, user1_id: str, user2_id: str) -> Optional[ChatRoom]:
    """두 사용자 간의 기존 채팅방 조회 (저장 순서 무관)"""
    result = await db.execute(
        select(ChatRoom).where(
            or_(
                and_(ChatRoom.participant1_id == user1_id, ChatRoom.participant2_id == user2_id),
                and_(ChatRoom.participant1_id == user2_id, ChatRoom.participant2_id == user1_id)
            )
        ).order_by(ChatRoom.created_at.asc()).limit(1)
    )
    return result.scalar_one_or_none()


async def create_chat_room(db: AsyncSession, user1_id: str, user2_id: str) -> ChatRoom:
    """새 채팅방 생성 (ID가 작은 쪽을 participant1로 설정)"""
    participant1_id, participant2_id = canonical_pair(user1_id, user2_id)
    now = utc_now()

    new_room = ChatRoom(
        participant1_id=participant1_id,
        participant2_id=participant2_id,
        created_at=now,
        updated_at=now,
        last_message_at=now
    )

    db.add(new_room)
    await db.commit()
    await db.refresh(new_room)

    return new_room


async def is_blocked_between(db: AsyncSession, user1_id: str, user2_id: str) -> bool:
    """두 사용자 중 한쪽이라도 상대를 차단했는지 확인"""
    result = await db.execute(
        select(BlockedUser).where(
            or_(
                and_(BlockedUser.blocker_id == user1_id, BlockedUser.blocked_id == user2_id),
                and_(BlockedUser.blocker_id == user2_id, BlockedUser.blocked_id == user1_id)
            )
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def resolve_room(db: AsyncSession, self_id: str, other_id: str) -> ChatRoom:
    """
    두 사용자 간의 채팅방을 조회하거나 생성합니다.

    동시에 두 사용자가 처음 연락하는 경우 한쪽의 INSERT는 UNIQUE 제약에
    걸리며, 이때는 이미 생성된 방을 다시 조회해 반환합니다.

    Args:
        db: 데이터베이스 세션
        self_id: 현재 사용자 ID
        other_id: 상대방 사용자 ID

    Returns:
        ChatRoom: 두 사용자의 유일한 채팅방

    Raises:
        BusinessLogicException: 자기 자신과의 채팅
        Unauthorized: 차단 관계인 경우
        RoomInitializationFailed: 제약 위반 후 재조회에도 방이 없는 경우
    """
    if self_id == other_id:
        raise BusinessLogicException("Cannot create chat room with yourself")

    existing_room = await find_existing_chat_room(db, self_id, other_id)
    if existing_room:
        return existing_room

    if await is_blocked_between(db, self_id, other_id):
        log_security_event(logger, "blocked_room_creation", "low", user_id=self_id, other_id=other_id)
        raise Unauthorized("Chat with this user is not allowed")

    try:
        room = await create_chat_room(db, self_id, other_id)
        log_chat_event(logger, "room_created", self_id, room.id)
        return room
    except IntegrityError:
        # 동시 생성자가 먼저 INSERT한 경우
        await db.rollback()
        logger.info(f"Chat room for pair ({self_id}, {other_id}) already created concurrently; re-querying")

    recovered_room = await find_existing_chat_room(db, self_id, other_id)
    if recovered_room is None:
        raise RoomInitializationFailed(details={"participants": list(canonical_pair(self_id, other_id))})
    return recovered_room


# =============================================================================
# Helper Functions
# =============================================================================

def get_other_participant_id(chat_room: ChatRoom, current_user_id: str) -> str:
    """채팅방에서 현재 사용자가 아닌 상대방의 ID를 반환"""
    if chat_room.participant1_id == current_user_id:
        return chat_room.participant2_id
    return chat_room.participant1_id


def is_user_in_chat_room(user_id: str, chat_room: ChatRoom) -> bool:
    """사용자가 채팅방에 속해있는지 확인"""
    return user_id in (chat_room.participant1_id, chat_room.participant2_id)


async def get_room_for_participant(db: AsyncSession, room_id: str, user_id: str) -> ChatRoom:
    """채팅방을 조회하고 참여자인지 확인"""
    chat_room = await find_chat_room_by_id(db, room_id)
    if not chat_room:
        raise RoomNotFound(room_id)

    if not is_user_in_chat_room(user_id, chat_room):
        log_security_event(logger, "room_access_denied", user_id=user_id, room_id=room_id)
        raise Unauthorized("Access denied to this chat room")

    return chat_room
