"""
Inbox Aggregator

사용자가 참여한 모든 채팅방을 마지막 활동 시간 내림차순으로 조회합니다.
"""

from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.models.chat_rooms import ChatRoom
from carmarket.models.profiles import Profile
from carmarket.schemas.chat_room import ChatRoomResponse, LatestMessagePreview, ParticipantInfo, RoomSummary
from carmarket.schemas.message import MessageResponse
from carmarket.services import chat_room_service, message_service


async def _rooms_with_other_participant(db: AsyncSession, user_id: str, as_first: bool):
    # 참여자 컬럼 방향마다 조인 대상이 달라 쿼리를 나눔
    if as_first:
        own_column, other_column = ChatRoom.participant1_id, ChatRoom.participant2_id
    else:
        own_column, other_column = ChatRoom.participant2_id, ChatRoom.participant1_id

    result = await db.execute(
        select(ChatRoom, Profile)
        .outerjoin(Profile, Profile.id == other_column)
        .where(own_column == user_id)
    )
    return [
        (room, profile, chat_room_service.get_other_participant_id(room, user_id))
        for room, profile in result.all()
    ]


async def list_rooms(db: AsyncSession, user_id: str) -> List[RoomSummary]:
    """
    사용자의 채팅방 목록 (상대방 정보 + 마지막 메시지 + 읽지 않은 수)

    Returns:
        List[RoomSummary]: last_message_at 내림차순
    """
    rows = await _rooms_with_other_participant(db, user_id, as_first=True)
    rows += await _rooms_with_other_participant(db, user_id, as_first=False)
    rows.sort(key=lambda row: (row[0].last_message_at or row[0].created_at, row[0].id), reverse=True)

    summaries = []
    for room, profile, other_id in rows:
        latest_message = await message_service.get_last_message(db, room.id)
        unread_count = await message_service.count_unread(db, room.id, user_id)

        preview = None
        if latest_message is not None:
            rendered = MessageResponse.from_message(latest_message)
            preview = LatestMessagePreview(
                id=rendered.id,
                sender_id=rendered.sender_id,
                content=rendered.content,
                is_deleted=rendered.is_deleted,
                created_at=rendered.created_at
            )

        if profile is not None:
            participant = ParticipantInfo.model_validate(profile)
        else:
            participant = ParticipantInfo(id=other_id)

        summaries.append(RoomSummary(
            room=ChatRoomResponse.model_validate(room),
            participant=participant,
            latest_message=preview,
            unread_count=unread_count
        ))

    return summaries
