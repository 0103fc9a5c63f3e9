from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.api.dependencies import get_current_user
from carmarket.core.errors import BusinessLogicException
from carmarket.database.sql import get_async_session
from carmarket.schemas.auth import AuthUser
from carmarket.schemas.chat_room import ChatRoomResponse, InboxResponse, RoomSummary
from carmarket.services import chat_room_service, inbox_service

router = APIRouter(prefix="/chat-rooms", tags=["Chat Rooms"])


@router.get("", response_model=InboxResponse)
async def get_chat_rooms(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> InboxResponse:
    """
    사용자의 채팅방 목록 조회

    마지막 활동 시간 내림차순, 상대방 정보와 마지막 메시지 미리보기 포함
    """
    rooms = await inbox_service.list_rooms(db, current_user.id)
    return InboxResponse(rooms=rooms)


@router.post("/with/{participant_id}", response_model=ChatRoomResponse, status_code=status.HTTP_201_CREATED)
async def resolve_chat_room(
    participant_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> ChatRoomResponse:
    """
    1:1 채팅방 조회 또는 생성

    - **participant_id**: 상대방 사용자 ID

    두 사용자 간에 기존 채팅방이 있으면 기존 채팅방을 반환합니다.
    """
    if not participant_id.strip():
        raise BusinessLogicException("participant_id cannot be empty")

    room = await chat_room_service.resolve_room(db, current_user.id, participant_id)
    return ChatRoomResponse.model_validate(room)


@router.get("/{room_id}", response_model=RoomSummary)
async def get_chat_room(
    room_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> RoomSummary:
    """채팅방 상세 정보 조회 (참여자만)"""
    await chat_room_service.get_room_for_participant(db, room_id, current_user.id)

    summaries = await inbox_service.list_rooms(db, current_user.id)
    return next(summary for summary in summaries if summary.room.id == room_id)
