"""
Message API - 메시지 관련 API 엔드포인트
"""

import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.api.dependencies import get_current_user
from carmarket.core.logging import log_chat_event
from carmarket.database.sql import get_async_session
from carmarket.schemas.auth import AuthUser
from carmarket.schemas.message import (
    MessageCreate, MessageResponse, MessageListResponse, MessageReadResponse
)
from carmarket.services import chat_room_service, message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("/rooms/{room_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    room_id: str,
    message_data: MessageCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> MessageResponse:
    """
    메시지 전송

    - **room_id**: 채팅방 ID
    - **content**: 메시지 내용
    - **client_token**: 클라이언트 생성 correlation ID (선택사항, realtime 에코 매칭용)
    """
    message = await message_service.append_message(
        db,
        room_id,
        current_user.id,
        message_data.content,
        client_token=message_data.client_token
    )

    log_chat_event(logger, "message_sent", current_user.id, room_id, message_id=message.id)
    return MessageResponse.from_message(message)


@router.get("/rooms/{room_id}", response_model=MessageListResponse)
async def get_messages(
    room_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> MessageListResponse:
    """
    채팅방 메시지 조회 (생성 시간 오름차순)

    삭제된 메시지는 is_deleted=true, content=null 로 포함됩니다.
    """
    await chat_room_service.get_room_for_participant(db, room_id, current_user.id)

    messages = await message_service.list_messages(db, room_id)

    return MessageListResponse(
        messages=[MessageResponse.from_message(message) for message in messages],
        total_count=await message_service.count_messages(db, room_id)
    )


@router.post("/rooms/{room_id}/read", response_model=MessageReadResponse)
async def mark_room_as_read(
    room_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> MessageReadResponse:
    """상대방이 보낸 읽지 않은 메시지 전체를 읽음으로 표시"""
    updated = await message_service.mark_room_read(db, room_id, current_user.id)

    return MessageReadResponse(
        success=True,
        read_count=len(updated),
        message=f"{len(updated)} messages marked as read"
    )


@router.patch("/{message_id}/read", response_model=MessageResponse)
async def mark_message_as_read(
    message_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> MessageResponse:
    """메시지 읽음 처리 (수신자만, 이미 읽은 메시지는 그대로 반환)"""
    message = await message_service.mark_read(db, message_id, current_user.id)
    return MessageResponse.from_message(message)


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> MessageResponse:
    """메시지 삭제 (발신자만, soft delete)"""
    message = await message_service.soft_delete(db, message_id, current_user.id)

    log_chat_event(logger, "message_deleted", current_user.id, message.room_id, message_id=message_id)
    return MessageResponse.from_message(message)
