from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carmarket.api.dependencies import get_current_user
from carmarket.database.sql import get_async_session
from carmarket.schemas.auth import AuthUser
from carmarket.schemas.typing import TypingStatusResponse, TypingUpdate
from carmarket.services import chat_room_service, typing_service

router = APIRouter(prefix="/typing", tags=["Typing"])


@router.put("/{room_id}", response_model=TypingStatusResponse)
async def update_typing(
    room_id: str,
    typing_data: TypingUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> TypingStatusResponse:
    """내 입력중 상태 설정 (true: upsert, false: 삭제)"""
    await typing_service.set_typing(db, room_id, current_user.id, typing_data.is_typing)

    typing_user_ids = await typing_service.get_typing_user_ids(db, room_id)
    return TypingStatusResponse(room_id=room_id, typing_user_ids=typing_user_ids)


@router.get("/{room_id}", response_model=TypingStatusResponse)
async def get_typing(
    room_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session)
) -> TypingStatusResponse:
    """입력중인 상대방 목록 (만료된 표시 제외)"""
    await chat_room_service.get_room_for_participant(db, room_id, current_user.id)

    typing_user_ids = await typing_service.get_typing_user_ids(
        db, room_id, exclude_user_id=current_user.id
    )
    return TypingStatusResponse(room_id=room_id, typing_user_ids=typing_user_ids)
