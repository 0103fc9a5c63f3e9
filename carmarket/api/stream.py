"""
Realtime stream API (SSE)

Redis 변경 피드를 Server-Sent Events로 전달합니다.
"""

import json
import logging
from typing import AsyncGenerator
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from carmarket.api.dependencies import get_current_user, get_feed
from carmarket.database.sql import get_async_session
from carmarket.realtime.feed import RealtimeFeed
from carmarket.realtime.filters import ChangeFilter
from carmarket.schemas.auth import AuthUser
from carmarket.schemas.events import ChangeType
from carmarket.services import chat_room_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stream", tags=["Realtime"])

SSE_PING_SECONDS = 30

EVENT_NAMES = {
    "chat_messages": "message_change",
    "typing_indicators": "typing_change",
}


async def room_event_generator(
    feed: RealtimeFeed,
    room_id: str,
    user_id: str
) -> AsyncGenerator[dict, None]:
    """
    채팅방 SSE 이벤트 생성기

    Events:
        - connected: 연결 성공
        - message_change: 메시지 INSERT/UPDATE
        - typing_change: 입력중 표시 INSERT/UPDATE/DELETE
    """
    yield {
        "event": "connected",
        "data": json.dumps({"room_id": room_id, "user_id": user_id})
    }

    try:
        async for event in feed.stream(
            ChangeFilter.for_room("chat_messages", room_id, ChangeType.INSERT, ChangeType.UPDATE),
            ChangeFilter.for_room("typing_indicators", room_id)
        ):
            yield {
                "event": EVENT_NAMES[event.table],
                "data": event.model_dump_json()
            }
    finally:
        logger.info(f"Room stream closed for user {user_id} in room {room_id}")


async def inbox_event_generator(feed: RealtimeFeed, user_id: str) -> AsyncGenerator[dict, None]:
    """
    인박스 SSE 이벤트 생성기

    어떤 채팅방이든 메시지가 변경되면 inbox_invalidated를 보냅니다.
    클라이언트는 GET /chat-rooms 로 목록을 다시 조회합니다.
    """
    yield {"event": "connected", "data": json.dumps({"user_id": user_id})}

    try:
        async for event in feed.stream(ChangeFilter(table="chat_messages")):
            yield {
                "event": "inbox_invalidated",
                "data": json.dumps({"commit_timestamp": event.commit_timestamp.isoformat()})
            }
    finally:
        logger.info(f"Inbox stream closed for user {user_id}")


@router.get("/rooms/{room_id}")
async def stream_room(
    room_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    feed: RealtimeFeed = Depends(get_feed)
):
    """채팅방 메시지/입력중 실시간 스트림 (참여자만)"""
    await chat_room_service.get_room_for_participant(db, room_id, current_user.id)

    return EventSourceResponse(
        room_event_generator(feed, room_id, current_user.id),
        ping=SSE_PING_SECONDS
    )


@router.get("/inbox")
async def stream_inbox(
    current_user: AuthUser = Depends(get_current_user),
    feed: RealtimeFeed = Depends(get_feed)
):
    """채팅방 목록 무효화 스트림"""
    return EventSourceResponse(
        inbox_event_generator(feed, current_user.id),
        ping=SSE_PING_SECONDS
    )
