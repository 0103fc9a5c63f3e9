"""
Inbox Watcher

chat_messages 테이블 전체를 구독하고, 변경이 생기면 채팅방 목록을 다시 조회합니다.
(증분 병합 없이 invalidate-and-refetch)
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from carmarket.core.errors import chat_unavailable_error
from carmarket.realtime.feed import RealtimeFeed
from carmarket.realtime.filters import ChangeFilter
from carmarket.schemas.auth import AuthUser
from carmarket.schemas.chat_room import RoomSummary
from carmarket.schemas.events import ChangeEvent
from carmarket.services import inbox_service

logger = logging.getLogger(__name__)


class InboxWatcher:
    """사용자 채팅방 목록 + 실시간 갱신"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        feed: RealtimeFeed,
        current_user: Optional[AuthUser],
        on_change: Optional[Callable[[List[RoomSummary]], Any]] = None
    ):
        if current_user is None:
            raise chat_unavailable_error()

        self._session_factory = session_factory
        self._feed = feed
        self.user_id = current_user.id
        self._on_change = on_change

        self.rooms: List[RoomSummary] = []
        self.loading = True
        self.refresh_count = 0
        self._closed = False
        self._lock = asyncio.Lock()
        self._unsubscribe = None

    async def __aenter__(self) -> "InboxWatcher":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self) -> "InboxWatcher":
        """
        구독 후 첫 조회

        구독과 조회 사이에 커밋된 변경도 재조회를 일으키도록 구독을 먼저 엽니다.
        첫 조회가 실패하면 구독을 해제하고 예외를 전달합니다.
        """
        self._unsubscribe = await self._feed.subscribe(
            ChangeFilter(table="chat_messages"),
            self._on_message_change
        )
        try:
            await self.refresh()
        except Exception:
            await self.close()
            raise
        return self

    async def refresh(self) -> Optional[List[RoomSummary]]:
        """채팅방 목록 재조회 (실패하면 이전 목록 유지)"""
        if self._closed:
            return None

        async with self._lock:
            async with self._session_factory() as db:
                rooms = await inbox_service.list_rooms(db, self.user_id)

            if self._closed:
                return None

            self.rooms = rooms
            self.loading = False
            self.refresh_count += 1

        if self._on_change is not None:
            result = self._on_change(rooms)
            if inspect.isawaitable(result):
                await result
        return rooms

    async def _on_message_change(self, event: ChangeEvent):
        if self._closed:
            return
        try:
            await self.refresh()
        except Exception as e:
            logger.warning(f"Inbox refresh failed for user {self.user_id}; keeping previous list: {e}")

    async def close(self):
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None
