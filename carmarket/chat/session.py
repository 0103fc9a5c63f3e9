"""
Chat Session Controller

하나의 1:1 대화를 여는 클라이언트 측 컨트롤러입니다.

상태: INITIALIZING -> READY -> (SENDING | RECEIVING)* -> CLOSED

- open(): 채팅방 확인, 피드 구독, 메시지 기록 조회. 실패하면 부분 상태 없이 ChatInitFailed
- send(): 낙관적 추가 후 쓰기, 응답 또는 realtime 에코로 확정, 실패 시 제거 후 재발생
- close(): 모든 구독 해제, 이후 호출은 None을 반환하는 no-op
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from carmarket.chat.entries import EntryStatus, LocalEntry, RenderedMessage
from carmarket.chat.typing import RemoteTypingState, TypingDebouncer
from carmarket.core.config import settings
from carmarket.core.errors import BusinessLogicException, ChatInitFailed, chat_unavailable_error
from carmarket.core.logging import log_chat_event
from carmarket.realtime.feed import RealtimeFeed
from carmarket.realtime.filters import ChangeFilter
from carmarket.schemas.auth import AuthUser
from carmarket.schemas.chat_room import ChatRoomResponse
from carmarket.schemas.events import ChangeEvent, ChangeType
from carmarket.schemas.message import MessageResponse
from carmarket.services import chat_room_service, message_service, typing_service
from carmarket.services.auth_service import AuthChangeEvent, IdentitySession
from carmarket.utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    SENDING = "sending"
    RECEIVING = "receiving"
    CLOSED = "closed"


class ChatSession:
    """1:1 대화 세션"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        feed: RealtimeFeed,
        current_user: Optional[AuthUser],
        other_user_id: str,
        quiet_window: Optional[float] = None,
        stale_after: Optional[float] = None,
        on_typing_change: Optional[Callable[[bool], Any]] = None
    ):
        if current_user is None:
            raise chat_unavailable_error()

        self._session_factory = session_factory
        self._feed = feed
        self.user_id = current_user.id
        self.other_user_id = other_user_id

        self.state = SessionState.INITIALIZING
        self.loading = True
        self.room: Optional[ChatRoomResponse] = None

        self._entries: List[LocalEntry] = []
        self._buffered_events: List[ChangeEvent] = []
        self._unsubscribers: List[Callable[[], Awaitable[None]]] = []
        self._identity_unsubscribe: Optional[Callable[[], None]] = None
        self._pending_sends = 0

        self._debouncer = TypingDebouncer(
            self._write_typing,
            settings.typing_quiet_window_seconds if quiet_window is None else quiet_window
        )
        self._other_typing = RemoteTypingState(
            settings.typing_stale_after_seconds if stale_after is None else stale_after,
            settings.typing_expiry_seconds,
            on_change=on_typing_change
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def __aenter__(self) -> "ChatSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    async def open(self) -> "ChatSession":
        """
        대화 초기화

        기록 조회보다 구독을 먼저 열어 그 사이에 커밋된 변경을 놓치지 않으며,
        초기화 중 도착한 이벤트는 기록 조회 후 순서대로 적용합니다.

        Raises:
            ChatInitFailed: 채팅방 확인, 기록 조회, 구독 중 하나라도 실패
        """
        if self.state is not SessionState.INITIALIZING:
            return self

        try:
            async with self._session_factory() as db:
                room = await chat_room_service.resolve_room(db, self.user_id, self.other_user_id)
                self.room = ChatRoomResponse.model_validate(room)

            self._unsubscribers.append(await self._feed.subscribe(
                ChangeFilter.for_room("chat_messages", self.room.id, ChangeType.INSERT, ChangeType.UPDATE),
                self._on_message_change
            ))
            self._unsubscribers.append(await self._feed.subscribe(
                ChangeFilter.for_room("typing_indicators", self.room.id),
                self._on_typing_change
            ))

            async with self._session_factory() as db:
                history = await message_service.list_messages(db, self.room.id)
                other_typing_at = [
                    indicator.updated_at
                    for indicator in await typing_service.get_fresh_indicators(db, self.room.id)
                    if indicator.user_id == self.other_user_id
                ]
        except Exception as e:
            await self._release_subscriptions()
            self.state = SessionState.CLOSED
            self.loading = False
            logger.error(f"Chat session initialization failed for {self.user_id} -> {self.other_user_id}: {e}")
            raise ChatInitFailed(details={"other_user_id": self.other_user_id, "reason": str(e)}) from e

        if self.is_closed:
            # 초기화 중 close() 호출됨
            await self._release_subscriptions()
            return self

        self._entries = [LocalEntry.from_server(MessageResponse.from_message(m)) for m in history]
        self.state = SessionState.READY
        self.loading = False

        # 기록 조회 시점의 입력중 표시를 먼저 반영하고, 그 뒤에 도착한 이벤트를 적용
        if other_typing_at:
            self._other_typing.signal(other_typing_at[0])

        buffered, self._buffered_events = self._buffered_events, []
        for event in buffered:
            self._apply_event(event)

        log_chat_event(logger, "session_opened", self.user_id, self.room.id, history_count=len(history))
        return self

    async def close(self):
        """구독 해제 및 입력중 표시 정리 (여러 번 호출해도 안전)"""
        if self.is_closed:
            return None

        was_typing = self._debouncer.active and self.state is not SessionState.INITIALIZING
        self.state = SessionState.CLOSED
        self.loading = False

        self._debouncer.cancel()
        self._other_typing.clear()
        await self._release_subscriptions()

        if self._identity_unsubscribe is not None:
            self._identity_unsubscribe()
            self._identity_unsubscribe = None

        if was_typing:
            self._debouncer.active = False
            await self._write_typing(False)

        if self.room is not None:
            log_chat_event(logger, "session_closed", self.user_id, self.room.id)
        return None

    async def _release_subscriptions(self):
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            await unsubscribe()

    def bind_identity(self, identity: IdentitySession):
        """로그아웃 시 세션을 닫도록 identity 이벤트에 연결"""
        async def on_auth_change(event: AuthChangeEvent, user: Optional[AuthUser]):
            if event is AuthChangeEvent.SIGNED_OUT:
                await self.close()

        self._identity_unsubscribe = identity.on_auth_state_change(on_auth_change)
        return self._identity_unsubscribe

    def _require_ready(self):
        if self.state is SessionState.INITIALIZING:
            raise BusinessLogicException("Chat session is not ready")

    @contextmanager
    def _transition(self, state: SessionState):
        self.state = state
        try:
            yield
        finally:
            if not self.is_closed:
                self.state = SessionState.SENDING if self._pending_sends else SessionState.READY

    # =========================================================================
    # Messages
    # =========================================================================

    @property
    def messages(self) -> List[LocalEntry]:
        return list(self._entries)

    def visible_messages(self) -> List[RenderedMessage]:
        """표시용 메시지 목록 (삭제된 본문 제외)"""
        return [entry.render(self.user_id) for entry in self._entries]

    def _find_entry(self, message: MessageResponse) -> Optional[LocalEntry]:
        for entry in self._entries:
            if entry.message_id == message.id:
                return entry
        for entry in self._entries:
            if entry.message_id is None and entry.matches(message):
                return entry
        return None

    def _apply_message(self, message: MessageResponse) -> LocalEntry:
        entry = self._find_entry(message)
        if entry is None:
            entry = LocalEntry.from_server(message)
            self._entries.append(entry)
        else:
            entry.apply(message)
        return entry

    async def send(self, text: str) -> Optional[LocalEntry]:
        """
        메시지 전송

        Returns:
            LocalEntry: 확정된 항목 (세션이 닫혀 있으면 None)

        Raises:
            BusinessLogicException: 빈 메시지 (서버 요청 없음)
            Exception: 쓰기 실패 (낙관적 항목 제거 후 그대로 전달)
        """
        if self.is_closed:
            return None
        self._require_ready()

        if not text or not text.strip():
            raise BusinessLogicException("Message content cannot be empty")

        entry = LocalEntry.pending(self.user_id, text)
        self._entries.append(entry)
        self._pending_sends += 1

        self.state = SessionState.SENDING

        try:
            async with self._session_factory() as db:
                message = await message_service.append_message(
                    db, self.room.id, self.user_id, text, client_token=entry.correlation_id
                )
        except Exception as e:
            entry.fail()
            if entry in self._entries:
                self._entries.remove(entry)
            logger.warning(f"Send failed in room {self.room.id}; optimistic entry {entry.correlation_id} rolled back: {e}")
            raise
        finally:
            self._pending_sends -= 1
            if not self.is_closed:
                self.state = SessionState.SENDING if self._pending_sends else SessionState.READY

        if self.is_closed:
            return None

        # 전송하면 입력 burst 종료
        await self._debouncer.stop()

        if entry.status is EntryStatus.PENDING:
            entry.apply(MessageResponse.from_message(message))
        return entry

    async def delete(self, message_id: str) -> Optional[LocalEntry]:
        """내가 보낸 메시지 soft delete"""
        if self.is_closed:
            return None
        self._require_ready()

        async with self._session_factory() as db:
            message = await message_service.soft_delete(db, message_id, self.user_id)

        if self.is_closed:
            return None
        return self._apply_message(MessageResponse.from_message(message))

    async def mark_read(self, message_id: str) -> Optional[LocalEntry]:
        """상대방 메시지 읽음 처리"""
        if self.is_closed:
            return None
        self._require_ready()

        async with self._session_factory() as db:
            message = await message_service.mark_read(db, message_id, self.user_id)

        if self.is_closed:
            return None
        return self._apply_message(MessageResponse.from_message(message))

    async def mark_all_read(self) -> Optional[int]:
        """상대방의 읽지 않은 메시지 전체 읽음 처리"""
        if self.is_closed:
            return None
        self._require_ready()

        async with self._session_factory() as db:
            updated = await message_service.mark_room_read(db, self.room.id, self.user_id)
            responses = [MessageResponse.from_message(m) for m in updated]

        if self.is_closed:
            return None
        for response in responses:
            self._apply_message(response)
        return len(responses)

    # =========================================================================
    # Typing
    # =========================================================================

    @property
    def is_other_typing(self) -> bool:
        if self.is_closed:
            return False
        return self._other_typing.is_typing

    async def _write_typing(self, is_typing: bool) -> bool:
        # 입력중 표시는 부가 정보라 쓰기 실패는 로그만 남김
        try:
            async with self._session_factory() as db:
                await typing_service.set_typing(db, self.room.id, self.user_id, is_typing)
            return True
        except Exception as e:
            logger.warning(f"Typing update failed in room {self.room.id}: {e}")
            return False

    async def set_typing(self, is_typing: bool) -> Optional[bool]:
        if self.is_closed:
            return None
        self._require_ready()
        return await self._write_typing(is_typing)

    async def keystroke(self):
        if self.is_closed:
            return None
        self._require_ready()
        await self._debouncer.keystroke()

    async def stop_typing(self):
        if self.is_closed:
            return None
        await self._debouncer.stop()

    # =========================================================================
    # Realtime handlers
    # =========================================================================

    def _apply_event(self, event: ChangeEvent):
        if event.table == "chat_messages":
            self._apply_message_event(event)
        elif event.table == "typing_indicators":
            self._apply_typing_event(event)

    def _on_message_change(self, event: ChangeEvent):
        if self.is_closed:
            return
        if self.state is SessionState.INITIALIZING:
            self._buffered_events.append(event)
            return
        self._apply_message_event(event)

    def _apply_message_event(self, event: ChangeEvent):
        if event.new is None:
            return
        with self._transition(SessionState.RECEIVING):
            self._apply_message(MessageResponse.model_validate(event.new))

    def _on_typing_change(self, event: ChangeEvent):
        if self.is_closed:
            return
        if self.state is SessionState.INITIALIZING:
            self._buffered_events.append(event)
            return
        self._apply_typing_event(event)

    def _apply_typing_event(self, event: ChangeEvent):
        row = event.row
        if row.get("user_id") != self.other_user_id:
            return

        if event.type is ChangeType.DELETE:
            self._other_typing.clear()
        else:
            self._other_typing.signal(parse_timestamp(row.get("updated_at")))
