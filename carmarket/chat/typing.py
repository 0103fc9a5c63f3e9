"""
Typing indicator timers for an open chat session
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from carmarket.utils.time_utils import is_fresh, utc_now

logger = logging.getLogger(__name__)


class TypingDebouncer:
    """
    로컬 키 입력 debounce

    입력 burst의 첫 키 입력에서 True를 한 번 쓰고, 키 입력마다 quiet 타이머를
    다시 시작하며, 타이머가 만료되면 False를 한 번 씁니다.
    """

    def __init__(self, write: Callable[[bool], Awaitable[Any]], quiet_window: float):
        self._write = write
        self.quiet_window = quiet_window
        self.active = False
        self._timer: Optional[asyncio.Task] = None

    async def keystroke(self):
        self._restart_timer()
        if not self.active:
            self.active = True
            await self._write(True)

    def _restart_timer(self):
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._expire())

    async def _expire(self):
        await asyncio.sleep(self.quiet_window)
        self._timer = None
        if self.active:
            self.active = False
            await self._write(False)

    def cancel(self):
        """타이머만 취소 (쓰기 없음)"""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def stop(self):
        """burst 종료: 진행 중이면 False를 즉시 씀"""
        self.cancel()
        if self.active:
            self.active = False
            await self._write(False)


class RemoteTypingState:
    """
    상대방 입력중 표시

    - 서버 updated_at이 expiry 창을 넘은 신호는 무시합니다 (passive expiry).
    - 신호를 받은 뒤 stale_after 동안 새 신호가 없으면 자동으로 해제합니다.
    """

    def __init__(
        self,
        stale_after: float,
        expiry: float,
        on_change: Optional[Callable[[bool], Any]] = None
    ):
        self.stale_after = stale_after
        self.expiry = expiry
        self._on_change = on_change
        self._updated_at: Optional[datetime] = None
        self._received_at: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def is_typing(self) -> bool:
        if self._received_at is None:
            return False
        # 타이머가 아직 실행되지 않았더라도 stale이면 False
        if asyncio.get_running_loop().time() - self._received_at > self.stale_after:
            return False
        return is_fresh(self._updated_at, self.expiry)

    def signal(self, updated_at: Optional[datetime]):
        if not is_fresh(updated_at, self.expiry):
            self.clear()
            return

        was_typing = self.is_typing
        loop = asyncio.get_running_loop()
        self._updated_at = updated_at
        self._received_at = loop.time()

        # 만료 창이 먼저 끝나면 그 시점에 해제
        remaining = self.expiry - (utc_now() - updated_at).total_seconds()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(max(0.0, min(self.stale_after, remaining)), self.clear)

        if not was_typing:
            self._notify(True)

    def clear(self):
        was_typing = self._received_at is not None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._updated_at = None
        self._received_at = None
        if was_typing:
            self._notify(False)

    def _notify(self, is_typing: bool):
        if self._on_change is None:
            return
        try:
            self._on_change(is_typing)
        except Exception:
            logger.exception("Typing change callback failed")
