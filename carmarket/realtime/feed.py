"""
Realtime Feed Subscriber

Redis Pub/Sub 채널을 구독하여 필터에 맞는 변경 이벤트를 콜백으로 전달합니다.

- 채널 단위 전달 순서는 발행 순서(= 커밋 순서)와 같습니다.
- 연결이 끊기면 오류를 올리지 않고 재구독합니다.
- unsubscribe() 이후에는 새 콜백이 호출되지 않지만, 이미 실행 중인
  콜백 하나는 끝까지 실행될 수 있습니다. 소비자는 자체 liveness 체크로
  늦게 도착한 이벤트를 무시해야 합니다.
"""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Set

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from carmarket.core.config import settings
from carmarket.core.logging import log_realtime_event
from carmarket.database.redis import get_redis
from carmarket.realtime.filters import ChangeFilter
from carmarket.realtime.publisher import channel_for
from carmarket.schemas.events import ChangeEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], Any]
Unsubscribe = Callable[[], Awaitable[None]]


class _Subscription:
    """필터 하나에 대한 Pub/Sub 연결과 수신 태스크"""

    def __init__(
        self,
        client: redis.Redis,
        change_filter: ChangeFilter,
        on_event: EventHandler,
        reconnect_delay: float
    ):
        self._client = client
        self.change_filter = change_filter
        self._on_event = on_event
        self._reconnect_delay = reconnect_delay
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self.channel = channel_for(change_filter.table)
        self.active = False

    async def start(self):
        await self._connect()
        self.active = True
        self._task = asyncio.create_task(self._run(), name=f"feed:{self.channel}")
        log_realtime_event(logger, "subscribed", self.channel)

    async def _connect(self):
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self.channel)
        self._pubsub = pubsub

    async def _run(self):
        while self.active:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0
                )
                if message and message["type"] == "message":
                    await self._deliver(message["data"])
            except asyncio.CancelledError:
                raise
            except (RedisError, OSError) as e:
                if not self.active:
                    break
                logger.warning(f"Realtime connection lost on {self.channel}: {e}")
                await self._reconnect()

    async def _reconnect(self):
        await self._close_pubsub()
        while self.active:
            await asyncio.sleep(self._reconnect_delay)
            if not self.active:
                return
            try:
                await self._connect()
                log_realtime_event(logger, "resubscribed", self.channel)
                return
            except (RedisError, OSError) as e:
                logger.warning(f"Resubscribe to {self.channel} failed: {e}")

    async def _deliver(self, raw: Any):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        try:
            event = ChangeEvent.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed change event on {self.channel}: {e}")
            return

        if not self.active or not self.change_filter.matches(event):
            return

        try:
            result = self._on_event(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Realtime handler failed on {self.channel}")

    async def _close_pubsub(self):
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        except (RedisError, OSError) as e:
            logger.debug(f"Ignoring error while closing pubsub on {self.channel}: {e}")

    async def unsubscribe(self):
        if not self.active and self._task is None:
            return
        self.active = False

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_pubsub()
        log_realtime_event(logger, "unsubscribed", self.channel)


class RealtimeFeed:
    """변경 피드 구독 관리자"""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        reconnect_delay: Optional[float] = None
    ):
        self._client = client
        self._reconnect_delay = (
            settings.realtime_reconnect_delay_seconds
            if reconnect_delay is None else reconnect_delay
        )
        self._subscriptions: Set[_Subscription] = set()

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def subscribe(self, change_filter: ChangeFilter, on_event: EventHandler) -> Unsubscribe:
        """
        필터에 맞는 변경 이벤트 구독

        Args:
            change_filter: 테이블/이벤트/행 조건
            on_event: 이벤트 콜백 (일반 함수 또는 코루틴 함수)

        Returns:
            구독 해제 코루틴 함수 (여러 번 호출해도 안전)
        """
        client = await self._get_client()
        subscription = _Subscription(client, change_filter, on_event, self._reconnect_delay)
        await subscription.start()
        self._subscriptions.add(subscription)

        async def unsubscribe():
            await subscription.unsubscribe()
            self._subscriptions.discard(subscription)

        return unsubscribe

    async def stream(self, *change_filters: ChangeFilter) -> AsyncIterator[ChangeEvent]:
        """
        여러 필터의 이벤트를 하나의 async iterator로 전달 (SSE용)

        iterator가 닫히면 모든 구독이 해제됩니다.
        """
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribers = []
        try:
            for change_filter in change_filters:
                unsubscribers.append(await self.subscribe(change_filter, queue.put_nowait))
            while True:
                yield await queue.get()
        finally:
            for unsubscribe in unsubscribers:
                await unsubscribe()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def close(self):
        """모든 구독 해제"""
        for subscription in list(self._subscriptions):
            await subscription.unsubscribe()
        self._subscriptions.clear()
