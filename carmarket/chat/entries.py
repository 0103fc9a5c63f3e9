"""
Local message entries for an open chat session

낙관적 전송을 명시적인 상태(PENDING -> CONFIRMED | FAILED)로 표현합니다.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from carmarket.schemas.message import MessageResponse
from carmarket.utils.ids import generate_id
from carmarket.utils.time_utils import utc_now


class EntryStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderedMessage:
    """화면 표시용 메시지 (삭제된 메시지는 body가 None)"""
    key: str
    message_id: Optional[str]
    sender_id: str
    body: Optional[str]
    is_deleted: bool
    is_own: bool
    status: EntryStatus
    created_at: datetime
    read_at: Optional[datetime]


@dataclass
class LocalEntry:
    correlation_id: str
    sender_id: str
    content: Optional[str]
    created_at: datetime
    status: EntryStatus = EntryStatus.PENDING
    message_id: Optional[str] = None
    read_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def pending(cls, sender_id: str, content: str) -> "LocalEntry":
        return cls(
            correlation_id=generate_id(),
            sender_id=sender_id,
            content=content,
            created_at=utc_now()
        )

    @classmethod
    def from_server(cls, message: MessageResponse) -> "LocalEntry":
        entry = cls(
            correlation_id=message.client_token or message.id,
            sender_id=message.sender_id,
            content=message.content,
            created_at=message.created_at
        )
        entry.apply(message)
        return entry

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def matches(self, message: MessageResponse) -> bool:
        """서버 id가 같거나, 아직 id가 없는 항목의 correlation id가 같은 경우"""
        if self.message_id is not None:
            return self.message_id == message.id
        return (
            message.client_token is not None
            and message.client_token == self.correlation_id
            and message.sender_id == self.sender_id
        )

    def apply(self, message: MessageResponse):
        """
        서버 행으로 갱신 (쓰기 응답 또는 realtime 에코)

        에코는 순서가 뒤바뀌어 도착할 수 있으므로 read_at / deleted_at 은
        한 번 설정되면 None 으로 되돌리지 않고, 삭제된 본문은 다시 채우지 않습니다.
        """
        self.message_id = message.id
        self.created_at = message.created_at
        if self.read_at is None:
            self.read_at = message.read_at
        if self.deleted_at is None:
            self.deleted_at = message.deleted_at
        self.content = None if self.is_deleted else message.content
        self.status = EntryStatus.CONFIRMED

    def fail(self):
        self.status = EntryStatus.FAILED

    def render(self, viewer_id: str) -> RenderedMessage:
        return RenderedMessage(
            key=self.message_id or self.correlation_id,
            message_id=self.message_id,
            sender_id=self.sender_id,
            body=None if self.is_deleted else self.content,
            is_deleted=self.is_deleted,
            is_own=self.sender_id == viewer_id,
            status=self.status,
            created_at=self.created_at,
            read_at=self.read_at
        )
