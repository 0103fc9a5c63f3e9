from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index, event, update
from carmarket.database.sql import Base
from carmarket.models.chat_rooms import ChatRoom
from carmarket.utils.ids import generate_id
from carmarket.utils.time_utils import utc_now


class ChatMessage(Base):
    """
    채팅 메시지 (append-only)

    read_at / deleted_at 외의 필드는 생성 후 변경되지 않습니다.
    """
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_room_created", "room_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    room_id = Column(String(36), ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    client_token = Column(String(36), nullable=True, comment="클라이언트 생성 correlation ID")
    created_at = Column(DateTime, default=utc_now, nullable=False)
    read_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<ChatMessage(id={self.id}, room_id={self.room_id}, sender_id={self.sender_id})>"


@event.listens_for(ChatMessage, "after_insert")
def update_chat_room_timestamp(mapper, connection, target):
    """메시지 INSERT 시 같은 트랜잭션에서 채팅방 last_message_at 갱신"""
    timestamp = target.created_at or utc_now()
    connection.execute(
        update(ChatRoom.__table__)
        .where(ChatRoom.__table__.c.id == target.room_id)
        .values(last_message_at=timestamp, updated_at=timestamp)
    )
