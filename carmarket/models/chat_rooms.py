from sqlalchemy import Column, String, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from carmarket.database.sql import Base
from carmarket.utils.ids import generate_id
from carmarket.utils.time_utils import utc_now


class ChatRoom(Base):
    """
    두 사용자 간의 1:1 채팅방

    참여자는 항상 오름차순(participant1_id < participant2_id)으로 저장되므로
    UNIQUE 제약만으로 순서 없는 쌍의 유일성이 보장됩니다.
    """
    __tablename__ = "chat_rooms"
    __table_args__ = (
        UniqueConstraint("participant1_id", "participant2_id", name="uq_chat_rooms_participants"),
        CheckConstraint("participant1_id < participant2_id", name="ck_chat_rooms_participant_order"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    participant1_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    participant2_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now)
    # chat_messages INSERT 훅이 갱신 (클라이언트가 직접 쓰지 않음)
    last_message_at = Column(DateTime, default=utc_now, index=True)

    def __repr__(self):
        return f"<ChatRoom(id={self.id}, participant1_id={self.participant1_id}, participant2_id={self.participant2_id})>"
