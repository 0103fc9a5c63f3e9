from sqlalchemy import Column, String, DateTime, ForeignKey
from carmarket.database.sql import Base
from carmarket.utils.time_utils import utc_now


class TypingIndicator(Base):
    """(room, user) 당 최대 한 행의 입력중 표시"""
    __tablename__ = "typing_indicators"

    room_id = Column(String(36), ForeignKey("chat_rooms.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    updated_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    def __repr__(self):
        return f"<TypingIndicator(room_id={self.room_id}, user_id={self.user_id})>"
