from sqlalchemy import Column, String, DateTime, ForeignKey
from carmarket.database.sql import Base
from carmarket.utils.time_utils import utc_now


class BlockedUser(Base):
    __tablename__ = "blocked_users"

    blocker_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    blocked_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=utc_now)

    def __repr__(self):
        return f"<BlockedUser(blocker_id={self.blocker_id}, blocked_id={self.blocked_id})>"
