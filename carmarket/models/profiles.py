from sqlalchemy import Column, String, DateTime
from carmarket.database.sql import Base
from carmarket.utils.time_utils import utc_now


class Profile(Base):
    """
    사용자 프로필 (ID는 외부 identity provider의 사용자 ID와 동일)
    """
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    username = Column(String(50), unique=True, nullable=True)
    full_name = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True, comment="외부 object storage URL")

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Profile(id={self.id}, username={self.username})>"
