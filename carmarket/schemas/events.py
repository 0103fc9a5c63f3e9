"""
변경 알림 피드 이벤트 스키마
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from carmarket.utils.time_utils import utc_now


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """테이블 행 단위 변경 알림"""
    table: str = Field(..., description="테이블 이름")
    type: ChangeType = Field(..., description="변경 종류")
    new: Optional[Dict[str, Any]] = Field(None, description="변경 후 행 (DELETE는 None)")
    old: Optional[Dict[str, Any]] = Field(None, description="변경 전 행 (INSERT는 None)")
    commit_timestamp: datetime = Field(default_factory=utc_now)

    @property
    def row(self) -> Dict[str, Any]:
        """new가 있으면 new, 없으면 old"""
        return self.new if self.new is not None else (self.old or {})
