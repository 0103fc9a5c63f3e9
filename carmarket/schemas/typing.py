from typing import List
from pydantic import BaseModel, Field


class TypingUpdate(BaseModel):
    """입력중 상태 변경 요청"""
    is_typing: bool = Field(..., description="입력중 여부")


class TypingStatusResponse(BaseModel):
    """채팅방의 현재 입력중 사용자 (만료된 표시는 제외)"""
    room_id: str
    typing_user_ids: List[str]
