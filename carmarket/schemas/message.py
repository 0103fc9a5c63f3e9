from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class MessageCreate(BaseModel):
    """메시지 생성 스키마"""
    content: str = Field(..., min_length=1, max_length=5000, description="메시지 내용")
    client_token: Optional[str] = Field(None, max_length=36, description="클라이언트 생성 correlation ID")


class MessageResponse(BaseModel):
    """메시지 응답 스키마 (삭제된 메시지는 content가 None)"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="메시지 ID")
    room_id: str = Field(..., description="채팅방 ID")
    sender_id: str = Field(..., description="발신자 ID")
    content: Optional[str] = Field(None, description="메시지 내용")
    client_token: Optional[str] = Field(None, description="클라이언트 correlation ID")
    created_at: datetime = Field(..., description="생성일시")
    read_at: Optional[datetime] = Field(None, description="읽은 시간")
    deleted_at: Optional[datetime] = Field(None, description="삭제 시간")
    is_deleted: bool = Field(default=False, description="삭제 여부")

    @classmethod
    def from_message(cls, message) -> "MessageResponse":
        """ORM 메시지를 응답으로 변환하면서 삭제된 본문을 제거"""
        response = cls.model_validate(message)
        if response.deleted_at is not None:
            response.content = None
            response.is_deleted = True
        return response


class MessageListResponse(BaseModel):
    """메시지 목록 응답 스키마"""
    messages: List[MessageResponse] = Field(..., description="메시지 목록 (생성 시간 오름차순)")
    total_count: int = Field(..., description="전체 메시지 수")


class MessageReadResponse(BaseModel):
    """메시지 읽음 처리 응답 스키마"""
    success: bool = Field(..., description="처리 성공 여부")
    read_count: int = Field(..., description="읽음 처리된 메시지 수")
    message: str = Field(..., description="처리 결과 메시지")
