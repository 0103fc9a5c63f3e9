from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class ParticipantInfo(BaseModel):
    """채팅 상대 정보"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="사용자 ID")
    full_name: Optional[str] = Field(None, description="이름")
    avatar_url: Optional[str] = Field(None, description="아바타 URL (외부 저장소)")


class LatestMessagePreview(BaseModel):
    """인박스 미리보기용 마지막 메시지"""
    id: str
    sender_id: str
    content: Optional[str] = Field(None, description="삭제된 경우 None")
    is_deleted: bool = False
    created_at: datetime


class ChatRoomResponse(BaseModel):
    """1:1 채팅방 응답 스키마"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="채팅방 ID")
    participant1_id: str = Field(..., description="참여자 1 ID (정렬 순서상 앞)")
    participant2_id: str = Field(..., description="참여자 2 ID")
    created_at: datetime = Field(..., description="생성일시")
    last_message_at: datetime = Field(..., description="마지막 활동 시간")


class RoomSummary(BaseModel):
    """인박스 항목: 채팅방 + 상대방 + 마지막 메시지"""
    room: ChatRoomResponse
    participant: ParticipantInfo
    latest_message: Optional[LatestMessagePreview] = None
    unread_count: int = Field(default=0, description="읽지 않은 메시지 수")


class InboxResponse(BaseModel):
    rooms: List[RoomSummary]
