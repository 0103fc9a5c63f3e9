from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class AuthUser(BaseModel):
    """identity provider가 제공하는 현재 사용자"""
    id: str = Field(..., description="사용자 ID")
    email: Optional[str] = Field(None, description="이메일")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="사용자 메타데이터")
