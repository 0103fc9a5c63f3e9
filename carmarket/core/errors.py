"""
예외 계층

모든 도메인 예외는 HTTPException 을 상속하므로 API 계층에서는 그대로 전파하면
{error, message, details, status_code} 형식의 JSON 으로 응답됩니다.
ChatSession 같은 in-process 호출자는 같은 예외를 직접 받습니다.
"""

from typing import Any, ClassVar, Dict, List, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    status_code: int


class FieldError(BaseModel):
    field: str
    message: str
    value: Optional[Any] = None


class ValidationErrorResponse(BaseModel):
    error: str = "validation_error"
    message: str
    validation_errors: List[FieldError]
    status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY


class BaseCustomException(HTTPException):
    """
    서비스 공통 예외

    하위 클래스는 status_code / error / default_message 만 지정합니다.
    """
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: ClassVar[str] = "internal_error"
    default_message: ClassVar[str] = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(status_code=type(self).status_code, detail=self.to_dict())

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return ErrorResponse(
            error=self.error,
            message=self.message,
            details=self.details,
            status_code=self.status_code
        ).model_dump()


class AuthenticationException(BaseCustomException):
    """로그인 사용자 없음 / 토큰 오류"""
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "authentication_error"
    default_message = "Authentication failed"


class AuthorizationException(BaseCustomException):
    status_code = status.HTTP_403_FORBIDDEN
    error = "authorization_error"
    default_message = "Access denied"


class ResourceNotFoundException(BaseCustomException):
    status_code = status.HTTP_404_NOT_FOUND
    error = "resource_not_found"
    resource: ClassVar[str] = "Resource"

    def __init__(self, identifier: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"{self.resource} not found",
            details={"resource": self.resource, "id": identifier}
        )


class BusinessLogicException(BaseCustomException):
    """빈 메시지, 자기 자신과의 채팅 등 요청 자체가 잘못된 경우"""
    status_code = status.HTTP_400_BAD_REQUEST
    error = "business_logic_error"
    default_message = "Invalid request"


# =============================================================================
# 채팅 도메인 예외
# =============================================================================

class Unauthorized(AuthorizationException):
    """채팅방 참여자가 아니거나 메시지 작업 주체 제약을 위반한 경우 (재시도 불가)"""


class RoomNotFound(ResourceNotFoundException):
    resource = "Chat room"


class MessageNotFound(ResourceNotFoundException):
    resource = "Message"


class RoomInitializationFailed(BaseCustomException):
    """
    동시 생성 경합 후 재조회에도 채팅방을 찾지 못한 경우.

    백엔드 불일치를 의미하며 자동 재시도하지 않습니다.
    """
    error = "room_initialization_failed"
    default_message = "Failed to recover chat room after unique constraint violation"


class ChatInitFailed(BaseCustomException):
    """채팅 세션 초기화 실패 (부분적인 Ready 상태 없음)"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "chat_init_failed"
    default_message = "Failed to initialize chat"


def invalid_token_error() -> AuthenticationException:
    return AuthenticationException("Invalid or expired token")


def chat_unavailable_error() -> AuthenticationException:
    """로그인 사용자가 없을 때"""
    return AuthenticationException("Chat is unavailable without a signed-in user")
