"""
에러 처리 미들웨어

라우터 밖으로 빠져나온 예외를 ErrorResponse 형식의 JSON 으로 바꿉니다.
도메인 예외(BaseCustomException)는 FastAPI 의 HTTPException 핸들러가 먼저 처리하므로
여기서는 저장소/피드 장애와 예상하지 못한 예외가 주 대상입니다.
"""

import logging
import traceback
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError
from sqlalchemy.exc import DatabaseError, IntegrityError, OperationalError
from starlette.middleware.base import BaseHTTPMiddleware

from carmarket.core.config import settings
from carmarket.core.errors import BaseCustomException, ErrorResponse, FieldError, ValidationErrorResponse

logger = logging.getLogger(__name__)

# 예외 타입 -> (status, error, message); 위에서부터 첫 번째 일치 항목 사용
_INFRA_ERRORS: Tuple[Tuple[type, int, str, str], ...] = (
    (IntegrityError, status.HTTP_409_CONFLICT, "database_constraint", "Database constraint violation"),
    (OperationalError, status.HTTP_503_SERVICE_UNAVAILABLE, "database_error", "Message store unavailable"),
    (DatabaseError, status.HTTP_503_SERVICE_UNAVAILABLE, "database_error", "Message store unavailable"),
    (RedisError, status.HTTP_503_SERVICE_UNAVAILABLE, "realtime_unavailable", "Realtime feed unavailable"),
    (TimeoutError, status.HTTP_504_GATEWAY_TIMEOUT, "timeout_error", "Upstream timeout"),
)


def error_json(status_code: int, error: str, message: str,
               details: Optional[Dict[str, Any]] = None, headers: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, details=details, status_code=status_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def _debug_details(exc: Exception) -> Optional[Dict[str, Any]]:
    if not settings.debug:
        return None
    return {"type": type(exc).__name__, "detail": str(getattr(exc, "orig", None) or exc)}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """처리되지 않은 예외를 표준 에러 응답으로 변환"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except BaseCustomException as e:
            return JSONResponse(status_code=e.status_code, content=e.to_dict())
        except PydanticValidationError as e:
            body = ValidationErrorResponse(
                message="Request validation failed",
                validation_errors=[
                    FieldError(
                        field=".".join(str(loc) for loc in err["loc"]),
                        message=err["msg"],
                        value=err.get("input")
                    )
                    for err in e.errors()
                ]
            )
            return JSONResponse(status_code=body.status_code, content=body.model_dump(mode="json"))
        except Exception as e:
            return self._infra_or_internal(request, e)

    def _infra_or_internal(self, request: Request, exc: Exception) -> JSONResponse:
        for exc_type, status_code, error, message in _INFRA_ERRORS:
            if isinstance(exc, exc_type):
                log = logger.warning if status_code < 500 else logger.error
                log(f"{error} on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
                return error_json(status_code, error, message, _debug_details(exc))

        if isinstance(exc, ValueError):
            return error_json(status.HTTP_400_BAD_REQUEST, "value_error", str(exc))

        logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}")
        details = _debug_details(exc)
        if details is not None:
            details["traceback"] = traceback.format_exc()
        return error_json(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_server_error",
                          "An unexpected error occurred", details)


def create_http_exception_handler():
    """HTTPException (도메인 예외 포함) 을 같은 형식으로 변환하는 핸들러"""
    async def http_exception_handler(request: Request, exc):
        if isinstance(exc, BaseCustomException):
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        if isinstance(exc.detail, str):
            return error_json(exc.status_code, "http_error", exc.detail, headers=getattr(exc, "headers", None))
        return error_json(exc.status_code, "http_error", "HTTP error occurred",
                          {"detail": exc.detail}, headers=getattr(exc, "headers", None))

    return http_exception_handler
