"""
요청 로깅 미들웨어

요청마다 request_id 를 발급(또는 X-Request-ID 헤더를 그대로 사용)하고
토큰에서 꺼낸 사용자 ID 와 함께 로그 컨텍스트에 넣습니다.
SSE 연결은 EventSource 제약으로 토큰을 쿼리스트링에 싣기 때문에 로그에서는 가립니다.
"""

import time
import uuid
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from carmarket.core.logging import clear_request_context, get_logger, log_api_call, set_request_context
from carmarket.services import auth_service

logger = get_logger(__name__)

REDACTED = "***"
SENSITIVE_HEADERS = frozenset({"authorization", "cookie"})
SENSITIVE_PARAMS = frozenset({"token"})


def bearer_token(request: Request) -> Optional[str]:
    """Authorization: Bearer 헤더, 없으면 ?token= 쿼리"""
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return request.query_params.get("token")


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class LoggingMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, log_requests: bool = True, skip_paths: Iterable[str] = ("/metrics", "/health/live")):
        super().__init__(app)
        self.log_requests = log_requests
        self.skip_paths = frozenset(skip_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = bearer_token(request)
        user = auth_service.get_current_user(token) if token else None
        user_id = user.id if user else None

        set_request_context(request_id, user_id)
        started = time.perf_counter()
        if self.log_requests:
            logger.info(
                f"--> {request.method} {request.url.path}",
                extra={
                    "event_type": "request_started",
                    "query": {
                        key: REDACTED if key in SENSITIVE_PARAMS else value
                        for key, value in request.query_params.items()
                    } or None,
                    "headers": {
                        name: REDACTED if name in SENSITIVE_HEADERS else value
                        for name, value in request.headers.items()
                    },
                    "client_ip": client_ip(request),
                }
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"<-- {request.method} {request.url.path} failed: {type(e).__name__}",
                extra={
                    "event_type": "request_failed",
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "error": str(e),
                },
                exc_info=True
            )
            raise
        finally:
            clear_request_context()

        log_api_call(
            logger,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            user_id=user_id,
            request_id=request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
