"""
Identity provider boundary

JWT 액세스 토큰을 검증하여 현재 사용자를 얻고, 세션 변경 이벤트
(signed-in / signed-out / token-refreshed)를 리스너에 전달합니다.
"""

import inspect
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from jose import JWTError, jwt

from carmarket.core.config import settings
from carmarket.core.errors import invalid_token_error
from carmarket.core.logging import log_security_event
from carmarket.schemas.auth import AuthUser

logger = logging.getLogger(__name__)


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """액세스 토큰 발급 (개발/테스트용)"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=settings.access_token_expire_hours))
    to_encode = {
        "sub": user_id,
        "email": email,
        "user_metadata": metadata or {},
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    """토큰 디코드 (유효하지 않으면 None)"""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        log_security_event(logger, "invalid_token", "low", reason=str(e))
        return None


def get_current_user(token: Optional[str]) -> Optional[AuthUser]:
    """토큰의 사용자 (없거나 유효하지 않으면 None)"""
    if not token:
        return None

    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        return None

    return AuthUser(
        id=str(payload["sub"]),
        email=payload.get("email"),
        metadata=payload.get("user_metadata") or {}
    )


class AuthChangeEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


AuthListener = Callable[[AuthChangeEvent, Optional[AuthUser]], Any]


class IdentitySession:
    """클라이언트 측 로그인 세션과 세션 변경 이벤트 스트림"""

    def __init__(self):
        self._user: Optional[AuthUser] = None
        self._listeners: List[AuthListener] = []

    def get_current_user(self) -> Optional[AuthUser]:
        return self._user

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """리스너 등록, 해제 함수 반환"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: AuthChangeEvent):
        for listener in list(self._listeners):
            try:
                result = listener(event, self._user)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Auth listener failed on {event.value}")

    async def sign_in(self, token: str) -> AuthUser:
        user = get_current_user(token)
        if user is None:
            raise invalid_token_error()
        self._user = user
        await self._emit(AuthChangeEvent.SIGNED_IN)
        return user

    async def refresh(self, token: str) -> AuthUser:
        user = get_current_user(token)
        if user is None:
            raise invalid_token_error()
        self._user = user
        await self._emit(AuthChangeEvent.TOKEN_REFRESHED)
        return user

    async def sign_out(self):
        self._user = None
        await self._emit(AuthChangeEvent.SIGNED_OUT)
