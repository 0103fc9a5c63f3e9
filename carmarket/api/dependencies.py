"""
API Dependencies

FastAPI dependency functions for authentication and the realtime feed
"""

from typing import Optional
from fastapi import Depends, Query, Request
from fastapi.security import OAuth2PasswordBearer

from carmarket.core.errors import chat_unavailable_error
from carmarket.realtime.feed import RealtimeFeed
from carmarket.schemas.auth import AuthUser
from carmarket.services import auth_service

# 토큰은 외부 identity provider가 발급
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    query_token: Optional[str] = Query(None, alias="token", description="EventSource 호환용 토큰")
) -> AuthUser:
    """
    현재 인증된 사용자를 조회합니다.

    Authorization 헤더를 우선 사용하고, 없으면 token 쿼리 파라미터를 사용합니다.

    Raises:
        AuthenticationException: 토큰이 없거나 유효하지 않은 경우 (채팅 사용 불가)
    """
    user = auth_service.get_current_user(token or query_token)
    if user is None:
        raise chat_unavailable_error()
    return user


def get_feed(request: Request) -> RealtimeFeed:
    """애플리케이션 공용 RealtimeFeed"""
    feed = getattr(request.app.state, "feed", None)
    if feed is None:
        feed = RealtimeFeed()
        request.app.state.feed = feed
    return feed
