import asyncio
import pytest
import pytest_asyncio
from typing import AsyncGenerator, Callable
from fakeredis import FakeAsyncRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from unittest.mock import patch

import carmarket.models  # noqa: F401
from carmarket.main import app
from carmarket.api.dependencies import get_feed
from carmarket.database.sql import Base, get_async_session
from carmarket.models.chat_rooms import ChatRoom
from carmarket.models.profiles import Profile
from carmarket.realtime.feed import RealtimeFeed
from carmarket.schemas.auth import AuthUser
from carmarket.services.auth_service import create_access_token
from carmarket.utils.time_utils import utc_now


USER_A_ID = "11111111-1111-4111-8111-111111111111"
USER_B_ID = "22222222-2222-4222-8222-222222222222"
USER_C_ID = "33333333-3333-4333-8333-333333333333"


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
    """비동기 피드 전달을 기다리는 헬퍼"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """테스트별 파일 DB 엔진 (세션마다 별도 연결)"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}",
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine, fake_redis) -> async_sessionmaker:
    """ChatSession/InboxWatcher가 작업마다 여는 세션 팩토리"""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """테스트용 데이터베이스 세션"""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis():
    """publish_change/RealtimeFeed가 사용하는 Redis를 fakeredis로 교체"""
    client = FakeAsyncRedis(decode_responses=True)
    with patch("carmarket.database.redis.redis_client", client):
        yield client
    await client.aclose()


@pytest_asyncio.fixture
async def feed(fake_redis) -> AsyncGenerator[RealtimeFeed, None]:
    """테스트용 변경 피드 (재연결 지연 짧게)"""
    realtime_feed = RealtimeFeed(client=fake_redis, reconnect_delay=0.05)
    yield realtime_feed
    await realtime_feed.close()


@pytest_asyncio.fixture
async def client(test_session, feed) -> AsyncGenerator[AsyncClient, None]:
    """테스트용 비동기 HTTP 클라이언트"""
    def get_test_session():
        return test_session

    app.dependency_overrides[get_async_session] = get_test_session
    app.dependency_overrides[get_feed] = lambda: feed

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _create_profile(session: AsyncSession, user_id: str, username: str, full_name: str) -> Profile:
    profile = Profile(
        id=user_id,
        username=username,
        full_name=full_name,
        avatar_url=f"https://storage.example.com/avatars/{username}.png"
    )
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return profile


@pytest_asyncio.fixture
async def profile_a(test_session) -> Profile:
    """테스트용 사용자 A (판매자)"""
    return await _create_profile(test_session, USER_A_ID, "seller_a", "Seller A")


@pytest_asyncio.fixture
async def profile_b(test_session) -> Profile:
    """테스트용 사용자 B (구매자)"""
    return await _create_profile(test_session, USER_B_ID, "buyer_b", "Buyer B")


@pytest_asyncio.fixture
async def profile_c(test_session) -> Profile:
    """테스트용 사용자 C (채팅방 외부 사용자)"""
    return await _create_profile(test_session, USER_C_ID, "outsider_c", "Outsider C")


@pytest.fixture
def user_a(profile_a) -> AuthUser:
    return AuthUser(id=profile_a.id, email="a@example.com")


@pytest.fixture
def user_b(profile_b) -> AuthUser:
    return AuthUser(id=profile_b.id, email="b@example.com")


@pytest.fixture
def user_c(profile_c) -> AuthUser:
    return AuthUser(id=profile_c.id, email="c@example.com")


@pytest.fixture
def auth_headers_a(profile_a) -> dict:
    """사용자 A의 인증 헤더"""
    return {"Authorization": f"Bearer {create_access_token(profile_a.id, 'a@example.com')}"}


@pytest.fixture
def auth_headers_b(profile_b) -> dict:
    """사용자 B의 인증 헤더"""
    return {"Authorization": f"Bearer {create_access_token(profile_b.id, 'b@example.com')}"}


@pytest.fixture
def auth_headers_c(profile_c) -> dict:
    """사용자 C의 인증 헤더"""
    return {"Authorization": f"Bearer {create_access_token(profile_c.id, 'c@example.com')}"}


@pytest_asyncio.fixture
async def chat_room(test_session, profile_a, profile_b) -> ChatRoom:
    """A-B 채팅방"""
    now = utc_now()
    room = ChatRoom(
        participant1_id=profile_a.id,
        participant2_id=profile_b.id,
        created_at=now,
        updated_at=now,
        last_message_at=now
    )
    test_session.add(room)
    await test_session.commit()
    await test_session.refresh(room)
    return room
