import pytest
from httpx import AsyncClient
from fastapi import status
from unittest.mock import AsyncMock, patch

from carmarket.services import message_service


class TestChatRoomAPI:
    """채팅방 API 테스트"""

    @pytest.mark.asyncio
    async def test_resolve_chat_room_success(self, client: AsyncClient, auth_headers_b, profile_a, profile_b):
        """채팅방 생성 API 성공 테스트"""
        response = await client.post(f"/chat-rooms/with/{profile_a.id}", headers=auth_headers_b)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["participant1_id"] == profile_a.id
        assert data["participant2_id"] == profile_b.id

    @pytest.mark.asyncio
    async def test_resolve_existing_chat_room(self, client: AsyncClient, auth_headers_a, chat_room, profile_b):
        """기존 채팅방이 있는 경우 기존 방 반환 테스트"""
        response = await client.post(f"/chat-rooms/with/{profile_b.id}", headers=auth_headers_a)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["id"] == chat_room.id

    @pytest.mark.asyncio
    async def test_resolve_chat_room_with_self(self, client: AsyncClient, auth_headers_a, profile_a):
        """자기 자신과 채팅방 생성 실패 테스트"""
        response = await client.post(f"/chat-rooms/with/{profile_a.id}", headers=auth_headers_a)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "yourself" in response.json()["message"].lower()

    @pytest.mark.asyncio
    async def test_inbox(self, client: AsyncClient, auth_headers_b, test_session, chat_room, profile_a):
        """채팅방 목록 조회 API 테스트"""
        await message_service.append_message(test_session, chat_room.id, profile_a.id, "hello")

        response = await client.get("/chat-rooms", headers=auth_headers_b)

        assert response.status_code == status.HTTP_200_OK
        rooms = response.json()["rooms"]
        assert len(rooms) == 1
        assert rooms[0]["room"]["id"] == chat_room.id
        assert rooms[0]["participant"]["id"] == profile_a.id
        assert rooms[0]["latest_message"]["content"] == "hello"
        assert rooms[0]["unread_count"] == 1

    @pytest.mark.asyncio
    async def test_get_chat_room_detail(self, client: AsyncClient, auth_headers_a, chat_room, profile_b):
        """채팅방 상세 조회 API 테스트"""
        response = await client.get(f"/chat-rooms/{chat_room.id}", headers=auth_headers_a)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["room"]["id"] == chat_room.id
        assert data["participant"]["id"] == profile_b.id

    @pytest.mark.asyncio
    async def test_get_chat_room_as_outsider(self, client: AsyncClient, auth_headers_c, chat_room):
        """참여자가 아닌 사용자의 채팅방 조회 실패"""
        response = await client.get(f"/chat-rooms/{chat_room.id}", headers=auth_headers_c)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "authorization_error"

    @pytest.mark.asyncio
    async def test_get_unknown_chat_room(self, client: AsyncClient, auth_headers_a):
        response = await client.get("/chat-rooms/missing-room", headers=auth_headers_a)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert "not found" in response.json()["message"].lower()

    @pytest.mark.asyncio
    async def test_requires_token(self, client: AsyncClient):
        """토큰 없이 접근하면 채팅 사용 불가 (401)"""
        response = await client.get("/chat-rooms")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert "unavailable" in response.json()["message"].lower()

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get("/chat-rooms", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestHealthAPI:
    """헬스 체크 API 테스트"""

    @pytest.mark.asyncio
    async def test_health_healthy(self, client: AsyncClient):
        health = {"database": True, "redis": True, "overall": True}
        with patch("carmarket.api.health.check_database_health", new=AsyncMock(return_value=health)):
            response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_degraded(self, client: AsyncClient):
        health = {"database": True, "redis": False, "overall": False}
        with patch("carmarket.api.health.check_database_health", new=AsyncMock(return_value=health)):
            response = await client.get("/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["databases"]["redis"] == "disconnected"
