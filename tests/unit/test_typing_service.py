import pytest
from datetime import timedelta
from sqlalchemy import select, func

from carmarket.core.config import settings
from carmarket.core.errors import Unauthorized
from carmarket.models.typing_indicators import TypingIndicator
from carmarket.services import typing_service
from carmarket.utils.time_utils import utc_now


async def _indicator_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(TypingIndicator))
    return result.scalar_one()


class TestTypingPresence:
    """입력중 표시 테스트"""

    @pytest.mark.asyncio
    async def test_repeated_true_keeps_single_row(self, test_session, chat_room, profile_a):
        """반복 호출해도 (room, user) 당 한 행"""
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)

        assert await _indicator_count(test_session) == 1
        assert await typing_service.get_typing_user_ids(test_session, chat_room.id) == [profile_a.id]

    @pytest.mark.asyncio
    async def test_false_removes_row(self, test_session, chat_room, profile_a):
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, False)

        assert await _indicator_count(test_session) == 0
        assert await typing_service.get_typing_user_ids(test_session, chat_room.id) == []

    @pytest.mark.asyncio
    async def test_false_without_row_is_noop(self, test_session, chat_room, profile_a):
        result = await typing_service.set_typing(test_session, chat_room.id, profile_a.id, False)

        assert result is None
        assert await _indicator_count(test_session) == 0

    @pytest.mark.asyncio
    async def test_idle_indicator_passively_expires(self, test_session, chat_room, profile_a):
        """false 호출 없이도 만료 시간이 지나면 입력중 목록에서 제외"""
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)

        later = utc_now() + timedelta(seconds=settings.typing_expiry_seconds + 1)
        typing_ids = await typing_service.get_typing_user_ids(test_session, chat_room.id, now=later)

        assert typing_ids == []

    @pytest.mark.asyncio
    async def test_upsert_sweeps_expired_indicators(self, test_session, chat_room, profile_a, profile_b):
        """입력중 upsert 시 만료된 다른 표시를 삭제"""
        stale = utc_now() - timedelta(seconds=settings.typing_expiry_seconds + 5)
        test_session.add(TypingIndicator(room_id=chat_room.id, user_id=profile_b.id, updated_at=stale))
        await test_session.commit()

        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)

        result = await test_session.execute(select(TypingIndicator.user_id))
        assert list(result.scalars().all()) == [profile_a.id]

    @pytest.mark.asyncio
    async def test_exclude_self(self, test_session, chat_room, profile_a, profile_b):
        await typing_service.set_typing(test_session, chat_room.id, profile_a.id, True)
        await typing_service.set_typing(test_session, chat_room.id, profile_b.id, True)

        typing_ids = await typing_service.get_typing_user_ids(
            test_session, chat_room.id, exclude_user_id=profile_a.id
        )
        assert typing_ids == [profile_b.id]

    @pytest.mark.asyncio
    async def test_outsider_cannot_set_typing(self, test_session, chat_room, profile_c):
        with pytest.raises(Unauthorized):
            await typing_service.set_typing(test_session, chat_room.id, profile_c.id, True)

        assert await _indicator_count(test_session) == 0
