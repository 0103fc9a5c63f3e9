import pytest
from httpx import AsyncClient
from fastapi import status

from carmarket.chat import ChatSession, InboxWatcher
from carmarket.core.errors import Unauthorized

from tests.conftest import wait_until


class TestFullChatFlow:
    """전체 채팅 플로우 통합 테스트"""

    @pytest.mark.asyncio
    async def test_complete_chat_flow(
        self, client: AsyncClient, session_factory, feed, user_a, user_b, auth_headers_a, auth_headers_b
    ):
        """
        완전한 채팅 플로우 테스트:
        1. B가 A의 매물을 보고 채팅 시작 (채팅방 생성)
        2. A의 인박스가 새 메시지로 갱신
        3. A가 채팅을 열고 답장, B가 실시간 수신
        4. A가 입력중 → B에게 표시
        5. B가 읽음 처리, A가 수신
        6. A가 메시지 삭제, B에게는 본문 없이 표시
        7. B가 A의 메시지 삭제 시도 → 거부
        """

        # 1. B → A 채팅 시작
        async with InboxWatcher(session_factory, feed, user_a) as inbox_a:
            assert inbox_a.rooms == []

            async with ChatSession(session_factory, feed, user_b, user_a.id) as chat_b:
                await chat_b.send("Is the 2019 sedan still available?")

                # 2. A 인박스 갱신
                assert await wait_until(lambda: len(inbox_a.rooms) == 1)
                assert inbox_a.rooms[0].participant.id == user_b.id
                assert inbox_a.rooms[0].unread_count == 1

                # 3. A가 채팅을 열고 답장
                async with ChatSession(session_factory, feed, user_a, user_b.id, quiet_window=0.1) as chat_a:
                    assert chat_a.room.id == chat_b.room.id
                    assert [view.body for view in chat_a.visible_messages()] == [
                        "Is the 2019 sedan still available?"
                    ]

                    # 4. 입력중 표시
                    await chat_a.keystroke()
                    assert await wait_until(lambda: chat_b.is_other_typing)

                    reply = await chat_a.send("Yes, it is.")
                    await chat_a.stop_typing()
                    assert await wait_until(lambda: len(chat_b.messages) == 2)
                    assert await wait_until(lambda: not chat_b.is_other_typing)

                    # 5. 읽음 처리
                    assert await chat_b.mark_all_read() == 1
                    assert await wait_until(lambda: chat_a.messages[1].read_at is not None)

                    # 6. 삭제
                    await chat_a.delete(reply.message_id)
                    assert await wait_until(lambda: chat_b.visible_messages()[1].is_deleted)
                    assert chat_b.visible_messages()[1].body is None

                    # 7. 다른 사람 메시지 삭제 거부
                    with pytest.raises(Unauthorized):
                        await chat_b.delete(reply.message_id)

        # HTTP 에서도 같은 상태
        response = await client.get(f"/messages/rooms/{chat_a.room.id}", headers=auth_headers_b)
        assert response.status_code == status.HTTP_200_OK
        messages = response.json()["messages"]
        assert [m["content"] for m in messages] == ["Is the 2019 sedan still available?", None]
        assert messages[1]["is_deleted"] is True

        response = await client.get("/chat-rooms", headers=auth_headers_a)
        assert response.json()["rooms"][0]["latest_message"]["is_deleted"] is True
        assert feed.subscription_count == 0
