"""Test suite for concurrent operations."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from ai_assistant.domain.models import Role


@pytest.mark.asyncio
async def test_concurrent_new_conversations(api):
    """Test that concurrent first turns each get their own session."""
    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as client:
        responses = await asyncio.gather(
            *[
                client.post(
                    "/api/chat",
                    json={"model": "gpt-4", "messages": [{"role": "user", "content": f"Topic {i}"}]},
                )
                for i in range(10)
            ]
        )

        assert all(r.status_code == 200 for r in responses)
        session_ids = [r.json()["sessionId"] for r in responses]
        assert len(set(session_ids)) == 10

        sessions = (await client.get("/api/chats")).json()["sessions"]
        assert len(sessions) == 10


@pytest.mark.asyncio
async def test_parallel_turns_in_different_sessions(api):
    """Test that turns against different sessions do not interfere."""
    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as client:
        created = await asyncio.gather(
            *[
                client.post(
                    "/api/chat",
                    json={"model": "gpt-3.5-turbo", "messages": [{"role": "user", "content": "start"}]},
                )
                for _ in range(5)
            ]
        )
        session_ids = [r.json()["sessionId"] for r in created]

        async def follow_up(session_id: str, index: int):
            response = await client.post(
                "/api/chat",
                json={
                    "model": "gpt-3.5-turbo",
                    "sessionId": session_id,
                    "messages": [{"role": "user", "content": f"follow up {index}"}],
                },
            )
            assert response.status_code == 200
            messages = (await client.get(f"/api/chats/{session_id}/messages")).json()["messages"]
            assert [m["content"] for m in messages][::2] == ["start", f"follow up {index}"]

        await asyncio.gather(*[follow_up(sid, i) for i, sid in enumerate(session_ids)])


@pytest.mark.asyncio
async def test_concurrent_appends_to_one_session(store):
    """Test that racing appends are all kept with a strict timestamp order."""
    session = await store.create_session("Busy", "gpt-4")

    await asyncio.gather(
        *[store.append_message(session.id, Role.USER, f"Message {i}") for i in range(20)]
    )

    messages = await store.list_messages(session.id)
    assert len(messages) == 20
    assert {m.content for m in messages} == {f"Message {i}" for i in range(20)}
    stamps = [m.created_at for m in messages]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))
    assert (await store.get_session(session.id)).updated_at == stamps[-1]


@pytest.mark.asyncio
async def test_concurrent_error_handling(api):
    """Test error handling under concurrent load."""
    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as client:
        bad_ids = [f"00000000-0000-0000-0000-{i:012d}" for i in range(5)]
        responses = await asyncio.gather(
            *[client.get(f"/api/chats/{chat_id}/messages") for chat_id in bad_ids]
        )
        assert all(r.status_code == 404 for r in responses)
