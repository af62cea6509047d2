"""
API tests for sessions, streaming sends, retries and answer versions.
"""

import pytest

from aichat.services.deepseek_service import NO_API_KEY_REPLY, DeepSeekService, StreamDelta


async def _create_session(client, headers, title="Test Chat"):
    response = await client.post("/api/chat/sessions", headers=headers, json={"title": title})
    assert response.status_code == 201
    return response.json()["session_id"]


async def _send(client, headers, session_id, **body):
    response = await client.post(f"/api/chat/sessions/{session_id}", headers=headers, json=body)
    return response


def _split_marker(text, marker):
    body, _, value = text.partition(f"\n\n{marker}")
    return body, value


class TestSessionsApi:
    """Session CRUD endpoint tests."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client, auth_headers):
        response = await client.post("/api/chat/sessions", headers=auth_headers, json={"title": "Plans"})
        assert response.status_code == 201
        created = response.json()
        assert set(created) == {"id", "session_id", "title", "created_at"}

        response = await client.get("/api/chat/sessions", headers=auth_headers)
        data = response.json()
        assert data["total"] == 1
        assert data["conversations"][0]["title"] == "Plans"
        assert data["conversations"][0]["message_count"] == 0

    @pytest.mark.asyncio
    async def test_update_session(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)

        response = await client.put(
            f"/api/chat/sessions/{session_id}", headers=auth_headers, json={"is_pinned": True}
        )

        assert response.status_code == 200
        assert response.json()["is_pinned"] is True
        assert response.json()["title"] == "Test Chat"

    @pytest.mark.asyncio
    async def test_delete_session(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)
        await _send(client, auth_headers, session_id, content="Hi")

        response = await client.delete(f"/api/chat/sessions/{session_id}", headers=auth_headers)
        assert response.status_code == 200

        response = await client.get(f"/api/chat/sessions/{session_id}", headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_foreign_and_missing_sessions_look_the_same(self, client, login):
        alice = await login()
        bob = await login(username="bob", email="bob@example.com")
        session_id = await _create_session(client, alice)

        foreign = await client.get(f"/api/chat/sessions/{session_id}", headers=bob)
        missing = await client.get("/api/chat/sessions/does-not-exist", headers=bob)

        assert foreign.status_code == missing.status_code == 403
        assert foreign.json() == missing.json() == {"detail": "No access to this chat session"}

        for response in (
            await client.put(f"/api/chat/sessions/{session_id}", headers=bob, json={"title": "x"}),
            await client.delete(f"/api/chat/sessions/{session_id}", headers=bob),
            await _send(client, bob, session_id, content="Hi"),
            await client.get(f"/api/chat/sessions/{session_id}/messages", headers=bob)
        ):
            assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.get("/api/chat/sessions")

        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_messages_pagination_clamps(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)
        for i in range(3):
            await _send(client, auth_headers, session_id, content=f"message {i}")

        response = await client.get(
            f"/api/chat/sessions/{session_id}/messages",
            headers=auth_headers,
            params={"page": 0, "page_size": 500}
        )
        data = response.json()
        assert data["page"] == 1
        assert data["page_size"] == 100
        assert data["total"] == 6
        assert [m["role"] for m in data["messages"]] == ["user", "ai"] * 3

        response = await client.get(
            f"/api/chat/sessions/{session_id}/messages",
            headers=auth_headers,
            params={"page": 2, "page_size": 0}
        )
        data = response.json()
        assert data["page_size"] == 20
        assert data["messages"] == []


class TestSendMessage:
    """Streaming send tests."""

    @pytest.mark.asyncio
    async def test_stream_body_and_persisted_answer(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)

        response = await _send(client, auth_headers, session_id, content="Say hello")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
        body, message_id = _split_marker(response.text, "$messageId$")
        assert body == "Hello world"
        assert message_id

        response = await client.get(f"/api/chat/sessions/{session_id}", headers=auth_headers)
        messages = response.json()["messages"]
        assert [(m["role"], m["content"]) for m in messages] == [("user", "Say hello"), ("ai", "Hello world")]
        assert messages[1]["message_id"] == message_id

    @pytest.mark.asyncio
    async def test_thinking_flag_reaches_provider(self, client, auth_headers, ai_service):
        session_id = await _create_session(client, auth_headers)

        await _send(client, auth_headers, session_id, content="Why?", thinking=True)

        assert ai_service.prompts == [("Why?", True)]

    @pytest.mark.asyncio
    async def test_empty_content(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)

        response = await _send(client, auth_headers, session_id, content="   ")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_session_moves_to_top_after_message(self, client, auth_headers):
        older = await _create_session(client, auth_headers, "older")
        await _create_session(client, auth_headers, "newer")

        await _send(client, auth_headers, older, content="Hi")

        response = await client.get("/api/chat/sessions", headers=auth_headers)
        items = response.json()["conversations"]
        assert items[0]["session_id"] == older
        assert items[0]["last_message"]["content"] == "Hello world"

    @pytest.mark.asyncio
    async def test_without_api_key_streams_diagnostic(self, client, auth_headers):
        from aichat.main import app
        from aichat.routers.chat import get_ai_service

        app.dependency_overrides[get_ai_service] = lambda: DeepSeekService(api_key="")
        session_id = await _create_session(client, auth_headers)

        response = await _send(client, auth_headers, session_id, content="Hi")

        body, _ = _split_marker(response.text, "$messageId$")
        assert body == NO_API_KEY_REPLY
        response = await client.get(f"/api/chat/sessions/{session_id}", headers=auth_headers)
        assert response.json()["messages"][1]["content"] == NO_API_KEY_REPLY


class TestRetryAndVersions:
    """Retry and active-version tests."""

    @pytest.mark.asyncio
    async def test_retry_twice_and_activate(self, client, auth_headers, ai_service):
        session_id = await _create_session(client, auth_headers)
        response = await _send(client, auth_headers, session_id, content="Hi")
        _, message_id = _split_marker(response.text, "$messageId$")

        ai_service.deltas = [StreamDelta(content="second")]
        response = await client.post("/api/chat/retry", headers=auth_headers, json={"message_id": message_id})
        assert response.status_code == 200
        assert response.text == "second\n\n$responseVersion$2"

        ai_service.deltas = [StreamDelta(content="third")]
        response = await _send(client, auth_headers, session_id, message_id=message_id)
        assert response.text == "third\n\n$responseVersion$3"
        assert ai_service.prompts[-1] == ("Hi", False)

        # Regenerated answers do not replace the displayed one
        response = await client.get(f"/api/chat/sessions/{session_id}", headers=auth_headers)
        assert response.json()["messages"][1]["content"] == "Hello world"

        response = await client.put("/api/chat/response/active", headers=auth_headers, json={
            "message_id": message_id,
            "version": 3
        })
        assert response.status_code == 200
        assert response.json()["is_active"] is True

        response = await client.get(f"/api/chat/sessions/{session_id}", headers=auth_headers)
        messages = response.json()["messages"]
        assert len(messages) == 2
        assert messages[1]["content"] == "third"
        assert messages[1]["version"] == 3
        assert [v["version"] for v in messages[1]["versions"]] == [1, 2, 3]
        assert [v["is_active"] for v in messages[1]["versions"]] == [False, False, True]

    @pytest.mark.asyncio
    async def test_retry_unknown_message(self, client, auth_headers):
        response = await client.post("/api/chat/retry", headers=auth_headers, json={"message_id": "missing"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_retry_with_unknown_message_id_in_session(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)

        response = await _send(client, auth_headers, session_id, content="Hi", message_id="missing")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_retry_foreign_message(self, client, login):
        alice = await login()
        bob = await login(username="bob", email="bob@example.com")
        session_id = await _create_session(client, alice)
        response = await _send(client, alice, session_id, content="Hi")
        _, message_id = _split_marker(response.text, "$messageId$")

        response = await client.post("/api/chat/retry", headers=bob, json={"message_id": message_id})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_activate_unknown_version(self, client, auth_headers):
        session_id = await _create_session(client, auth_headers)
        response = await _send(client, auth_headers, session_id, content="Hi")
        _, message_id = _split_marker(response.text, "$messageId$")

        response = await client.put("/api/chat/response/active", headers=auth_headers, json={
            "message_id": message_id,
            "version": 5
        })

        assert response.status_code == 404


class TestLegacyChat:
    """Single-shot chat and model listing tests."""

    @pytest.mark.asyncio
    async def test_single_shot_reply(self, client, ai_service):
        response = await client.post("/api/chat", json={"message": "Hi", "thinking": True})

        assert response.status_code == 200
        assert response.json() == {"reply": "Hello world"}
        assert ai_service.prompts == [("Hi", True)]

    @pytest.mark.asyncio
    async def test_single_shot_empty_message(self, client):
        response = await client.post("/api/chat", json={"message": ""})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_models(self, client, auth_headers):
        response = await client.get("/api/chat/models", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["models"][0]["id"] == "deepseek-chat"

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.json()["status"] == "healthy"
