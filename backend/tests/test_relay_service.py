"""
Tests for the streaming relay.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from aichat.exceptions import PersistenceError, UpstreamError
from aichat.services.chat_service import ChatService
from aichat.services.deepseek_service import StreamDelta
from aichat.services import relay_service
from aichat.services.relay_service import StreamRelay
from aichat.services.versioning_service import VersioningService

from conftest import FakeAIService


async def _drain(generator):
    return [chunk async for chunk in generator]


class TestStreamRelay:
    """Relay forwarding and persistence tests."""

    @pytest.mark.asyncio
    async def test_forwards_chunks_then_marker(self, db, chat_session, session_factory):
        ticket = await VersioningService(db).submit_turn(chat_session.session_id, "Hi")
        relay = StreamRelay(FakeAIService(), session_factory)

        chunks = await _drain(relay.relay(ticket, "Hi"))

        assert chunks == ["Hello ", "world", f"\n\n$messageId${ticket.message_id}"]
        answer = await ChatService(db).get_ai_message(ticket.message_id)
        assert answer.content == "Hello world"
        assert answer.is_active is True

    @pytest.mark.asyncio
    async def test_thinking_is_stored_not_streamed(self, db, chat_session, session_factory):
        ai_service = FakeAIService([
            StreamDelta(thinking="Let me see. "),
            StreamDelta(thinking="Ok."),
            StreamDelta(content="42")
        ])
        ticket = await VersioningService(db).submit_turn(chat_session.session_id, "?")

        chunks = await _drain(StreamRelay(ai_service, session_factory).relay(ticket, "?", True))

        assert "".join(chunks).startswith("42\n\n$messageId$")
        assert ai_service.prompts == [("?", True)]
        answer = await ChatService(db).get_ai_message(ticket.message_id)
        assert answer.think_content == "Let me see. Ok."

    @pytest.mark.asyncio
    async def test_retry_marker_and_inactive_version(self, db, chat_session, session_factory):
        versioning = VersioningService(db)
        turn = await versioning.submit_turn(chat_session.session_id, "Hi")
        await versioning.record_answer(turn.message_id, chat_session.session_id, 1, "first")
        retry = await versioning.submit_turn(chat_session.session_id, "Hi", retry_of_message_id=turn.message_id)

        chunks = await _drain(StreamRelay(FakeAIService(), session_factory).relay(retry, "Hi"))

        assert chunks[-1] == "\n\n$responseVersion$2"
        versions = await versioning.list_versions(turn.message_id)
        assert [(v.version, v.content, v.is_active) for v in versions] == [
            (1, "first", True),
            (2, "Hello world", False)
        ]

    @pytest.mark.asyncio
    async def test_upstream_error_aborts_without_marker(self, db, chat_session, session_factory):
        ai_service = FakeAIService([StreamDelta(content="partial")], error=UpstreamError("boom", status_code=502))
        ticket = await VersioningService(db).submit_turn(chat_session.session_id, "Hi")

        chunks = await _drain(StreamRelay(ai_service, session_factory).relay(ticket, "Hi"))

        assert chunks == ["partial"]
        assert await ChatService(db).get_ai_message(ticket.message_id) is None

    @pytest.mark.asyncio
    async def test_persistence_failure_still_serves(self, db, chat_session, session_factory):
        ticket = await VersioningService(db).submit_turn(chat_session.session_id, "Hi")
        relay = StreamRelay(FakeAIService(), session_factory)

        with patch(
            "aichat.services.relay_service.VersioningService.record_answer",
            AsyncMock(side_effect=PersistenceError("Failed to save message"))
        ):
            chunks = await _drain(relay.relay(ticket, "Hi"))

        assert "".join(chunks) == f"Hello world\n\n$messageId${ticket.message_id}"

    @pytest.mark.asyncio
    async def test_client_disconnect_stores_partial_answer(self, db, chat_session, session_factory):
        ticket = await VersioningService(db).submit_turn(chat_session.session_id, "Hi")
        stream = StreamRelay(FakeAIService(), session_factory).relay(ticket, "Hi")

        assert await stream.__anext__() == "Hello "
        await stream.aclose()

        answer = await ChatService(db).get_ai_message(ticket.message_id)
        assert answer.content == "Hello "

    @pytest.mark.asyncio
    async def test_cancelled_stream_stores_partial_answer(self, db, chat_session, session_factory):
        class StalledAIService(FakeAIService):
            async def stream_completion(self, prompt, deep_thinking=False):
                yield StreamDelta(content="Hello ")
                await asyncio.sleep(3600)
                yield StreamDelta(content="never sent")

        ticket = await VersioningService(db).submit_turn(chat_session.session_id, "Hi")
        relay = StreamRelay(StalledAIService(), session_factory)
        received = []
        first_chunk = asyncio.Event()

        async def consume():
            async for chunk in relay.relay(ticket, "Hi"):
                received.append(chunk)
                first_chunk.set()

        task = asyncio.create_task(consume())
        await first_chunk.wait()
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert received == ["Hello "]
        assert not relay_service._pending_saves
        answer = await ChatService(db).get_ai_message(ticket.message_id)
        assert answer.content == "Hello "
