"""
Streaming relay between the AI provider and the client response.
"""

import asyncio
import logging
from typing import AsyncGenerator, List, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..exceptions import PersistenceError, UpstreamError
from .chat_service import ChatService
from .deepseek_service import DeepSeekService
from .versioning_service import TurnTicket, VersioningService


logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no"
}

# Strong references to saves running after a client disconnect
_pending_saves: Set[asyncio.Task] = set()


class StreamedAnswer:
    """Accumulates the streamed answer for persistence."""

    def __init__(self):
        self._content: List[str] = []
        self._thinking: List[str] = []

    def add(self, content: str, thinking: str) -> None:
        if content:
            self._content.append(content)
        if thinking:
            self._thinking.append(thinking)

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def thinking(self) -> str:
        return "".join(self._thinking)


class StreamRelay:
    """Forwards answer deltas to the client and stores the full answer afterwards."""

    def __init__(self, ai_service: DeepSeekService, session_factory: async_sessionmaker):
        self.ai_service = ai_service
        self.session_factory = session_factory

    async def relay(
        self,
        ticket: TurnTicket,
        prompt: str,
        deep_thinking: bool = False
    ) -> AsyncGenerator[str, None]:
        """
        Body iterator for a StreamingResponse.

        Yields each text delta as soon as it arrives, then the turn marker.
        Reasoning text is stored but never streamed. If the client goes away
        the partial answer is still stored.
        """
        answer = StreamedAnswer()
        try:
            async for delta in self.ai_service.stream_completion(prompt, deep_thinking):
                answer.add(delta.content, delta.thinking)
                if delta.content:
                    yield delta.content
        except UpstreamError as e:
            logger.error("AI stream for message %s aborted: %s", ticket.message_id, e.message)
            return
        except (asyncio.CancelledError, GeneratorExit):
            logger.info("Client left during message %s, storing partial answer", ticket.message_id)
            task = asyncio.ensure_future(self.persist(ticket, answer))
            _pending_saves.add(task)
            task.add_done_callback(_pending_saves.discard)
            await asyncio.shield(task)
            raise

        await self.persist(ticket, answer)
        yield ticket.marker

    async def persist(self, ticket: TurnTicket, answer: StreamedAnswer) -> None:
        """Store the answer and touch the session; failures are only logged."""
        async with self.session_factory() as db:
            try:
                await VersioningService(db).record_answer(
                    ticket.message_id,
                    ticket.session_id,
                    ticket.version,
                    answer.content,
                    answer.thinking
                )
            except (PersistenceError, SQLAlchemyError):
                logger.exception("Failed to save AI answer for message %s", ticket.message_id)
                await db.rollback()

            try:
                await ChatService(db).touch_session(ticket.session_id)
            except (PersistenceError, SQLAlchemyError):
                logger.exception("Failed to update session %s", ticket.session_id)
