"""
Message versioning: new turns, retries and the active answer of each turn.

A turn is a user prompt plus one answer slot, both keyed by the same
message_id. The original answer (version 1) is stored next to the prompt in
chat_messages; every retry adds an ai_responses row with the next version.
Exactly one answer per turn is active at a time and only
set_active_version() moves that flag.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError, PersistenceError
from ..models.chat import AIResponse, ChatMessage, ROLE_AI, ROLE_USER
from ..schemas.chat import AnswerVersion, TurnResponse
from .chat_service import ChatService


logger = logging.getLogger(__name__)

MESSAGE_ID_MARKER = "$messageId$"
RESPONSE_VERSION_MARKER = "$responseVersion$"


@dataclass(frozen=True)
class TurnTicket:
    """Resolved identity of the answer about to be generated."""
    session_id: str
    message_id: str
    version: int

    @property
    def is_retry(self) -> bool:
        return self.version > 1

    @property
    def marker(self) -> str:
        """Out-of-band trailer written after the streamed answer."""
        if self.is_retry:
            return f"\n\n{RESPONSE_VERSION_MARKER}{self.version}"
        return f"\n\n{MESSAGE_ID_MARKER}{self.message_id}"


class VersioningService:
    """Decides turn/retry semantics and keeps one active answer per turn."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.chat = ChatService(db)

    async def submit_turn(
        self,
        session_id: str,
        content: str,
        retry_of_message_id: Optional[str] = None,
        user_id: Optional[int] = None
    ) -> TurnTicket:
        """
        Register a user turn or resolve the version of a retry.

        Args:
            session_id: Session the turn belongs to
            content: User prompt, stored only for new turns
            retry_of_message_id: Existing turn to regenerate, if any
            user_id: Author of a new turn

        Returns:
            TurnTicket with the message_id and the version to generate
        """
        if not retry_of_message_id:
            message_id = str(uuid.uuid4())
            await self.chat.save_message(ChatMessage(
                session_id=session_id,
                user_id=user_id,
                role=ROLE_USER,
                message_id=message_id,
                content=content,
                think_content="",
                version=1,
                is_active=True
            ))
            return TurnTicket(session_id=session_id, message_id=message_id, version=1)

        original = await self.chat.get_message(retry_of_message_id, session_id=session_id)
        if original is None:
            raise NotFoundError("Original message not found")

        # The original answer is version 1, whether or not it was stored
        version = await self.chat.count_ai_responses(retry_of_message_id) + 2
        return TurnTicket(session_id=session_id, message_id=retry_of_message_id, version=version)

    async def record_answer(
        self,
        message_id: str,
        session_id: str,
        version: int,
        content: str,
        thinking: str = ""
    ) -> AnswerVersion:
        """Store a finished answer. Regenerated answers start inactive."""
        if version == 1:
            row = await self.chat.save_message(ChatMessage(
                session_id=session_id,
                user_id=None,
                role=ROLE_AI,
                message_id=message_id,
                content=content,
                think_content=thinking or "",
                version=1,
                is_active=True
            ))
        else:
            row = await self.chat.save_ai_response(AIResponse(
                message_id=message_id,
                session_id=session_id,
                content=content,
                think_content=thinking or "",
                version=version,
                is_active=False
            ))
        await self.db.refresh(row)
        return AnswerVersion.model_validate(row)

    async def list_versions(self, message_id: str) -> List[AnswerVersion]:
        """Every stored answer of a turn, ordered by version."""
        versions = []
        original = await self.chat.get_ai_message(message_id)
        if original is not None:
            versions.append(AnswerVersion.model_validate(original))
        for response in await self.chat.list_ai_responses(message_id):
            versions.append(AnswerVersion.model_validate(response))
        return versions

    async def set_active_version(self, message_id: str, version: int) -> AnswerVersion:
        """
        Make one answer version the displayed one.

        Clears the flag on every answer of the turn and sets it on the
        requested version in a single transaction.
        """
        if version == 1:
            target = await self.chat.get_ai_message(message_id)
        else:
            target = next(
                (r for r in await self.chat.list_ai_responses(message_id) if r.version == version),
                None
            )
        if target is None:
            raise NotFoundError(f"Version {version} not found for message {message_id}")

        try:
            await self.db.execute(
                update(ChatMessage)
                .where(ChatMessage.message_id == message_id, ChatMessage.role == ROLE_AI)
                .values(is_active=False)
            )
            await self.db.execute(
                update(AIResponse)
                .where(AIResponse.message_id == message_id)
                .values(is_active=False)
            )
            model = ChatMessage if version == 1 else AIResponse
            await self.db.execute(
                update(model)
                .where(model.id == target.id)
                .values(is_active=True)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to set active version %s of %s: %s", version, message_id, e)
            raise PersistenceError("Failed to set active version") from e

        await self.db.refresh(target)
        return AnswerVersion.model_validate(target)

    async def list_turns(self, session_id: str) -> List[TurnResponse]:
        """
        Displayed conversation: each user turn followed by its active answer.

        Raises:
            NotFoundError: if the session does not exist
        """
        if await self.chat.get_session(session_id) is None:
            raise NotFoundError("Chat session not found")

        rows = await self.chat.list_messages(session_id)

        history: Dict[str, List[AnswerVersion]] = {}
        for row in rows:
            if row.role == ROLE_AI:
                history.setdefault(row.message_id, []).append(AnswerVersion.model_validate(row))
        for response in await self.chat.list_session_ai_responses(session_id):
            history.setdefault(response.message_id, []).append(AnswerVersion.model_validate(response))

        turns = []
        for row in rows:
            if row.role != ROLE_USER:
                continue
            turns.append(TurnResponse(
                message_id=row.message_id,
                session_id=row.session_id,
                role=row.role,
                content=row.content,
                think_content=row.think_content or "",
                version=row.version,
                is_active=row.is_active,
                created_at=row.created_at
            ))

            versions = sorted(history.get(row.message_id, []), key=lambda v: v.version)
            active = next((v for v in versions if v.is_active), None)
            if active is None:
                continue
            turns.append(TurnResponse(
                message_id=active.message_id,
                session_id=active.session_id,
                role=ROLE_AI,
                content=active.content,
                think_content=active.think_content,
                version=active.version,
                is_active=True,
                created_at=active.created_at,
                versions=versions
            ))
        return turns
