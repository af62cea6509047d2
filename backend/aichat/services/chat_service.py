"""
Chat persistence service: sessions, messages and alternate answers.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ForbiddenError, PersistenceError
from ..models.chat import AIResponse, ChatMessage, ChatSession, ROLE_AI


logger = logging.getLogger(__name__)

LAST_MESSAGE_PREVIEW_CHARS = 100


class ChatService:
    """CRUD over chat sessions, their messages and regenerated answers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to %s: %s", action, e)
            raise PersistenceError(f"Failed to {action}") from e

    # ============= Sessions =============

    async def create_session(self, user_id: int, title: Optional[str] = None) -> ChatSession:
        """Create a session with a fresh client-visible identifier."""
        session = ChatSession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            title=title or "New Chat",
            is_pinned=False
        )
        self.db.add(session)
        await self._commit("create chat session")
        await self.db.refresh(session)
        return session

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        result = await self.db.execute(
            select(ChatSession).filter(ChatSession.session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_owned_session(self, session_id: str, user_id: int) -> ChatSession:
        """
        Get a session owned by the given user.

        Missing and foreign sessions raise the same error so callers cannot
        probe for sessions of other users.
        """
        session = await self.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise ForbiddenError("No access to this chat session")
        return session

    async def list_sessions(self, user_id: int) -> List[Dict]:
        """List a user's sessions, pinned first, then most recently updated."""
        message_count = func.count(ChatMessage.id).label("message_count")
        result = await self.db.execute(
            select(ChatSession, message_count)
            .outerjoin(ChatMessage, ChatMessage.session_id == ChatSession.session_id)
            .filter(ChatSession.user_id == user_id)
            .group_by(ChatSession.id)
            .order_by(desc(ChatSession.is_pinned), desc(ChatSession.updated_at), desc(ChatSession.id))
        )
        rows = result.all()

        last_messages = await self._last_messages([session.session_id for session, _ in rows])

        sessions = []
        for session, count in rows:
            last = last_messages.get(session.session_id)
            sessions.append({
                "id": session.id,
                "session_id": session.session_id,
                "user_id": session.user_id,
                "title": session.title,
                "is_pinned": session.is_pinned,
                "created_at": session.created_at,
                "updated_at": session.updated_at,
                "message_count": count,
                "last_message": {
                    "role": last.role,
                    "content": (last.content or "")[:LAST_MESSAGE_PREVIEW_CHARS],
                    "created_at": last.created_at
                } if last else None
            })
        return sessions

    async def _last_messages(self, session_ids: List[str]) -> Dict[str, ChatMessage]:
        if not session_ids:
            return {}
        newest = (
            select(func.max(ChatMessage.id))
            .filter(ChatMessage.session_id.in_(session_ids))
            .group_by(ChatMessage.session_id)
        )
        result = await self.db.execute(
            select(ChatMessage).filter(ChatMessage.id.in_(newest))
        )
        return {message.session_id: message for message in result.scalars().all()}

    async def update_session(
        self,
        session: ChatSession,
        title: Optional[str] = None,
        is_pinned: Optional[bool] = None
    ) -> ChatSession:
        """Partial update; empty titles are ignored."""
        if title:
            session.title = title
        if is_pinned is not None:
            session.is_pinned = is_pinned
        session.updated_at = datetime.now(timezone.utc)

        await self._commit("update chat session")
        await self.db.refresh(session)
        return session

    async def touch_session(self, session_id: str) -> None:
        """Bump the update timestamp after a new message."""
        await self.db.execute(
            update(ChatSession)
            .where(ChatSession.session_id == session_id)
            .values(updated_at=datetime.now(timezone.utc))
        )
        await self._commit("update chat session time")

    async def delete_session(self, session_id: str) -> None:
        """Delete a session with all its messages and answers, all or nothing."""
        try:
            await self.db.execute(delete(AIResponse).where(AIResponse.session_id == session_id))
            await self.db.execute(delete(ChatMessage).where(ChatMessage.session_id == session_id))
            await self.db.execute(delete(ChatSession).where(ChatSession.session_id == session_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to delete chat session %s: %s", session_id, e)
            raise PersistenceError("Failed to delete chat session") from e

    # ============= Messages =============

    async def save_message(self, message: ChatMessage) -> ChatMessage:
        self.db.add(message)
        await self._commit("save message")
        return message

    async def save_ai_response(self, response: AIResponse) -> AIResponse:
        self.db.add(response)
        await self._commit("save AI response")
        return response

    async def get_message(
        self,
        message_id: str,
        session_id: Optional[str] = None,
        role: Optional[str] = None
    ) -> Optional[ChatMessage]:
        """Get the first row of a turn, optionally narrowed to a session or role."""
        query = select(ChatMessage).filter(ChatMessage.message_id == message_id)
        if session_id is not None:
            query = query.filter(ChatMessage.session_id == session_id)
        if role is not None:
            query = query.filter(ChatMessage.role == role)
        result = await self.db.execute(query.order_by(ChatMessage.id).limit(1))
        return result.scalar_one_or_none()

    async def get_ai_message(self, message_id: str) -> Optional[ChatMessage]:
        return await self.get_message(message_id, role=ROLE_AI)

    async def list_messages(self, session_id: str) -> List[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessage)
            .filter(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        )
        return list(result.scalars().all())

    async def get_messages_page(self, session_id: str, page: int, page_size: int) -> Tuple[List[ChatMessage], int]:
        """Stored rows of a session, oldest first, with the total count."""
        total = await self.db.scalar(
            select(func.count(ChatMessage.id)).filter(ChatMessage.session_id == session_id)
        )

        result = await self.db.execute(
            select(ChatMessage)
            .filter(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    # ============= Alternate answers =============

    async def list_ai_responses(self, message_id: str) -> List[AIResponse]:
        result = await self.db.execute(
            select(AIResponse)
            .filter(AIResponse.message_id == message_id)
            .order_by(AIResponse.version)
        )
        return list(result.scalars().all())

    async def list_session_ai_responses(self, session_id: str) -> List[AIResponse]:
        result = await self.db.execute(
            select(AIResponse)
            .filter(AIResponse.session_id == session_id)
            .order_by(AIResponse.message_id, AIResponse.version)
        )
        return list(result.scalars().all())

    async def count_ai_responses(self, message_id: str) -> int:
        count = await self.db.scalar(
            select(func.count(AIResponse.id)).filter(AIResponse.message_id == message_id)
        )
        return count or 0
