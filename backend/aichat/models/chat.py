"""
Chat session, message and alternate answer models.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


ROLE_USER = "user"
ROLE_AI = "ai"


class ChatSession(Base):
    """Chat session owned by one user."""

    __tablename__ = "chat_sessions"

    # Composite index for faster session listing by user ordered by recency
    __table_args__ = (
        Index("ix_chat_sessions_user_updated", "user_id", "updated_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(50), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(100), nullable=False, default="New Chat")
    is_pinned = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    messages = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.created_at"
    )
    responses = relationship(
        "AIResponse",
        cascade="all, delete-orphan",
        passive_deletes=True
    )


class ChatMessage(Base):
    """
    One half of a turn.

    The user prompt and its original AI answer (version 1) share a message_id.
    """

    __tablename__ = "chat_messages"

    __table_args__ = (
        Index("ix_chat_messages_session_created", "session_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        String(50),
        ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(Integer, nullable=True)  # null for AI rows
    role = Column(String(20), nullable=False)  # "user" or "ai"
    message_id = Column(String(50), nullable=False, index=True)

    content = Column(Text, nullable=False, default="")
    think_content = Column(Text, nullable=False, default="")

    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("ChatSession", back_populates="messages")


class AIResponse(Base):
    """Regenerated answer (version 2..N) for an existing turn."""

    __tablename__ = "ai_responses"

    __table_args__ = (
        UniqueConstraint("message_id", "version", name="uq_ai_responses_message_version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(String(50), nullable=False, index=True)
    session_id = Column(
        String(50),
        ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    content = Column(Text, nullable=False, default="")
    think_content = Column(Text, nullable=False, default="")

    version = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
