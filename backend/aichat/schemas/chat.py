"""
Chat session and message Pydantic schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


# ============= Session Schemas =============

class SessionCreate(BaseModel):
    """Schema for creating a chat session."""
    title: Optional[str] = Field("New Chat", max_length=100)


class SessionUpdate(BaseModel):
    """Schema for updating a chat session."""
    title: Optional[str] = Field(None, max_length=100)
    is_pinned: Optional[bool] = None


class SessionCreated(BaseModel):
    """Response for a newly created session."""
    id: int
    session_id: str
    title: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionResponse(SessionCreated):
    """Chat session response schema."""
    user_id: int
    is_pinned: bool
    updated_at: Optional[datetime] = None


class LastMessage(BaseModel):
    """Preview of the newest message in a session."""
    role: str
    content: str
    created_at: Optional[datetime] = None


class SessionListItem(SessionResponse):
    """Session list item with message statistics."""
    message_count: int = 0
    last_message: Optional[LastMessage] = None


class SessionListResponse(BaseModel):
    """Schema for the session list."""
    conversations: List[SessionListItem] = []
    total: int


# ============= Message Schemas =============

class SendMessageRequest(BaseModel):
    """Schema for sending a message into a session."""
    content: str = ""
    thinking: bool = False  # deep thinking uses the reasoner model
    message_id: Optional[str] = None  # set to retry an existing turn


class RetryRequest(BaseModel):
    """Schema for regenerating the answer of a turn."""
    message_id: str
    thinking: bool = False


class SetActiveVersionRequest(BaseModel):
    """Schema for switching the displayed answer version."""
    message_id: str
    version: int = Field(..., ge=1)


class AnswerVersion(BaseModel):
    """
    One AI answer for a turn.

    Version 1 is the original answer stored with the turn, later versions
    are regenerated answers. Both are read through this one shape.
    """
    message_id: str
    session_id: str
    version: int
    content: str
    think_content: str = ""
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_original(self) -> bool:
        return self.version == 1


class MessageResponse(BaseModel):
    """Stored chat message row."""
    id: int
    message_id: str
    session_id: str
    role: str
    content: str
    think_content: str = ""
    version: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TurnResponse(BaseModel):
    """Displayed message; AI turns carry their version history."""
    message_id: str
    session_id: str
    role: str
    content: str
    think_content: str = ""
    version: int
    is_active: bool = True
    created_at: Optional[datetime] = None
    versions: List[AnswerVersion] = []


class SessionWithMessages(BaseModel):
    """Session with its displayed turns."""
    session_id: str
    title: str
    messages: List[TurnResponse] = []


class MessagePage(BaseModel):
    """Paginated message history."""
    messages: List[MessageResponse] = []
    total: int
    page: int
    page_size: int


# ============= Legacy single-shot chat =============

class ChatRequest(BaseModel):
    """Schema for the single-shot chat endpoint."""
    message: str
    thinking: bool = False


class ChatResponse(BaseModel):
    """Single-shot chat reply."""
    reply: str
