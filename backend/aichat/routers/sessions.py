"""
Chat session management routes.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.chat import (
    MessagePage,
    MessageResponse,
    SessionCreate,
    SessionCreated,
    SessionListResponse,
    SessionResponse,
    SessionUpdate,
    SessionWithMessages
)
from ..models.user import User
from ..services.chat_service import ChatService
from ..services.versioning_service import VersioningService
from ..utils.security import get_current_user


router = APIRouter(prefix="/api/chat/sessions", tags=["Sessions"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@router.post("", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a new chat session."""
    return await ChatService(db).create_session(current_user.id, session_data.title)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List all sessions of the current user."""
    sessions = await ChatService(db).list_sessions(current_user.id)
    return {"conversations": sessions, "total": len(sessions)}


@router.get("/{session_id}", response_model=SessionWithMessages)
async def get_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a session with its displayed turns."""
    session = await ChatService(db).get_owned_session(session_id, current_user.id)
    turns = await VersioningService(db).list_turns(session_id)

    return {
        "session_id": session.session_id,
        "title": session.title,
        "messages": turns
    }


@router.put("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: str,
    updates: SessionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Rename or pin a session."""
    chat_service = ChatService(db)
    session = await chat_service.get_owned_session(session_id, current_user.id)
    return await chat_service.update_session(session, title=updates.title, is_pinned=updates.is_pinned)


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a session with all its messages."""
    chat_service = ChatService(db)
    await chat_service.get_owned_session(session_id, current_user.id)
    await chat_service.delete_session(session_id)

    return {"message": "Chat session deleted"}


@router.get("/{session_id}/messages", response_model=MessagePage)
async def get_messages(
    session_id: str,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Paginated raw message history, oldest first."""
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    elif page_size > MAX_PAGE_SIZE:
        page_size = MAX_PAGE_SIZE

    chat_service = ChatService(db)
    await chat_service.get_owned_session(session_id, current_user.id)
    messages, total = await chat_service.get_messages_page(session_id, page, page_size)

    return {
        "messages": [MessageResponse.model_validate(msg) for msg in messages],
        "total": total,
        "page": page,
        "page_size": page_size
    }
