"""
Chat routes with streaming support.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging

from ..database import get_db, get_session_factory
from ..exceptions import NotFoundError, UpstreamError, ValidationError
from ..models.chat import ROLE_USER
from ..models.user import User
from ..schemas.chat import (
    AnswerVersion,
    ChatRequest,
    ChatResponse,
    RetryRequest,
    SendMessageRequest,
    SetActiveVersionRequest
)
from ..services.chat_service import ChatService
from ..services.deepseek_service import DeepSeekService
from ..services.relay_service import STREAM_HEADERS, StreamRelay
from ..services.versioning_service import VersioningService
from ..utils.security import get_current_user


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def get_ai_service(request: Request) -> DeepSeekService:
    """AI adapter built once at startup."""
    return request.app.state.ai_service


def get_stream_relay(
    ai_service: DeepSeekService = Depends(get_ai_service),
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> StreamRelay:
    return StreamRelay(ai_service, session_factory)


@router.post("", response_model=ChatResponse)
async def chat(
    chat_request: ChatRequest,
    ai_service: DeepSeekService = Depends(get_ai_service)
):
    """Single-shot chat without a session."""
    if not chat_request.message.strip():
        raise ValidationError("Message cannot be empty")

    try:
        reply = await ai_service.completion(chat_request.message, chat_request.thinking)
    except UpstreamError as e:
        logger.error("Single-shot chat failed: %s", e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get AI reply"
        )

    return ChatResponse(reply=reply)


@router.get("/models")
async def list_models(
    current_user: User = Depends(get_current_user),
    ai_service: DeepSeekService = Depends(get_ai_service)
):
    """List available models from the configured API."""
    models = await ai_service.list_models()
    return {"models": models}


async def send_turn(
    session_id: str,
    message: SendMessageRequest,
    current_user: User,
    db: AsyncSession,
    relay: StreamRelay
) -> StreamingResponse:
    """
    Persist the user turn and stream the AI answer.

    Shared by the send and retry endpoints. With message_id set the call is
    a retry: no new user row is stored and the answer becomes the next
    version of that turn. A retry without content reuses the stored prompt.
    """
    chat_service = ChatService(db)
    await chat_service.get_owned_session(session_id, current_user.id)

    prompt = message.content
    if message.message_id and not prompt.strip():
        original = await chat_service.get_message(message.message_id, session_id=session_id, role=ROLE_USER)
        if original is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Original message not found"
            )
        prompt = original.content

    if not prompt.strip():
        raise ValidationError("Message content cannot be empty")

    try:
        ticket = await VersioningService(db).submit_turn(
            session_id,
            prompt,
            retry_of_message_id=message.message_id,
            user_id=current_user.id
        )
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )

    logger.info(
        "Streaming answer for message %s version %s in session %s",
        ticket.message_id, ticket.version, session_id
    )
    return StreamingResponse(
        relay.relay(ticket, prompt, message.thinking),
        media_type="text/event-stream",
        headers=STREAM_HEADERS
    )


@router.post("/sessions/{session_id}")
async def send_message(
    session_id: str,
    message: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    relay: StreamRelay = Depends(get_stream_relay)
):
    """Send a message into a session and stream the answer."""
    return await send_turn(session_id, message, current_user, db, relay)


@router.post("/retry")
async def retry_message(
    retry_request: RetryRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    relay: StreamRelay = Depends(get_stream_relay)
):
    """Generate another answer for an existing turn."""
    original = await ChatService(db).get_message(retry_request.message_id, role=ROLE_USER)
    if original is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Original message not found"
        )

    message = SendMessageRequest(
        content=original.content,
        thinking=retry_request.thinking,
        message_id=original.message_id
    )
    return await send_turn(original.session_id, message, current_user, db, relay)


@router.put("/response/active", response_model=AnswerVersion)
async def set_active_response(
    request: SetActiveVersionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Choose which answer version of a turn is displayed."""
    chat_service = ChatService(db)
    original = await chat_service.get_message(request.message_id)
    if original is None:
        raise NotFoundError("Message not found")
    await chat_service.get_owned_session(original.session_id, current_user.id)

    return await VersioningService(db).set_active_version(request.message_id, request.version)
