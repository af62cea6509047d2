"""
aiChat - Main FastAPI Application
Chat backend with session history, answer versions and streaming replies.
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .database import AsyncSessionLocal, init_db, close_db
from .exceptions import (
    AIChatError,
    DuplicateAccountError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    PersistenceError,
    UpstreamError,
    ValidationError
)
from .routers import (
    auth_router,
    chat_router,
    sessions_router,
    user_router
)
from .services.auth_service import AuthService
from .services.deepseek_service import DeepSeekService


logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    await init_db()
    async with AsyncSessionLocal() as db:
        removed = await AuthService(db).cleanup_expired_tokens()
    if removed:
        logger.info("Removed %d expired login sessions", removed)
    app.state.ai_service = DeepSeekService.from_settings(settings)
    if not settings.DEEPSEEK_API_KEY:
        logger.warning("DEEPSEEK_API_KEY is not set, chat replies will be diagnostic text")
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)

    yield

    # Shutdown
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Chat backend with streaming DeepSeek replies and answer versions",
    lifespan=lifespan
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Map service errors to HTTP responses; order matters only for subclasses
ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (DuplicateAccountError, status.HTTP_409_CONFLICT),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (UpstreamError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


@app.exception_handler(AIChatError)
async def aichat_error_handler(request: Request, exc: AIChatError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# Include routers
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(sessions_router)
app.include_router(user_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "endpoints": {
            "auth": "/api/auth",
            "user": "/api/user",
            "chat": "/api/chat",
            "sessions": "/api/chat/sessions"
        }
    }
