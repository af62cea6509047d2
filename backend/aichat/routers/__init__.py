"""
API Routers package.
"""

from .auth import router as auth_router
from .chat import router as chat_router
from .sessions import router as sessions_router
from .user import router as user_router

__all__ = [
    "auth_router",
    "chat_router",
    "sessions_router",
    "user_router"
]
