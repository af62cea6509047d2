"""
Services package.
"""

from .auth_service import AuthService
from .chat_service import ChatService
from .versioning_service import VersioningService, TurnTicket
from .deepseek_service import DeepSeekService, StreamDelta
from .relay_service import StreamRelay

__all__ = [
    "AuthService",
    "ChatService",
    "VersioningService",
    "TurnTicket",
    "DeepSeekService",
    "StreamDelta",
    "StreamRelay"
]
