"""
Database models package.
"""

from .user import User, UserSession, UserSettings
from .chat import ChatSession, ChatMessage, AIResponse

__all__ = ["User", "UserSession", "UserSettings", "ChatSession", "ChatMessage", "AIResponse"]
