"""
User, UserSession and UserSettings database models.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, SmallInteger
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


LOGIN_TYPE_EMAIL = 1
LOGIN_TYPE_PHONE = 2


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=True)
    phone = Column(String(20), unique=True, index=True, nullable=True)
    avatar = Column(String(500), nullable=True)
    status = Column(SmallInteger, default=1)  # 1 active, 0 disabled
    login_type = Column(SmallInteger, nullable=False, default=LOGIN_TYPE_EMAIL)
    last_login_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    settings = relationship("UserSettings", back_populates="user", uselist=False, cascade="all, delete-orphan")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == 1


class UserSession(Base):
    """Issued login token; a token is only honoured while its row exists."""

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(512), unique=True, nullable=False)
    expire_time = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="sessions")


class UserSettings(Base):
    """User preferences."""

    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # UI Preferences
    theme = Column(String(20), default="dark")
    language = Column(String(20), default="zh-CN")
    notification_enabled = Column(Boolean, default=True)

    # Chat Settings
    prompt = Column(Text, nullable=True)
    rules = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="settings")
