"""
User-related Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime


# ============= Auth Schemas =============

class UserRegister(BaseModel):
    """Schema for user registration."""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    login_type: int = Field(..., ge=1, le=2)  # 1: email, 2: phone


class UserLogin(BaseModel):
    """Schema for user login."""
    account: str  # email or phone, depending on login_type
    password: str
    login_type: int = Field(..., ge=1, le=2)


class TokenData(BaseModel):
    """Token payload data."""
    user_id: Optional[int] = None


class PasswordChange(BaseModel):
    """Schema for password change."""
    old_password: str
    new_password: str = Field(..., min_length=6, max_length=100)


class ProfileUpdate(BaseModel):
    """Schema for profile update."""
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    avatar: Optional[str] = Field(None, max_length=500)


# ============= User Response Schemas =============

class UserResponse(BaseModel):
    """User response schema."""
    id: int
    username: str
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    status: int
    login_type: int
    last_login_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    """Login response with the bearer token."""
    token: str
    user: UserResponse


# ============= Settings Schemas =============

class UserSettingsUpdate(BaseModel):
    """Schema for updating settings."""
    theme: Optional[str] = Field(None, pattern=r"^(dark|light)$")
    language: Optional[str] = None
    notification_enabled: Optional[bool] = None
    prompt: Optional[str] = None
    rules: Optional[str] = None


class UserSettingsResponse(BaseModel):
    """Settings response schema."""
    id: int
    user_id: int
    theme: str
    language: str
    notification_enabled: bool
    prompt: Optional[str] = None
    rules: Optional[str] = None

    class Config:
        from_attributes = True
