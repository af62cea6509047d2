"""
User profile and settings routes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.user import (
    PasswordChange,
    ProfileUpdate,
    UserResponse,
    UserSettingsResponse,
    UserSettingsUpdate
)
from ..models.user import User
from ..services.auth_service import AuthService
from ..utils.security import get_current_user


router = APIRouter(prefix="/api/user", tags=["User"])


@router.get("/profile", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get the current user's profile."""
    return current_user


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    updates: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update username and avatar."""
    return await AuthService(db).update_profile(
        current_user,
        username=updates.username,
        avatar=updates.avatar
    )


@router.put("/password")
async def change_password(
    password_data: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Change user password."""
    await AuthService(db).change_password(
        current_user,
        password_data.old_password,
        password_data.new_password
    )
    return {"message": "Password changed successfully"}


@router.get("/settings", response_model=UserSettingsResponse)
async def get_settings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get current user settings."""
    return await AuthService(db).get_user_settings(current_user.id)


@router.put("/settings", response_model=UserSettingsResponse)
async def update_settings(
    updates: UserSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update user settings."""
    return await AuthService(db).update_user_settings(
        current_user.id,
        updates.model_dump(exclude_unset=True)
    )
