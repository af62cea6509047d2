"""
Authentication service with user management.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import DuplicateAccountError, InvalidCredentialsError, ValidationError
from ..models.user import User, UserSession, UserSettings, LOGIN_TYPE_EMAIL, LOGIN_TYPE_PHONE
from ..schemas.user import UserRegister, UserLogin
from ..utils.security import get_password_hash, verify_password, create_access_token


logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication and user management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, user_data: UserRegister) -> User:
        """Register a new user with default settings."""
        if user_data.login_type == LOGIN_TYPE_EMAIL and not user_data.email:
            raise ValidationError("Email is required for the email login type")
        if user_data.login_type == LOGIN_TYPE_PHONE and not user_data.phone:
            raise ValidationError("Phone is required for the phone login type")

        # Check if username exists
        result = await self.db.execute(
            select(User).filter(User.username == user_data.username)
        )
        if result.scalar_one_or_none():
            raise DuplicateAccountError("Username already exists")

        if user_data.login_type == LOGIN_TYPE_EMAIL:
            result = await self.db.execute(
                select(User).filter(User.email == user_data.email)
            )
            if result.scalar_one_or_none():
                raise DuplicateAccountError("Email already exists")
        else:
            result = await self.db.execute(
                select(User).filter(User.phone == user_data.phone)
            )
            if result.scalar_one_or_none():
                raise DuplicateAccountError("Phone number already exists")

        # Create user
        user = User(
            username=user_data.username,
            hashed_password=get_password_hash(user_data.password),
            email=user_data.email if user_data.login_type == LOGIN_TYPE_EMAIL else None,
            phone=user_data.phone if user_data.login_type == LOGIN_TYPE_PHONE else None,
            login_type=user_data.login_type,
            status=1
        )
        self.db.add(user)
        await self.db.flush()

        # Create default settings in the same transaction
        self.db.add(UserSettings(user_id=user.id))

        await self.db.commit()
        await self.db.refresh(user)

        logger.info("Registered user %s", user.id)
        return user

    async def authenticate(self, login_data: UserLogin) -> Tuple[str, User]:
        """Log in by email or phone and open a server-side session."""
        account_column = User.email if login_data.login_type == LOGIN_TYPE_EMAIL else User.phone
        result = await self.db.execute(
            select(User).filter(account_column == login_data.account, User.status == 1)
        )
        user = result.scalar_one_or_none()

        if not user:
            raise InvalidCredentialsError("User does not exist")

        if not verify_password(login_data.password, user.hashed_password):
            raise InvalidCredentialsError("Incorrect account or password")

        token, expire = create_access_token(user.id)
        self.db.add(UserSession(user_id=user.id, token=token, expire_time=expire))
        user.last_login_time = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(user)

        return token, user

    async def logout(self, token: str) -> None:
        """Invalidate a token by dropping its session row."""
        await self.db.execute(delete(UserSession).where(UserSession.token == token))
        await self.db.commit()

    async def cleanup_expired_tokens(self) -> int:
        """Drop expired session rows."""
        result = await self.db.execute(
            delete(UserSession).where(UserSession.expire_time <= datetime.now(timezone.utc))
        )
        await self.db.commit()
        return result.rowcount or 0

    async def update_profile(self, user: User, username: Optional[str] = None, avatar: Optional[str] = None) -> User:
        """Update username and avatar."""
        if username:
            result = await self.db.execute(
                select(User).filter(User.username == username, User.id != user.id)
            )
            if result.scalar_one_or_none():
                raise DuplicateAccountError("Username already exists")
            user.username = username

        if avatar:
            user.avatar = avatar

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def change_password(self, user: User, old_password: str, new_password: str) -> None:
        """Change user password."""
        if not verify_password(old_password, user.hashed_password):
            raise InvalidCredentialsError("Current password is incorrect")

        user.hashed_password = get_password_hash(new_password)
        await self.db.commit()

    async def get_user_settings(self, user_id: int) -> UserSettings:
        """Get user settings, creating defaults when missing."""
        result = await self.db.execute(
            select(UserSettings).filter(UserSettings.user_id == user_id)
        )
        user_settings = result.scalar_one_or_none()

        if not user_settings:
            user_settings = UserSettings(user_id=user_id)
            self.db.add(user_settings)
            await self.db.commit()
            await self.db.refresh(user_settings)

        return user_settings

    async def update_user_settings(self, user_id: int, updates: dict) -> UserSettings:
        """Update user settings."""
        user_settings = await self.get_user_settings(user_id)

        for key, value in updates.items():
            if hasattr(user_settings, key) and value is not None:
                setattr(user_settings, key, value)

        await self.db.commit()
        await self.db.refresh(user_settings)

        return user_settings
