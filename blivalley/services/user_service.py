"""
User Service - Registration, sign-in and preferences.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from blivalley.domain.errors import (
    AuthenticationError, ConflictError, NotFoundError, ValidationFailed,
)
from blivalley.domain.models import SaveLocation, Theme, User, UserSettings
from blivalley.infra.repository import UserRepository, unit_of_work
from blivalley.infra.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# 8+ chars from letters, digits and @$!%*?&, with one of each class
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)
PASSWORD_RULES = (
    "Password must be at least 8 characters long and contain at least one uppercase "
    "letter, one lowercase letter, one number, and one special character"
)


class SessionCaptureUpdate(BaseModel):
    enabled: Optional[bool] = None
    capture_apps: Optional[bool] = None
    capture_browsers: Optional[bool] = None
    save_location: Optional[SaveLocation] = None


class SettingsUpdate(BaseModel):
    theme: Optional[Theme] = None
    notifications: Optional[bool] = None
    session_capture: Optional[SessionCaptureUpdate] = None


class ProfileUpdate(BaseModel):
    """Partial update of the profile and nested settings"""
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    settings: Optional[SettingsUpdate] = None


def _merge(target: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value
    return target


def profile_view(user: User) -> Dict[str, Any]:
    return {
        "display_name": user.display_name,
        "email": user.email,
        "photo_url": user.photo_url,
        "settings": user.settings.model_dump(),
    }


class UserService:

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session
        self.user_repo = UserRepository(session)

    async def register(self, name: Optional[str], email: Optional[str],
                       password: Optional[str]) -> Dict[str, str]:
        """
        Create an email/password account with default settings.
        """
        if not name or not email or not password:
            raise ValidationFailed("Missing required fields")
        if not EMAIL_PATTERN.match(email):
            raise ValidationFailed("Invalid email format")
        if not PASSWORD_PATTERN.match(password):
            raise ValidationFailed(PASSWORD_RULES)

        if await self.user_repo.get_by_email(email):
            raise ConflictError("Email already registered")

        user = User(
            email=email,
            display_name=name.strip(),
            auth_provider="email",
            password_hash=hash_password(password),
            settings=UserSettings(),
        )
        async with unit_of_work(self.session):
            user = await self.user_repo.create(user)
        logger.info(f"User registered: {user.id}")
        return {"id": user.id, "email": user.email, "display_name": user.display_name}

    async def authenticate(self, email: Optional[str], password: Optional[str]) -> Tuple[User, str]:
        """
        Check email/password credentials.

        Returns:
            The user and a signed access token
        """
        if not email or not password:
            raise AuthenticationError("Invalid credentials")

        user = await self.user_repo.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed sign-in attempt")
            raise AuthenticationError("Invalid credentials")

        user.last_login = datetime.now()
        async with unit_of_work(self.session):
            user = await self.user_repo.update(user)
        return user, create_access_token(user.id)

    async def get_user(self, user_id: str) -> User:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_settings(self, user_id: str) -> Dict[str, Any]:
        return profile_view(await self.get_user(user_id))

    async def update_settings(self, user_id: str, data: ProfileUpdate) -> Dict[str, Any]:
        user = await self.get_user(user_id)

        if data.display_name is not None:
            display_name = data.display_name.strip()
            if not display_name:
                raise ValidationFailed("Display name must not be empty")
            user.display_name = display_name
        if "photo_url" in data.model_fields_set:
            user.photo_url = data.photo_url

        if data.settings is not None:
            merged = _merge(user.settings.model_dump(), data.settings.model_dump(exclude_none=True))
            user.settings = UserSettings.model_validate(merged)

        async with unit_of_work(self.session):
            user = await self.user_repo.update(user)
        return profile_view(user)
