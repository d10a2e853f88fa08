"""
FastAPI dependencies: database session, current user, services.
"""

from typing import Annotated, AsyncIterator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from blivalley.domain.errors import AuthenticationError
from blivalley.infra.db import get_engine
from blivalley.infra.repository import UserRepository
from blivalley.infra.security import decode_access_token
from blivalley.services import ProjectService, UserService, WorkSessionService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """One database session per request"""
    async with get_engine().get_session() as session:
        yield session


async def get_current_user_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    db: AsyncSession = Depends(get_db),
) -> str:
    """The id of the signed-in user; the account must still exist"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("You must be signed in")
    user_id = decode_access_token(credentials.credentials)
    if await UserRepository(db).get_by_id(user_id) is None:
        raise AuthenticationError("Account no longer exists")
    return user_id


def get_project_service(db: AsyncSession = Depends(get_db)) -> ProjectService:
    return ProjectService(db)


def get_session_service(db: AsyncSession = Depends(get_db)) -> WorkSessionService:
    return WorkSessionService(db)


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
