"""
Pytest configuration and fixtures.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
import pytest
import pytest_asyncio
import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from blivalley.infra.db import Base
from blivalley.infra.repository import UserRepository
from blivalley.infra.security import create_access_token
from blivalley.domain.models import User
from blivalley.services import ProjectService, UserService, WorkSessionService
from blivalley.services.project_service import ProjectCreate


class FakeClock:
    """Manually advanced clock for duration tests"""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create a new session for a test"""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def user(db_session) -> User:
    return await UserRepository(session=db_session).create(
        User(email="ada@example.com", display_name="Ada")
    )


@pytest_asyncio.fixture
async def other_user(db_session) -> User:
    return await UserRepository(session=db_session).create(
        User(email="grace@example.com", display_name="Grace")
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def project_service(db_session) -> ProjectService:
    return ProjectService(db_session)


@pytest.fixture
def session_service(db_session, clock) -> WorkSessionService:
    return WorkSessionService(db_session, clock=clock)


@pytest.fixture
def user_service(db_session) -> UserService:
    return UserService(db_session)


@pytest_asyncio.fixture
async def project(project_service, user):
    """Two milestones: Design (2 tasks) and Build (2 tasks)"""
    return await project_service.create_project(user.id, ProjectCreate(
        name="Website",
        category="development",
        milestones=[
            {"name": "Design", "tasks": ["Wireframes", "Mockups"]},
            {"name": "Build", "tasks": ["Frontend", {"name": "Backend", "notes": "FastAPI"}]},
        ],
    ))


@pytest_asyncio.fixture
async def client(db_session):
    """HTTP client bound to the app, sharing the test database session"""
    from blivalley.api import create_app
    from blivalley.api.deps import get_db

    app = create_app()

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
