"""
SQLAlchemy database models and configuration.

Architecture Decision: Why SQLAlchemy?
- Provides ORM for cleaner code and prevents SQL injection
- Supports async operations for non-blocking database access
- Easy to migrate to PostgreSQL or other databases if needed

The Project aggregate is stored relationally: projects -> milestones -> tasks,
with an explicit `position` column keeping the user's ordering. Projects carry
a version counter so two requests editing the same project cannot silently
overwrite each other.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Integer, DateTime, Boolean, Text, ForeignKey, JSON, Index,
    UniqueConstraint, event, text,
)

from blivalley.domain.models import new_id


# Base class for all models
class Base(DeclarativeBase):
    pass


class UserModel(Base):
    """SQLAlchemy model for User entity"""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("auth_provider", "auth_id", name="uq_users_provider_auth_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    auth_provider: Mapped[str] = mapped_column(String(20), nullable=False, default="email")
    auth_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    last_login: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class ProjectModel(Base):
    """SQLAlchemy model for Project entity"""
    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_user_status", "user_id", "status"),
        Index("ix_projects_user_category", "user_id", "category"),
        Index("ix_projects_user_deadline", "user_id", "deadline"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    category: Mapped[str] = mapped_column(String(20), default="other", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    milestones: Mapped[List["MilestoneModel"]] = relationship(
        back_populates="project",
        order_by="MilestoneModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class MilestoneModel(Base):
    """SQLAlchemy model for Milestone entity"""
    __tablename__ = "milestones"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)

    project: Mapped[ProjectModel] = relationship(back_populates="milestones")
    tasks: Mapped[List["TaskModel"]] = relationship(
        back_populates="milestone",
        order_by="TaskModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class TaskModel(Base):
    """SQLAlchemy model for Task entity"""
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    milestone_id: Mapped[str] = mapped_column(String(32), ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    last_session_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_session_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    milestone: Mapped[MilestoneModel] = relationship(back_populates="tasks")

    @property
    def last_session(self) -> Optional[Dict[str, Any]]:
        """Shape read by the domain model (Task.last_session)"""
        if self.last_session_at is None:
            return None
        return {"timestamp": self.last_session_at, "note": self.last_session_note or ""}


class WorkSessionModel(Base):
    """SQLAlchemy model for WorkSession entity"""
    __tablename__ = "work_sessions"
    __table_args__ = (
        Index("ix_work_sessions_user_start", "user_id", "start_time"),
        Index("ix_work_sessions_project_start", "project_id", "start_time"),
        Index("ix_work_sessions_task", "task_id"),
        # At most one active session per user
        Index(
            "uq_work_sessions_one_active",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id: Mapped[str] = mapped_column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    milestone_id: Mapped[str] = mapped_column(String(32), nullable=False)
    task_id: Mapped[str] = mapped_column(String(32), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    activities: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    snapshot: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


class DatabaseEngine:
    """
    Manages database connection and session lifecycle.

    Singleton pattern ensures only one engine exists per application.
    """
    _instance: Optional['DatabaseEngine'] = None

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    @classmethod
    def get_instance(cls, db_url: Optional[str] = None) -> 'DatabaseEngine':
        """Get or create the database engine instance"""
        if cls._instance is None:
            if db_url is None:
                from blivalley.infra.config import get_settings
                db_url = get_settings().get_db_url()

            cls._instance = cls(db_url)
        return cls._instance

    @classmethod
    async def reset(cls) -> None:
        """Dispose the current engine so the next get_instance() builds a new one"""
        if cls._instance is not None:
            await cls._instance.engine.dispose()
            cls._instance = None

    async def create_tables(self):
        """Create all tables in the database"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def get_session(self) -> AsyncSession:
        """Get a new database session"""
        return self.session_factory()


# Convenience functions
def get_engine(db_url: Optional[str] = None) -> DatabaseEngine:
    """Get the database engine instance"""
    return DatabaseEngine.get_instance(db_url)


async def init_db(db_url: Optional[str] = None):
    """Initialize the database (create tables)"""
    engine = get_engine(db_url)
    await engine.create_tables()
