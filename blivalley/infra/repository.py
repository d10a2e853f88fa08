"""
Repository Pattern Implementation.

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Mock data for testing
- Keep the Project aggregate rules (domain.progress) free of SQL

Repositories accept an injected AsyncSession (one per API request, or the
test session); without one they open, commit and close their own. Writes on
an injected session are only flushed: the service that owns the session
commits once per operation through `unit_of_work`, so a failure halfway
through a multi-step operation leaves nothing behind.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from blivalley.domain.errors import ConflictError
from blivalley.domain.models import Project, Milestone, Task, WorkSession, User
from blivalley.infra.db import (
    UserModel, ProjectModel, MilestoneModel, TaskModel, WorkSessionModel, get_engine,
)


@asynccontextmanager
async def unit_of_work(session: Optional[AsyncSession]) -> AsyncIterator[None]:
    """
    Commit everything written inside the block at once, or nothing.

    Without a session every repository call commits on its own.
    """
    if session is None:
        yield
        return
    try:
        yield
        await session.commit()
    except Exception:
        await session.rollback()
        raise


class _Repository:

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def _get_session(self) -> AsyncSession:
        """Get session - either injected or create new one"""
        if self.session:
            return self.session
        engine = get_engine()
        return engine.get_session()

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[AsyncSession]:
        # An injected session belongs to the caller and stays open
        session = await self._get_session()
        if session is self.session:
            yield session
        else:
            async with session:
                yield session

    async def _commit(self, session: AsyncSession) -> None:
        if session is self.session:
            await session.flush()
        else:
            await session.commit()


class UserRepository(_Repository):
    """
    Handles User persistence, including the nested settings document.
    """

    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with self._session_scope() as session:
            model = await session.get(UserModel, user_id)
            return User.model_validate(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup"""
        async with self._session_scope() as session:
            result = await session.execute(
                select(UserModel).where(func.lower(UserModel.email) == email.strip().lower())
            )
            model = result.scalar_one_or_none()
            return User.model_validate(model) if model else None

    async def create(self, user: User) -> User:
        async with self._session_scope() as session:
            model = UserModel(
                id=user.id,
                email=user.email,
                display_name=user.display_name,
                photo_url=user.photo_url,
                auth_provider=user.auth_provider,
                auth_id=user.auth_id,
                password_hash=user.password_hash,
                settings=user.settings.model_dump(mode="json"),
                created_at=user.created_at,
                last_login=user.last_login,
            )
            session.add(model)
            try:
                await self._commit(session)
            except IntegrityError:
                await session.rollback()
                raise ConflictError("Email already registered")
            return User.model_validate(model)

    async def update(self, user: User) -> User:
        """Persist profile, settings and last login"""
        async with self._session_scope() as session:
            model = await session.get(UserModel, user.id)
            if model is None:
                return user
            model.display_name = user.display_name
            model.photo_url = user.photo_url
            model.settings = user.settings.model_dump(mode="json")
            model.last_login = user.last_login
            await self._commit(session)
            return User.model_validate(model)


class ProjectRepository(_Repository):
    """
    Handles Project aggregate persistence.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    Milestones and tasks are matched by id on save so their ids stay stable
    for the work sessions that reference them.
    """

    async def get(self, user_id: str, project_id: str) -> Optional[Project]:
        """Get a project owned by the user"""
        async with self._session_scope() as session:
            model = await self._get_model(session, user_id, project_id)
            return Project.model_validate(model) if model else None

    async def list_for_user(self, user_id: str, status: Optional[str] = None,
                            category: Optional[str] = None) -> List[Project]:
        """Get the user's projects, newest first"""
        async with self._session_scope() as session:
            stmt = select(ProjectModel).where(ProjectModel.user_id == user_id)
            if status:
                stmt = stmt.where(ProjectModel.status == status)
            if category:
                stmt = stmt.where(ProjectModel.category == category)

            result = await session.execute(stmt.order_by(ProjectModel.created_at.desc()))
            return [Project.model_validate(m) for m in result.scalars().all()]

    async def create(self, project: Project) -> Project:
        async with self._session_scope() as session:
            model = ProjectModel(id=project.id, user_id=project.user_id, created_at=project.created_at)
            model.milestones = []
            self._apply(model, project)
            session.add(model)
            await self._commit(session)
            return Project.model_validate(model)

    async def save(self, project: Project) -> Project:
        """
        Write the aggregate back.

        Raises ConflictError when the stored version no longer matches the
        version the caller loaded.
        """
        async with self._session_scope() as session:
            model = await self._get_model(session, project.user_id, project.id)
            if model is None:
                raise ConflictError("Project was deleted by another request")
            if project.version is not None and model.version != project.version:
                raise ConflictError("Project was modified by another request")

            self._apply(model, project)
            try:
                await self._commit(session)
            except StaleDataError:
                await session.rollback()
                raise ConflictError("Project was modified by another request")
            return Project.model_validate(model)

    async def delete(self, user_id: str, project_id: str) -> bool:
        async with self._session_scope() as session:
            model = await self._get_model(session, user_id, project_id)
            if model is None:
                return False
            await session.delete(model)
            await self._commit(session)
            return True

    @staticmethod
    async def _get_model(session: AsyncSession, user_id: str, project_id: str) -> Optional[ProjectModel]:
        result = await session.execute(
            select(ProjectModel).where(
                ProjectModel.id == project_id,
                ProjectModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _apply(model: ProjectModel, project: Project) -> None:
        """Copy the domain aggregate onto the ORM graph, reusing rows by id"""
        model.name = project.name
        model.description = project.description
        model.category = project.category
        model.status = project.status
        model.progress = project.progress
        model.deadline = project.deadline
        model.settings = project.settings.model_dump(mode="json")
        model.updated_at = datetime.now()

        existing_milestones: Dict[str, MilestoneModel] = {m.id: m for m in model.milestones}
        # Tasks may move between milestones, so they are looked up project-wide
        existing_tasks: Dict[str, TaskModel] = {
            t.id: t for m in model.milestones for t in m.tasks
        }

        milestone_models = []
        for position, milestone in enumerate(project.milestones):
            milestone_model = existing_milestones.get(milestone.id)
            if milestone_model is None:
                milestone_model = MilestoneModel(id=milestone.id)
                milestone_model.tasks = []
            milestone_model.position = position
            milestone_model.name = milestone.name
            milestone_model.status = milestone.status
            milestone_model.tasks = [
                ProjectRepository._apply_task(existing_tasks.get(task.id), task, task_position)
                for task_position, task in enumerate(milestone.tasks)
            ]
            milestone_models.append(milestone_model)

        # Detach tasks of dropped milestones so the cascade spares moved ones
        kept = {m.id for m in milestone_models}
        for milestone_id, milestone_model in existing_milestones.items():
            if milestone_id not in kept:
                milestone_model.tasks = []

        model.milestones = milestone_models

    @staticmethod
    def _apply_task(task_model: Optional[TaskModel], task: Task, position: int) -> TaskModel:
        if task_model is None:
            task_model = TaskModel(id=task.id)
        task_model.position = position
        task_model.name = task.name
        task_model.status = task.status
        task_model.notes = task.notes
        if task.last_session is not None:
            task_model.last_session_at = task.last_session.timestamp
            task_model.last_session_note = task.last_session.note
        else:
            task_model.last_session_at = None
            task_model.last_session_note = None
        return task_model


class WorkSessionRepository(_Repository):
    """
    Handles all WorkSession-related database operations.
    """

    async def get(self, user_id: str, session_id: str) -> Optional[WorkSession]:
        async with self._session_scope() as session:
            model = await self._get_model(session, user_id, session_id)
            return WorkSession.model_validate(model) if model else None

    async def get_active(self, user_id: str) -> List[WorkSession]:
        """Get the user's active (not ended) sessions, newest first"""
        return await self.list_for_user(user_id, active=True, limit=None)

    async def list_for_user(self, user_id: str, project_id: Optional[str] = None,
                            active: Optional[bool] = None,
                            limit: Optional[int] = 10) -> List[WorkSession]:
        async with self._session_scope() as session:
            stmt = select(WorkSessionModel).where(WorkSessionModel.user_id == user_id)
            if project_id:
                stmt = stmt.where(WorkSessionModel.project_id == project_id)
            if active is not None:
                stmt = stmt.where(WorkSessionModel.is_active == active)

            stmt = stmt.order_by(WorkSessionModel.start_time.desc())
            if limit:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [WorkSession.model_validate(m) for m in result.scalars().all()]

    async def create(self, work_session: WorkSession) -> WorkSession:
        async with self._session_scope() as session:
            model = WorkSessionModel(id=work_session.id, user_id=work_session.user_id)
            self._apply(model, work_session)
            session.add(model)
            try:
                await self._commit(session)
            except IntegrityError:
                await session.rollback()
                raise ConflictError("Another work session is already active")
            return WorkSession.model_validate(model)

    async def update(self, work_session: WorkSession) -> WorkSession:
        async with self._session_scope() as session:
            model = await self._get_model(session, work_session.user_id, work_session.id)
            if model is None:
                return work_session
            self._apply(model, work_session)
            await self._commit(session)
            return WorkSession.model_validate(model)

    async def delete_for_project(self, project_id: str) -> int:
        """Delete all sessions recorded against a project. Returns count of deleted rows."""
        async with self._session_scope() as session:
            result = await session.execute(
                delete(WorkSessionModel).where(WorkSessionModel.project_id == project_id)
            )
            await self._commit(session)
            return result.rowcount

    @staticmethod
    async def _get_model(session: AsyncSession, user_id: str, session_id: str) -> Optional[WorkSessionModel]:
        result = await session.execute(
            select(WorkSessionModel).where(
                WorkSessionModel.id == session_id,
                WorkSessionModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _apply(model: WorkSessionModel, work_session: WorkSession) -> None:
        model.project_id = work_session.project_id
        model.milestone_id = work_session.milestone_id
        model.task_id = work_session.task_id
        model.start_time = work_session.start_time
        model.end_time = work_session.end_time
        model.duration = work_session.duration
        model.note = work_session.note
        model.is_active = work_session.is_active
        model.activities = [a.model_dump(mode="json") for a in work_session.activities]
        model.snapshot = (
            work_session.snapshot.model_dump(mode="json") if work_session.snapshot else None
        )
