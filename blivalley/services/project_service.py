"""
Project Service - Project, milestone and task management.

Architecture Decision: Load, mutate, save
Every operation loads the whole Project aggregate, applies the rules from
domain.progress and saves it back with an optimistic version check, so
progress and milestone status can never be persisted out of sync with
the tasks.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from blivalley.domain import progress
from blivalley.domain.errors import NotFoundError, ValidationFailed
from blivalley.domain.models import (
    Project, Milestone, Task, LastSession, ProjectSettings,
    Category, ProjectStatus, Status, Name, PROJECT_STATUSES, new_id,
)
from blivalley.infra.repository import ProjectRepository, WorkSessionRepository, unit_of_work

logger = logging.getLogger(__name__)


class TaskInput(BaseModel):
    """A task as submitted by a client; `id` is kept only if it already exists"""
    id: Optional[str] = None
    name: Name
    status: Optional[Status] = None
    notes: Optional[str] = None
    last_session: Optional[LastSession] = None


class MilestoneInput(BaseModel):
    """
    A milestone as submitted by a client.

    Tasks may be plain names or full task objects.
    """
    id: Optional[str] = None
    name: Name
    status: Optional[Status] = None
    tasks: List[Union[str, TaskInput]] = Field(default_factory=list)


class ProjectCreate(BaseModel):
    name: Name
    category: Category
    description: str = ""
    status: ProjectStatus = "active"
    deadline: Optional[datetime] = None
    milestones: List[MilestoneInput] = Field(default_factory=list)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)


class ProjectUpdate(BaseModel):
    """Partial update; only fields present in the request are applied"""
    name: Optional[Name] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    status: Optional[ProjectStatus] = None
    deadline: Optional[datetime] = None
    milestones: Optional[List[MilestoneInput]] = None
    settings: Optional[ProjectSettings] = None


def build_milestones(inputs: List[MilestoneInput],
                     current: Optional[Project] = None) -> List[Milestone]:
    """
    Turn client input into domain milestones.

    Ids of milestones and tasks that already belong to `current` are kept;
    any other id is replaced by a fresh one. Task fields left out of the
    input keep their current value.
    """
    known_milestones: Set[str] = set()
    known_tasks: Dict[str, Task] = {}
    if current is not None:
        known_milestones = {m.id for m in current.milestones}
        known_tasks = {t.id: t for m in current.milestones for t in m.tasks}

    seen: Set[str] = set()

    def _claim(item_id: Optional[str], known) -> str:
        if item_id and item_id in known:
            if item_id in seen:
                raise ValidationFailed(f"Duplicate id in milestones: {item_id}")
            seen.add(item_id)
            return item_id
        return new_id()

    milestones = []
    for m_input in inputs:
        tasks = []
        for t_input in m_input.tasks:
            if isinstance(t_input, str):
                t_input = TaskInput(name=t_input)
            task_id = _claim(t_input.id, known_tasks)
            previous = known_tasks.get(task_id)
            tasks.append(Task(
                id=task_id,
                name=t_input.name,
                status=t_input.status or (previous.status if previous else "not_started"),
                notes=t_input.notes if t_input.notes is not None else (previous.notes if previous else ""),
                last_session=t_input.last_session or (previous.last_session if previous else None),
            ))

        milestone = Milestone(id=_claim(m_input.id, known_milestones), name=m_input.name, tasks=tasks)
        milestone.status = m_input.status or progress.derive_milestone_status(milestone)
        milestones.append(milestone)
    return milestones


class ProjectService:
    """
    Business operations on a user's projects.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session
        self.project_repo = ProjectRepository(session)
        self.session_repo = WorkSessionRepository(session)

    async def list_projects(self, user_id: str, status: Optional[str] = None,
                            category: Optional[str] = None) -> List[Project]:
        return await self.project_repo.list_for_user(user_id, status=status, category=category)

    async def get_project(self, user_id: str, project_id: str) -> Project:
        project = await self.project_repo.get(user_id, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def create_project(self, user_id: str, data: ProjectCreate) -> Project:
        project = Project(
            user_id=user_id,
            name=data.name,
            description=data.description,
            category=data.category,
            status=data.status,
            deadline=data.deadline,
            milestones=build_milestones(data.milestones),
            settings=data.settings,
        )
        progress.refresh_progress(project)
        async with unit_of_work(self.session):
            project = await self.project_repo.create(project)
        logger.info(f"Project created: {project.id} ({project.name}) for user {user_id}")
        return project

    async def update_project(self, user_id: str, project_id: str, data: ProjectUpdate) -> Project:
        """
        Apply the fields present in `data`.

        A milestones list replaces the current one wholesale; progress is
        recomputed afterwards.
        """
        project = await self.get_project(user_id, project_id)
        provided = data.model_fields_set

        for field in ("name", "description", "category", "status", "settings"):
            value = getattr(data, field)
            if field in provided and value is not None:
                setattr(project, field, value)
        if "deadline" in provided:
            project.deadline = data.deadline
        if "milestones" in provided and data.milestones is not None:
            project.milestones = build_milestones(data.milestones, current=project)

        progress.refresh_progress(project)
        async with unit_of_work(self.session):
            return await self.project_repo.save(project)

    async def delete_project(self, user_id: str, project_id: str) -> None:
        """Delete a project together with its recorded work sessions"""
        await self.get_project(user_id, project_id)
        async with unit_of_work(self.session):
            removed = await self.session_repo.delete_for_project(project_id)
            await self.project_repo.delete(user_id, project_id)
        logger.info(f"Project deleted: {project_id} ({removed} work sessions removed)")

    async def set_project_status(self, user_id: str, project_id: str, status: str) -> Project:
        if status not in PROJECT_STATUSES:
            raise ValidationFailed("Invalid status value")
        project = await self.get_project(user_id, project_id)
        project.status = status
        async with unit_of_work(self.session):
            return await self.project_repo.save(project)

    async def set_milestone_status(self, user_id: str, project_id: str,
                                   milestone_id: str, status: str) -> Dict[str, Any]:
        project = await self.get_project(user_id, project_id)
        milestone = progress.set_milestone_status(project, milestone_id, status)
        async with unit_of_work(self.session):
            project = await self.project_repo.save(project)

        return {
            "milestone": {"id": milestone.id, "status": milestone.status},
            "project": {"id": project.id, "progress": project.progress},
        }

    async def set_task_status(self, user_id: str, project_id: str, milestone_id: str,
                              task_id: str, status: str,
                              note: Optional[str] = None) -> Dict[str, Any]:
        project = await self.get_project(user_id, project_id)
        milestone, task = progress.set_task_status(project, milestone_id, task_id, status, note=note)
        async with unit_of_work(self.session):
            project = await self.project_repo.save(project)

        return {
            "task": {
                "id": task.id,
                "status": task.status,
                "last_session": task.last_session.model_dump() if task.last_session else None,
            },
            "milestone": {"id": milestone.id, "status": milestone.status},
            "project": {"id": project.id, "progress": project.progress},
        }
