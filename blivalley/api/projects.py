"""Projects CRUD API endpoints.

Projects are nested as Project > Milestone > Task. Status changes on
milestones and tasks go through dedicated endpoints so the derived
milestone status and project progress stay consistent.
All endpoints require authentication and only see the caller's projects.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from blivalley.api.deps import CurrentUserId, get_project_service
from blivalley.api.schemas import StatusUpdate
from blivalley.domain.models import Project
from blivalley.services.project_service import ProjectCreate, ProjectService, ProjectUpdate

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.get("", response_model=List[Project])
async def list_projects(
    user_id: CurrentUserId,
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    service: ProjectService = Depends(get_project_service),
) -> List[Project]:
    """List the caller's projects, newest first."""
    return await service.list_projects(user_id, status=status_filter, category=category)


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Project:
    return await service.create_project(user_id, body)


@router.get("/{project_id}", response_model=Project)
async def get_project(
    project_id: str,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Project:
    return await service.get_project(user_id, project_id)


@router.put("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    body: ProjectUpdate,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Project:
    """
    Update any of name, description, category, status, deadline,
    milestones and settings. A milestones list replaces the current one.
    """
    return await service.update_project(user_id, project_id, body)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    await service.delete_project(user_id, project_id)
    return {"success": True}


@router.put("/{project_id}/status", response_model=Project)
async def update_project_status(
    project_id: str,
    body: StatusUpdate,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Project:
    return await service.set_project_status(user_id, project_id, body.status)


@router.put("/{project_id}/milestones/{milestone_id}/status")
async def update_milestone_status(
    project_id: str,
    milestone_id: str,
    body: StatusUpdate,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    """
    Set a milestone's status. Completing it completes all its tasks;
    starting it starts its first not-started task.
    """
    return await service.set_milestone_status(user_id, project_id, milestone_id, body.status)


@router.put("/{project_id}/milestones/{milestone_id}/tasks/{task_id}/status")
async def update_task_status(
    project_id: str,
    milestone_id: str,
    task_id: str,
    body: StatusUpdate,
    user_id: CurrentUserId,
    service: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return await service.set_task_status(
        user_id, project_id, milestone_id, task_id, body.status, note=body.note
    )
