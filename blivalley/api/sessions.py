"""Work session API endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from blivalley.api.deps import CurrentUserId, get_session_service
from blivalley.api.schemas import SessionEnd, SessionStart, session_view
from blivalley.services.session_service import WorkSessionService

router = APIRouter(prefix="/api/sessions", tags=["Sessions"])


@router.get("")
async def list_sessions(
    user_id: CurrentUserId,
    project_id: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    limit: Optional[int] = Query(None),
    service: WorkSessionService = Depends(get_session_service),
) -> List[Dict[str, Any]]:
    sessions = await service.list_sessions(user_id, project_id=project_id, active=active, limit=limit)
    return [session_view(s) for s in sessions]


@router.post("", status_code=status.HTTP_201_CREATED)
async def start_session(
    body: SessionStart,
    user_id: CurrentUserId,
    service: WorkSessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """Start working on a task; any running session is ended first."""
    work_session = await service.start_session(
        user_id, body.project_id, body.milestone_id, body.task_id, note=body.note
    )
    return session_view(work_session)


@router.get("/active")
async def get_active_session(
    user_id: CurrentUserId,
    service: WorkSessionService = Depends(get_session_service),
) -> Optional[Dict[str, Any]]:
    work_session = await service.get_active_session(user_id)
    return session_view(work_session) if work_session else None


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    user_id: CurrentUserId,
    service: WorkSessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    return session_view(await service.get_session(user_id, session_id))


@router.put("/{session_id}")
async def end_session(
    session_id: str,
    body: SessionEnd,
    user_id: CurrentUserId,
    service: WorkSessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    work_session = await service.end_session(
        user_id,
        session_id,
        note=body.note,
        metadata=body.metadata,
        snapshot=body.snapshot,
        task_status=body.task_status,
        task_note=body.task_note,
    )
    return session_view(work_session)


@router.post("/{session_id}/pause")
async def pause_session(
    session_id: str,
    user_id: CurrentUserId,
    service: WorkSessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    return session_view(await service.pause_session(user_id, session_id))


@router.post("/{session_id}/resume")
async def resume_session(
    session_id: str,
    user_id: CurrentUserId,
    service: WorkSessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    return session_view(await service.resume_session(user_id, session_id))
