"""Request and response bodies that are specific to the HTTP surface."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from blivalley.domain.models import Snapshot, WorkSession


class StatusUpdate(BaseModel):
    status: str
    note: Optional[str] = None


class SessionStart(BaseModel):
    project_id: Optional[str] = None
    milestone_id: Optional[str] = None
    task_id: Optional[str] = None
    note: Optional[str] = None


class SessionEnd(BaseModel):
    note: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    snapshot: Optional[Snapshot] = None
    task_status: Optional[str] = None
    task_note: Optional[str] = None


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class SignInRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


def session_view(work_session: WorkSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Serialize a work session with its derived fields"""
    data = work_session.model_dump()
    data["is_paused"] = work_session.is_paused
    data["calculated_duration"] = work_session.calculated_duration(now)
    return data
