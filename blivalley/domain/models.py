"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic provides runtime data validation, ensuring data integrity when loading
from request bodies or the database. It also provides easy serialization/deserialization.

A Project is an aggregate: it owns its milestones, which own their tasks.
Work sessions and users are separate entities that reference projects by id.
"""

import uuid
from datetime import datetime
from typing import Annotated, Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, ConfigDict, StringConstraints, field_validator


Status = Literal["not_started", "in_progress", "completed"]
ProjectStatus = Literal["active", "completed", "archived"]
Category = Literal[
    "design", "development", "writing", "marketing", "business",
    "education", "personal", "home", "other",
]
ActivityAction = Literal[
    "start", "pause", "resume", "end", "snapshot_created", "snapshot_restored",
]
Theme = Literal["light", "dark", "system"]
SaveLocation = Literal["local", "cloud", "none"]
AuthProvider = Literal["google", "apple", "github", "email"]

STATUSES = ("not_started", "in_progress", "completed")
PROJECT_STATUSES = ("active", "completed", "archived")


def new_id() -> str:
    """Generate a new entity id"""
    return uuid.uuid4().hex


Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]


class LastSession(BaseModel):
    """Summary of the most recent work session that touched a task"""
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    note: str = ""


class Task(BaseModel):
    """
    Smallest trackable unit of work within a milestone.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    name: Name
    status: Status = "not_started"
    notes: str = ""
    last_session: Optional[LastSession] = None


class Milestone(BaseModel):
    """
    Named grouping of tasks within a project.

    The status is derived from the tasks whenever a task changes,
    see domain.progress.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    name: Name
    status: Status = "not_started"
    tasks: List[Task] = Field(default_factory=list)


class ProjectSettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    auto_start: bool = False
    notifications: bool = True


class Project(BaseModel):
    """
    A user's project: ordered milestones, each with ordered tasks.

    `progress` is derived (percentage of completed tasks) and is recomputed
    every time the milestones change. `version` is the optimistic lock counter
    maintained by the database.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    name: Name
    description: str = ""
    category: Category = "other"
    status: ProjectStatus = "active"
    progress: int = Field(default=0, ge=0, le=100)
    deadline: Optional[datetime] = None
    milestones: List[Milestone] = Field(default_factory=list)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    version: Optional[int] = None

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        return value.strip()


# ---------------------------------------------------------------------------
# Environment snapshot
# ---------------------------------------------------------------------------

class WindowState(BaseModel):
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    is_maximized: bool = False


class Application(BaseModel):
    name: str
    type: Literal["application", "browser", "explorer"] = "application"
    executable_path: Optional[str] = None
    window_state: Optional[WindowState] = None
    open_files: List[str] = Field(default_factory=list)


class BrowserTab(BaseModel):
    url: str
    title: str = ""
    fav_icon_url: Optional[str] = None


class Browser(BaseModel):
    name: str
    executable_path: Optional[str] = None
    tabs: List[BrowserTab] = Field(default_factory=list)


class Snapshot(BaseModel):
    """Open applications and browser tabs captured when a session ends"""
    applications: List[Application] = Field(default_factory=list)
    browsers: List[Browser] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Work sessions
# ---------------------------------------------------------------------------

class Activity(BaseModel):
    timestamp: datetime
    action: ActivityAction
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkSession(BaseModel):
    """
    Represents one timed interval of work against a single task.

    A session starts active, may be paused and resumed any number of times,
    and ends exactly once. The activity log is the source of truth for
    pauses; `duration` is fixed when the session ends.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    project_id: str
    milestone_id: str
    task_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int = 0  # seconds
    note: str = ""
    is_active: bool = True
    activities: List[Activity] = Field(default_factory=list)
    snapshot: Optional[Snapshot] = None

    @property
    def is_paused(self) -> bool:
        """True if the session is active and its last pause/resume was a pause"""
        if not self.is_active:
            return False
        for activity in reversed(self.activities):
            if activity.action == "pause":
                return True
            if activity.action in ("resume", "start"):
                return False
        return False

    def worked_seconds(self, until: datetime) -> int:
        """
        Seconds worked between start_time and `until`, excluding paused intervals.
        """
        paused = 0.0
        paused_at: Optional[datetime] = None
        for activity in self.activities:
            if activity.timestamp > until:
                break
            if activity.action == "pause" and paused_at is None:
                paused_at = activity.timestamp
            elif activity.action in ("resume", "end") and paused_at is not None:
                paused += (activity.timestamp - paused_at).total_seconds()
                paused_at = None
        if paused_at is not None:
            paused += (until - paused_at).total_seconds()

        elapsed = (until - self.start_time).total_seconds() - paused
        return max(0, int(elapsed + 0.5))

    def calculated_duration(self, now: Optional[datetime] = None) -> int:
        """Live duration: worked seconds so far, or up to end_time once ended"""
        if self.end_time is not None:
            return self.worked_seconds(self.end_time)
        return self.worked_seconds(now or datetime.now())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class SessionCapture(BaseModel):
    """Which parts of the working environment are captured when a session ends"""
    model_config = ConfigDict(from_attributes=True)

    enabled: bool = True
    capture_apps: bool = True
    capture_browsers: bool = True
    save_location: SaveLocation = "local"


class UserSettings(BaseModel):
    """
    User configuration and preferences.
    """
    model_config = ConfigDict(from_attributes=True)

    theme: Theme = Field(default="system", description="Theme: 'light', 'dark', or 'system'")
    notifications: bool = True
    session_capture: SessionCapture = Field(default_factory=SessionCapture)


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    email: str
    display_name: str
    photo_url: Optional[str] = None
    auth_provider: AuthProvider = "email"
    auth_id: Optional[str] = None
    password_hash: Optional[str] = None
    settings: UserSettings = Field(default_factory=UserSettings)
    created_at: datetime = Field(default_factory=datetime.now)
    last_login: datetime = Field(default_factory=datetime.now)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()
