"""Domain layer - Pure business entities and logic"""

from .models import Project, Milestone, Task, WorkSession, User, UserSettings
from .errors import (
    BlivalleyError, NotFoundError, ConflictError, InvalidStateError,
    AuthenticationError, ValidationFailed,
)

__all__ = [
    "Project", "Milestone", "Task", "WorkSession", "User", "UserSettings",
    "BlivalleyError", "NotFoundError", "ConflictError", "InvalidStateError",
    "AuthenticationError", "ValidationFailed",
]
