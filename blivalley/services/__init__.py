"""Services layer - Business logic"""

from .project_service import ProjectService
from .session_service import WorkSessionService
from .user_service import UserService

__all__ = ["ProjectService", "WorkSessionService", "UserService"]
