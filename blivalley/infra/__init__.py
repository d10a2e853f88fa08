"""Infrastructure layer - Configuration, database and persistence"""

from .db import DatabaseEngine, get_engine, init_db
from .models import UserModel, ProjectModel, MilestoneModel, TaskModel, WorkSessionModel

__all__ = [
    "DatabaseEngine", "get_engine", "init_db",
    "UserModel", "ProjectModel", "MilestoneModel", "TaskModel", "WorkSessionModel",
]
