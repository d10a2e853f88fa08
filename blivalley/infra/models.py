"""
SQLAlchemy ORM models.
Separated from db.py for cleaner imports.
"""

from .db import Base, UserModel, ProjectModel, MilestoneModel, TaskModel, WorkSessionModel

__all__ = ["Base", "UserModel", "ProjectModel", "MilestoneModel", "TaskModel", "WorkSessionModel"]
