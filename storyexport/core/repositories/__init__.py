"""
Repository layer for Firestore data access.
"""

from storyexport.core.repositories.exceptions import (
    RepositoryError,
    TaskRepositoryError,
    ValidationError,
)
from storyexport.core.repositories.tasks import TaskRecordRepository, load_project_tasks

__all__ = [
    "RepositoryError",
    "TaskRecordRepository",
    "TaskRepositoryError",
    "ValidationError",
    "load_project_tasks",
]
