"""
Generation-task record repository for Firestore.

Task documents live under `projects/{project_id}/generation_tasks`, written
by the generation service. This repository only reads them.
"""

import logging
from typing import Any, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from storyexport.config import TASKS_COLLECTION
from storyexport.core.firebase_client import get_firestore_client
from storyexport.core.project import TaskRecord
from storyexport.core.repositories.exceptions import (
    TaskRepositoryError,
    ValidationError,
)

logger = logging.getLogger(__name__)

VALID_STATUSES = {"queued", "processing", "generating", "completed", "failed"}


class TaskRecordRepository:
    """Read access to a project's generation-task records."""

    def __init__(self, project_id: str, db: Optional[Any] = None):
        """
        Initialize task repository.

        Args:
            project_id: Project ID (validated)
            db: Optional Firestore client, defaults to the shared client

        Raises:
            ValidationError: If project_id is invalid
        """
        if not project_id or not isinstance(project_id, str) or len(project_id) > 100:
            raise ValidationError("Invalid project_id")

        self.project_id = project_id
        self.db = db if db is not None else get_firestore_client()
        self.tasks_collection = (
            self.db.collection("projects")
            .document(project_id)
            .collection(TASKS_COLLECTION)
        )

    def _to_record(self, doc: Any) -> Optional[TaskRecord]:
        data = doc.to_dict()
        if not data:
            return None
        data.setdefault("id", doc.id)
        try:
            return TaskRecord.model_validate(data)
        except Exception as e:
            logger.warning(f"Failed to parse task {doc.id}: {e}")
            return None

    def list_tasks(
        self,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[TaskRecord]:
        """
        List the project's task records, newest first.

        Args:
            status: Optional status filter
            limit: Maximum number of results

        Raises:
            ValidationError: If parameters are invalid
            TaskRepositoryError: If query fails
        """
        try:
            if status and status not in VALID_STATUSES:
                raise ValidationError(f"Invalid status: {status}")

            if limit is not None and (limit < 1 or limit > 5000):
                raise ValidationError(f"Invalid limit: {limit}")

            query = self.tasks_collection
            if status:
                query = query.where(filter=FieldFilter("status", "==", status))
            query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
            if limit:
                query = query.limit(limit)

            tasks = []
            for doc in query.stream():
                record = self._to_record(doc)
                if record is not None:
                    tasks.append(record)
            return tasks

        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to list tasks for project {self.project_id}: {e}", exc_info=True)
            raise TaskRepositoryError(f"Failed to list tasks: {e}") from e


def load_project_tasks(project_id: str) -> List[TaskRecord]:
    """Task loader used by the export workflow."""
    return TaskRecordRepository(project_id).list_tasks()
