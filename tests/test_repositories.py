"""
Tests for the Firestore task-record repository.

Run with: pytest tests/test_repositories.py -v
"""

from unittest.mock import MagicMock

import pytest

from storyexport.core.repositories import (
    TaskRecordRepository,
    TaskRepositoryError,
    ValidationError,
    load_project_tasks,
)


def make_doc(doc_id, data):
    doc = MagicMock()
    doc.id = doc_id
    doc.exists = data is not None
    doc.to_dict.return_value = data
    return doc


@pytest.fixture
def db():
    return MagicMock()


def tasks_collection(db):
    return db.collection.return_value.document.return_value.collection.return_value


class TestTaskRecordRepository:
    """Tests for TaskRecordRepository."""

    def test_collection_path(self, db):
        TaskRecordRepository("proj-1", db=db)
        db.collection.assert_called_once_with("projects")
        db.collection.return_value.document.assert_called_once_with("proj-1")
        db.collection.return_value.document.return_value.collection.assert_called_once_with("generation_tasks")

    def test_invalid_project_id(self, db):
        with pytest.raises(ValidationError):
            TaskRecordRepository("", db=db)

    def test_list_tasks_parses_documents(self, db):
        query = tasks_collection(db).order_by.return_value
        query.stream.return_value = [
            make_doc("t1", {"status": "completed", "r2_url": "https://x/t1.mp4", "shot_ids": ["a"]}),
            make_doc("t2", {"status": "queued", "shotIds": None}),
            make_doc("t3", {}),
        ]

        records = TaskRecordRepository("proj-1", db=db).list_tasks()

        assert [r.id for r in records] == ["t1", "t2"]
        assert records[0].r2_url == "https://x/t1.mp4"
        assert records[0].shot_ids == ["a"]
        assert records[1].shot_ids == []

    def test_list_tasks_status_filter(self, db):
        collection = tasks_collection(db)
        collection.where.return_value.order_by.return_value.stream.return_value = []

        TaskRecordRepository("proj-1", db=db).list_tasks(status="completed")

        collection.where.assert_called_once()

    def test_list_tasks_rejects_bad_status(self, db):
        with pytest.raises(ValidationError):
            TaskRecordRepository("proj-1", db=db).list_tasks(status="exploded")

    def test_list_tasks_wraps_backend_errors(self, db):
        tasks_collection(db).order_by.return_value.stream.side_effect = RuntimeError("unavailable")
        with pytest.raises(TaskRepositoryError):
            TaskRecordRepository("proj-1", db=db).list_tasks()

    def test_limit_applied(self, db):
        ordered = tasks_collection(db).order_by.return_value
        ordered.limit.return_value.stream.return_value = [make_doc("t1", {"status": "completed"})]

        records = TaskRecordRepository("proj-1", db=db).list_tasks(limit=10)

        ordered.limit.assert_called_once_with(10)
        assert [r.id for r in records] == ["t1"]


class TestLoadProjectTasks:
    """Tests for the loader handed to the export workflow."""

    def test_uses_shared_client(self, db, monkeypatch):
        tasks_collection(db).order_by.return_value.stream.return_value = [
            make_doc("t1", {"status": "completed", "r2Url": "https://x/t1.mp4"}),
        ]
        monkeypatch.setattr("storyexport.core.repositories.tasks.get_firestore_client", lambda: db)

        records = load_project_tasks("proj-1")

        assert [r.id for r in records] == ["t1"]
        assert records[0].is_exportable
