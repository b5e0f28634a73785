"""
Tests for the end-to-end export workflow.

Run with: pytest tests/test_exporter.py -v
"""

import asyncio
import json
import zipfile

import httpx
import pytest

from storyexport.core.archive import ArchiveError
from storyexport.core.exporter import ExportOptions, export_project, load_task_records
from storyexport.core.models import ExportResult
from storyexport.core.progress import ProgressPhase, RecordingReporter
from storyexport.core.project import Project

from tests.conftest import EXPECTED_ASSET_PATHS, MediaServer, mock_client


def run_export(project, server, tmp_path, **overrides):
    """Export against an in-memory media server with zero backoff."""
    reporter = overrides.pop("progress", None) or RecordingReporter()

    async def scenario():
        async with mock_client(server) as client:
            options = ExportOptions(
                progress=reporter,
                client=client,
                retry_backoff=0,
                max_attempts=2,
                proxy_url=None,
                output_dir=tmp_path,
                **overrides,
            )
            return await export_project(project, options)

    return asyncio.run(scenario()), reporter


class TestExportProject:
    """Tests for export_project."""

    def test_full_export(self, project, tasks, tmp_path):
        server = MediaServer()
        artifact, _ = run_export(project, server, tmp_path, tasks=tasks)

        assert artifact.file_name == "Night_Chase_Part_1_assets.zip"
        assert artifact.path.parent == tmp_path
        result = artifact.result
        assert (result.image_count, result.video_count, result.audio_count) == (4, 2, 1)
        assert result.total_count == 7
        assert result.failures == []

        with zipfile.ZipFile(artifact.path) as archive:
            names = set(archive.namelist())
            assert set(EXPECTED_ASSET_PATHS) <= names
            assert archive.read("videos/tasks/assigned/001_task_task_1.mp4") == b"payload:/vid/sh1.mp4"

    def test_signed_variants_fetched_once(self, project, tasks, tmp_path):
        server = MediaServer()
        run_export(project, server, tmp_path, tasks=tasks)
        assert server.paths().count("/vid/sh1.mp4") == 1
        fetched = [str(r.url) for r in server.requests if r.url.path == "/vid/sh1.mp4"]
        assert fetched == ["https://cdn.test/vid/sh1.mp4?sig=1"]

    def test_failures_are_isolated(self, project, tasks, tmp_path):
        server = MediaServer(failing={"/img/sh1_old.jpg", "/aud/sh3.mp3"})
        artifact, _ = run_export(project, server, tmp_path, tasks=tasks)

        result = artifact.result
        assert result.total_count == 5
        assert len(result.failures) == 2
        assert {f.asset_type for f in result.failures} == {"image", "audio"}
        assert {f.url for f in result.failures} == {
            "https://cdn.test/img/sh1_old.jpg",
            "https://cdn.test/aud/sh3.mp3",
        }
        assert server.paths().count("/img/sh1_old.jpg") == 2

        with zipfile.ZipFile(artifact.path) as archive:
            names = archive.namelist()
            info = json.loads(archive.read("project_info.json"))
        assert "images/history/001_history_2.jpg" not in names
        assert "audio/003_audio.mp3" not in names
        assert info["failedCount"] == 2
        assert info["totalCount"] == 5

    def test_failure_keeps_signed_url(self, project, tasks, tmp_path):
        server = MediaServer(failing={"/vid/sh1.mp4"})
        artifact, _ = run_export(project, server, tmp_path, tasks=tasks)

        (failure,) = artifact.result.failures
        assert failure.asset_type == "video"
        assert failure.url == "https://cdn.test/vid/sh1.mp4?sig=1"

    def test_every_asset_failing_still_produces_archive(self, project, tmp_path):
        def dead_server(request):
            return httpx.Response(502)

        artifact, _ = run_export(project, dead_server, tmp_path, tasks=[])
        assert artifact.result.total_count == 0
        assert len(artifact.result.failures) == 6
        with zipfile.ZipFile(artifact.path) as archive:
            assert "project_info.json" in archive.namelist()

    def test_zero_assets(self, tmp_path):
        server = MediaServer()
        artifact, reporter = run_export(Project(), server, tmp_path)

        assert server.requests == []
        assert artifact.result.total_count == 0
        assert artifact.result.failures == []
        assert artifact.file_name == "untitled_project_assets.zip"
        with zipfile.ZipFile(artifact.path) as archive:
            assert archive.namelist() == ["project_info.json", "storyboard.json", "storyboard.txt"]
        assert reporter.phases()[-1] == ProgressPhase.DONE

    def test_progress_phase_order(self, project, tasks, tmp_path):
        artifact, reporter = run_export(project, MediaServer(), tmp_path, tasks=tasks, concurrency=3)

        phases = reporter.phases()
        assert phases[:2] == [ProgressPhase.PREPARE, ProgressPhase.PREPARE]
        assert phases[-1] == ProgressPhase.DONE
        first_zip = phases.index(ProgressPhase.ZIP)
        assert set(phases[2:first_zip]) == {ProgressPhase.DOWNLOAD}
        assert set(phases[first_zip:-1]) == {ProgressPhase.ZIP}

        downloads = [e for e in reporter.events if e.phase == ProgressPhase.DOWNLOAD]
        assert downloads[0].completed == 0
        assert [e.completed for e in downloads] == list(range(8))
        assert all(e.total == 7 for e in downloads)

        zips = [e.percent for e in reporter.events if e.phase == ProgressPhase.ZIP]
        assert zips[0] == 0
        assert zips.count(0) == 1
        assert zips[-1] == 100
        assert zips == sorted(set(zips))

    def test_broken_reporter_does_not_abort(self, project, tmp_path):
        def reporter(event):
            raise RuntimeError("sink gone")

        artifact, _ = run_export(project, MediaServer(), tmp_path, progress=reporter)
        assert artifact.path.exists()

    def test_explicit_destination(self, project, tmp_path):
        destination = tmp_path / "named.zip"
        artifact, _ = run_export(project, MediaServer(), tmp_path, destination=destination)
        assert artifact.path == destination
        assert zipfile.is_zipfile(destination)

    def test_archive_error_propagates(self, project, tmp_path):
        destination = tmp_path / "missing" / "out.zip"
        with pytest.raises(ArchiveError):
            run_export(project, MediaServer(), tmp_path, destination=destination)

    def test_scratch_file_removed_on_archive_error(self, project, tmp_path, monkeypatch):
        async def broken_write(self, destination, result, on_progress=None):
            raise ArchiveError("disk full")

        monkeypatch.setattr("storyexport.core.archive.ArchiveBuilder.write", broken_write)
        with pytest.raises(ArchiveError):
            run_export(project, MediaServer(), tmp_path)
        assert list(tmp_path.iterdir()) == []


class TestLoadTaskRecords:
    """Tests for task-record resolution."""

    def test_inline_tasks_win(self, project, tasks):
        def loader(project_id):
            raise AssertionError("loader must not run")

        options = ExportOptions(tasks=tasks, task_loader=loader)
        loaded = asyncio.run(load_task_records(project, options, ExportResult()))
        assert [t.id for t in loaded] == [t.id for t in tasks]

    def test_loader_receives_project_id(self, project, tasks):
        seen = []

        def loader(project_id):
            seen.append(project_id)
            return tasks

        loaded = asyncio.run(load_task_records(project, ExportOptions(task_loader=loader), ExportResult()))
        assert seen == ["proj-1"]
        assert len(loaded) == 4

    def test_loader_failure_degrades_to_warning(self, project, tmp_path):
        def loader(project_id):
            raise ConnectionError("firestore down")

        artifact, _ = run_export(project, MediaServer(), tmp_path, task_loader=loader)

        assert len(artifact.result.warnings) == 1
        assert "firestore down" in artifact.result.warnings[0]
        # Shot-level assets still exported
        assert artifact.result.total_count == 6
        with zipfile.ZipFile(artifact.path) as archive:
            info = json.loads(archive.read("project_info.json"))
        assert info["warnings"] == artifact.result.warnings
