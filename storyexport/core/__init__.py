"""
Asset export pipeline.

Module Structure:
- urls.py: URL normalization and file-name helpers
- project.py: Project snapshot and task-record models
- models.py: MediaReference, FailureRecord, ExportResult
- collector.py: Deduplicating asset collection
- fetcher.py: Media fetching with retries and proxy fallback
- pool.py: Bounded worker pool
- archive.py: Archive layout, manifests and compression
- progress.py: Phase-tagged progress reporting
- exporter.py: Main export workflow
"""

from storyexport.core.archive import ArchiveBuilder, ArchiveError, archive_file_name
from storyexport.core.collector import AssetCollector, collect_references, format_shot_label
from storyexport.core.exporter import ExportOptions, export_project
from storyexport.core.fetcher import MediaFetcher, build_strategies
from storyexport.core.models import (
    ExportArtifact,
    ExportResult,
    FailureRecord,
    MediaKind,
    MediaReference,
    ReferenceSource,
    TargetFolder,
)
from storyexport.core.pool import BoundedWorkerPool
from storyexport.core.progress import ProgressEvent, ProgressPhase, ProgressReporter
from storyexport.core.project import Project, TaskRecord
from storyexport.core.urls import normalize_url

__all__ = [
    # Pipeline
    "export_project",
    "ExportOptions",
    "collect_references",
    "AssetCollector",
    "format_shot_label",
    "MediaFetcher",
    "build_strategies",
    "BoundedWorkerPool",
    "ArchiveBuilder",
    "ArchiveError",
    "archive_file_name",
    "normalize_url",
    # Data structures
    "ExportArtifact",
    "ExportResult",
    "FailureRecord",
    "MediaKind",
    "MediaReference",
    "ReferenceSource",
    "TargetFolder",
    "Project",
    "TaskRecord",
    # Progress
    "ProgressEvent",
    "ProgressPhase",
    "ProgressReporter",
]
