"""
Data structures for the asset export pipeline.

Contains the deduplicated media reference, per-asset failure records and
the export result returned to callers.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Set


class ReferenceSource(str, Enum):
    """Subsystem a media reference was discovered in."""

    TASK_RECORD = "task-record"
    SCENE_ARTIFACT = "scene-artifact"
    SHOT_CLIP = "shot-clip"
    SHOT_HISTORY = "shot-history"
    PROJECT_ASSET = "project-asset"

    @property
    def priority(self) -> int:
        """Lower is more authoritative for naming and placement."""
        return SOURCE_PRIORITY[self]


SOURCE_PRIORITY: Dict[ReferenceSource, int] = {
    ReferenceSource.TASK_RECORD: 1,
    ReferenceSource.SCENE_ARTIFACT: 2,
    ReferenceSource.SHOT_CLIP: 3,
    ReferenceSource.SHOT_HISTORY: 4,
    ReferenceSource.PROJECT_ASSET: 5,
}


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class TargetFolder(str, Enum):
    """Folder inside the export archive. Declaration order is archive order."""

    IMAGES_SELECTED = "images/selected"
    IMAGES_HISTORY = "images/history"
    IMAGES_CHARACTERS = "images/characters"
    IMAGES_LOCATIONS = "images/locations"
    VIDEOS_SELECTED = "videos/selected"
    VIDEOS_HISTORY = "videos/history"
    VIDEOS_TASKS_ASSIGNED = "videos/tasks/assigned"
    VIDEOS_TASKS_UNASSIGNED = "videos/tasks/unassigned"
    AUDIO = "audio"

    @property
    def rank(self) -> int:
        return list(TargetFolder).index(self)


@dataclass
class MediaReference:
    """One fetchable asset plus its provenance and placement metadata."""

    url: str
    normalized_url: str
    source: ReferenceSource
    priority: int
    file_name: str
    target_folder: TargetFolder
    kind: MediaKind
    associated_shot_ids: Set[str] = field(default_factory=set)
    associated_task_ids: Set[str] = field(default_factory=set)
    assigned: bool = False

    def merge(self, other: "MediaReference") -> None:
        """
        Fold another reference to the same resource into this one.

        Associations are unioned and `assigned` is OR-ed. Naming, placement
        and kind move over only when `other` is strictly more authoritative.
        """
        self.associated_shot_ids |= other.associated_shot_ids
        self.associated_task_ids |= other.associated_task_ids
        self.assigned = self.assigned or other.assigned
        if other.priority < self.priority:
            self.url = other.url
            self.priority = other.priority
            self.source = other.source
            self.file_name = other.file_name
            self.target_folder = other.target_folder
            self.kind = other.kind

    @property
    def archive_path(self) -> str:
        return f"{self.target_folder.value}/{self.file_name}"


@dataclass(frozen=True)
class FailureRecord:
    """An asset that could not be fetched. Never raised, only collected."""

    asset_type: str
    url: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"assetType": self.asset_type, "url": self.url, "reason": self.reason}


@dataclass
class ExportResult:
    """Summary of one export run."""

    image_count: int = 0
    video_count: int = 0
    audio_count: int = 0
    failures: List[FailureRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return self.image_count + self.video_count + self.audio_count

    def count(self, kind: MediaKind) -> None:
        if kind == MediaKind.IMAGE:
            self.image_count += 1
        elif kind == MediaKind.VIDEO:
            self.video_count += 1
        else:
            self.audio_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imageCount": self.image_count,
            "videoCount": self.video_count,
            "audioCount": self.audio_count,
            "totalCount": self.total_count,
            "failures": [failure.to_dict() for failure in self.failures],
            "warnings": list(self.warnings),
        }


@dataclass
class ExportArtifact:
    """The archive written by an export run and its result."""

    file_name: str
    path: Path
    result: ExportResult
