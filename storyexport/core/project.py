"""
Pydantic models for the project snapshot and generation-task records.

Snapshots arrive as camelCase JSON from the editor front end or as
snake_case documents from Firestore; both spellings are accepted.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SnapshotModel(BaseModel):
    """Base model for read-only snapshot data."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ProjectMetadata(SnapshotModel):
    title: str = ""
    description: str = ""
    art_style: str = ""
    created: Optional[datetime] = None
    modified: Optional[datetime] = None


class ProjectSettings(SnapshotModel):
    aspect_ratio: str = "16:9"
    fps: Optional[int] = None


class GenerationHistoryItem(SnapshotModel):
    """One past generation attempt for a shot."""

    id: str = ""
    type: Literal["image", "video"] = "image"
    result: str = ""
    prompt: str = ""
    status: str = "success"
    timestamp: Optional[datetime] = None


class Shot(SnapshotModel):
    id: str
    scene_id: str = ""
    order: int = 0
    global_order: Optional[int] = None
    shot_size: str = ""
    camera_movement: str = ""
    duration: float = 0
    description: str = ""
    narration: Optional[str] = None
    dialogue: Optional[str] = None
    status: str = "draft"

    # Assets
    reference_image: Optional[str] = None
    grid_images: List[str] = Field(default_factory=list)
    full_grid_url: Optional[str] = None
    video_clip: Optional[str] = None
    audio_track: Optional[str] = None
    generation_history: List[GenerationHistoryItem] = Field(default_factory=list)


class GridHistoryItem(SnapshotModel):
    id: str = ""
    full_grid_url: Optional[str] = None
    slices: List[str] = Field(default_factory=list)


class SceneGeneration(SnapshotModel):
    """Scene-level long video generation state."""

    task_id: str = ""
    status: str = "pending"
    video_url: Optional[str] = None


class Scene(SnapshotModel):
    id: str
    name: str = ""
    location: str = ""
    description: str = ""
    order: int = 0
    shot_ids: List[str] = Field(default_factory=list)
    grid_history: List[GridHistoryItem] = Field(default_factory=list)
    saved_grid_slices: List[str] = Field(default_factory=list)
    sora_generation: Optional[SceneGeneration] = None


class Character(SnapshotModel):
    id: str = ""
    name: str = ""
    reference_images: List[str] = Field(default_factory=list)


class Location(SnapshotModel):
    id: str = ""
    name: str = ""
    reference_images: List[str] = Field(default_factory=list)


class AudioAsset(SnapshotModel):
    id: str = ""
    name: str = ""
    type: str = "music"
    url: str = ""


class Project(SnapshotModel):
    """Read-only snapshot of a storyboard project taken at export time."""

    id: str = ""
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    script: str = ""
    scenes: List[Scene] = Field(default_factory=list)
    shots: List[Shot] = Field(default_factory=list)
    characters: List[Character] = Field(default_factory=list)
    locations: List[Location] = Field(default_factory=list)
    audio_assets: List[AudioAsset] = Field(default_factory=list)

    def shots_in_scene(self, scene: Scene) -> List[Shot]:
        """Shots of a scene in storyboard order."""
        shots = [shot for shot in self.shots if shot.scene_id == scene.id]
        if scene.shot_ids:
            position = {shot_id: i for i, shot_id in enumerate(scene.shot_ids)}
            shots.sort(key=lambda s: (position.get(s.id, len(position)), s.order))
        else:
            shots.sort(key=lambda s: s.order)
        return shots

    def global_shot_orders(self) -> Dict[str, int]:
        """
        Map shot id -> project-wide shot number.

        An explicit `globalOrder` wins; otherwise shots are numbered from 1
        walking scenes by their order. Shots outside every scene are
        numbered after the rest.
        """
        orders: Dict[str, int] = {}
        counter = 0
        for scene in sorted(self.scenes, key=lambda s: s.order):
            for shot in self.shots_in_scene(scene):
                if shot.id not in orders:
                    counter += 1
                    orders[shot.id] = counter
        for shot in sorted(self.shots, key=lambda s: s.order):
            if shot.id not in orders:
                counter += 1
                orders[shot.id] = counter
        for shot in self.shots:
            if shot.global_order is not None:
                orders[shot.id] = shot.global_order
        return orders


# -----------------------------------------------------------------------------
# Generation-task records
# -----------------------------------------------------------------------------

TASK_STATUS_COMPLETED = "completed"
TASK_TYPE_REFERENCE_ONLY = "character_reference"


class ShotRange(SnapshotModel):
    """Portion of a multi-shot task video belonging to one shot."""

    shot_id: str
    start: float = 0
    end: float = 0


class TaskRecord(SnapshotModel):
    """A video generation task tracked by the generation service."""

    id: str
    status: str = "queued"
    type: Optional[str] = None
    scene_id: Optional[str] = None
    shot_id: Optional[str] = None
    shot_ids: List[str] = Field(default_factory=list)
    shot_ranges: List[ShotRange] = Field(default_factory=list)
    r2_url: Optional[str] = None
    kaponai_url: Optional[str] = None
    model: str = ""
    created_at: Optional[datetime] = None

    @field_validator("shot_ids", "shot_ranges", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def artifact_urls(self) -> List[str]:
        """Non-empty artifact URLs, durable storage copy first."""
        urls: List[str] = []
        for url in (self.r2_url, self.kaponai_url):
            if url and url.strip() and url.strip() not in urls:
                urls.append(url.strip())
        return urls

    @property
    def associated_shot_ids(self) -> List[str]:
        ids: List[str] = []
        candidates = [self.shot_id, *self.shot_ids, *(r.shot_id for r in self.shot_ranges)]
        for shot_id in candidates:
            if shot_id and shot_id not in ids:
                ids.append(shot_id)
        return ids

    @property
    def is_exportable(self) -> bool:
        """Completed, has an artifact, and is not a reference-only task."""
        return (
            self.status == TASK_STATUS_COMPLETED
            and bool(self.artifact_urls)
            and self.type != TASK_TYPE_REFERENCE_ONLY
        )
