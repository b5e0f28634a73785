"""
Asset collection for project export.

Merges the media referenced by generation tasks, scenes, shots, shot
history and project-level assets into one deduplicated set of
`MediaReference`s keyed by normalized URL.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from storyexport.core.models import (
    MediaKind,
    MediaReference,
    ReferenceSource,
    TargetFolder,
)
from storyexport.core.project import Project, TaskRecord
from storyexport.core.urls import guess_extension, normalize_url, sanitize_name

logger = logging.getLogger(__name__)

SHOT_ORDER_WIDTH = 3
RANGE_SEPARATOR = "-"
LIST_SEPARATOR = "_"
UNASSIGNED_PREFIX = "unassigned"

SCENE_VIDEO_DONE_STATUSES = {"success", "completed"}
AUDIO_TYPE_EXTENSIONS = {"music": "mp3", "voice": "wav"}


def format_shot_label(orders: Iterable[int]) -> str:
    """
    Render shot numbers as a file-name prefix.

    `[14, 15, 16]` -> `014-016`, `[14, 16]` -> `014_016`, `[]` -> `unassigned`.
    """
    numbers = sorted(set(orders))
    if not numbers:
        return UNASSIGNED_PREFIX
    padded = [f"{n:0{SHOT_ORDER_WIDTH}d}" for n in numbers]
    if len(padded) == 1:
        return padded[0]
    if numbers[-1] - numbers[0] == len(numbers) - 1:
        return f"{padded[0]}{RANGE_SEPARATOR}{padded[-1]}"
    return LIST_SEPARATOR.join(padded)


class AssetCollector:
    """
    Deduplicating map from resource identity to `MediaReference`.

    Identity starts as the normalized URL. `alias` declares two URLs to be
    the same physical resource; both keys then resolve to one shared
    reference object.
    """

    def __init__(self) -> None:
        self._parent: Dict[str, str] = {}
        self._refs: Dict[str, MediaReference] = {}

    def _find(self, key: str) -> str:
        root = key
        while self._parent.get(root, root) != root:
            root = self._parent[root]
        # Path compression
        while key != root:
            next_key = self._parent.get(key, key)
            self._parent[key] = root
            key = next_key
        return root

    def add(self, candidate: MediaReference) -> MediaReference:
        """Insert a candidate or merge it into the reference already stored."""
        root = self._find(candidate.normalized_url)
        existing = self._refs.get(root)
        if existing is None:
            self._refs[root] = candidate
            return candidate
        existing.merge(candidate)
        return existing

    def alias(self, url: str, other_url: str) -> None:
        """Declare `other_url` to denote the same resource as `url`."""
        root = self._find(normalize_url(url))
        other_root = self._find(normalize_url(other_url))
        if root == other_root:
            return
        self._parent[other_root] = root
        other = self._refs.pop(other_root, None)
        if other is None:
            return
        existing = self._refs.get(root)
        if existing is None:
            self._refs[root] = other
        else:
            existing.merge(other)

    def get(self, url: str) -> Optional[MediaReference]:
        return self._refs.get(self._find(normalize_url(url)))

    def __len__(self) -> int:
        return len(self._refs)

    def references(self) -> List[MediaReference]:
        """Unique references ordered by archive folder, then file name."""
        return sorted(
            self._refs.values(),
            key=lambda ref: (ref.target_folder.rank, ref.file_name, ref.normalized_url),
        )


def _reference(
    url: str,
    source: ReferenceSource,
    file_stem: str,
    folder: TargetFolder,
    kind: MediaKind,
    shot_ids: Iterable[str] = (),
    task_ids: Iterable[str] = (),
    assigned: bool = False,
    extension: Optional[str] = None,
) -> MediaReference:
    url = url.strip()
    ext = extension or guess_extension(url, kind.value)
    return MediaReference(
        url=url,
        normalized_url=normalize_url(url),
        source=source,
        priority=source.priority,
        file_name=f"{file_stem}.{ext}",
        target_folder=folder,
        kind=kind,
        associated_shot_ids=set(shot_ids),
        associated_task_ids=set(task_ids),
        assigned=assigned,
    )


# -----------------------------------------------------------------------------
# Source collections
# -----------------------------------------------------------------------------

def exportable_tasks(tasks: Iterable[TaskRecord]) -> List[TaskRecord]:
    """Completed tasks with an artifact that are not reference-only."""
    return [task for task in tasks if task.is_exportable]


def task_record_references(
    tasks: Sequence[TaskRecord],
    orders: Dict[str, int],
) -> Iterator[tuple[MediaReference, List[str]]]:
    """Yield each task's video reference with its mirror URLs."""
    for task in exportable_tasks(tasks):
        shot_ids = [shot_id for shot_id in task.associated_shot_ids if shot_id in orders]
        label = format_shot_label(orders[shot_id] for shot_id in shot_ids)
        assigned = bool(shot_ids)
        primary, *mirrors = task.artifact_urls
        ref = _reference(
            primary,
            ReferenceSource.TASK_RECORD,
            f"{label}_task_{sanitize_name(task.id, 'task')}",
            TargetFolder.VIDEOS_TASKS_ASSIGNED if assigned else TargetFolder.VIDEOS_TASKS_UNASSIGNED,
            MediaKind.VIDEO,
            shot_ids=shot_ids,
            task_ids=[task.id],
            assigned=assigned,
        )
        yield ref, mirrors


def scene_artifact_references(project: Project, orders: Dict[str, int]) -> Iterator[MediaReference]:
    """Scene long videos and scene-level grid images."""
    for scene in sorted(project.scenes, key=lambda s: s.order):
        shot_ids = [shot.id for shot in project.shots_in_scene(scene) if shot.id in orders]
        label = format_shot_label(orders[shot_id] for shot_id in shot_ids)
        scene_name = sanitize_name(scene.name, "scene")

        generation = scene.sora_generation
        if generation and generation.video_url and generation.status in SCENE_VIDEO_DONE_STATUSES:
            yield _reference(
                generation.video_url,
                ReferenceSource.SCENE_ARTIFACT,
                f"{label}_scene_{scene_name}",
                TargetFolder.VIDEOS_SELECTED,
                MediaKind.VIDEO,
                shot_ids=shot_ids,
                task_ids=[generation.task_id] if generation.task_id else [],
                assigned=bool(shot_ids),
            )

        for i, grid in enumerate(scene.grid_history, start=1):
            if grid.full_grid_url:
                yield _reference(
                    grid.full_grid_url,
                    ReferenceSource.SCENE_ARTIFACT,
                    f"{label}_{scene_name}_grid_{i}_full",
                    TargetFolder.IMAGES_HISTORY,
                    MediaKind.IMAGE,
                    shot_ids=shot_ids,
                )
            for j, slice_url in enumerate(grid.slices, start=1):
                if slice_url:
                    yield _reference(
                        slice_url,
                        ReferenceSource.SCENE_ARTIFACT,
                        f"{label}_{scene_name}_grid_{i}_slice_{j}",
                        TargetFolder.IMAGES_HISTORY,
                        MediaKind.IMAGE,
                        shot_ids=shot_ids,
                    )

        for j, slice_url in enumerate(scene.saved_grid_slices, start=1):
            if slice_url:
                yield _reference(
                    slice_url,
                    ReferenceSource.SCENE_ARTIFACT,
                    f"{label}_{scene_name}_saved_slice_{j}",
                    TargetFolder.IMAGES_HISTORY,
                    MediaKind.IMAGE,
                    shot_ids=shot_ids,
                )


def shot_clip_references(project: Project, orders: Dict[str, int]) -> Iterator[MediaReference]:
    """Each shot's current clip, selected image, grid slices and audio."""
    for shot in project.shots:
        label = format_shot_label([orders[shot.id]] if shot.id in orders else [])
        source = ReferenceSource.SHOT_CLIP

        if shot.video_clip:
            yield _reference(
                shot.video_clip, source, f"{label}_video",
                TargetFolder.VIDEOS_SELECTED, MediaKind.VIDEO,
                shot_ids=[shot.id], assigned=True,
            )
        if shot.reference_image:
            yield _reference(
                shot.reference_image, source, f"{label}_selected",
                TargetFolder.IMAGES_SELECTED, MediaKind.IMAGE,
                shot_ids=[shot.id], assigned=True,
            )
        for i, slice_url in enumerate(shot.grid_images, start=1):
            if slice_url:
                yield _reference(
                    slice_url, source, f"{label}_grid_slice_{i}",
                    TargetFolder.IMAGES_HISTORY, MediaKind.IMAGE,
                    shot_ids=[shot.id],
                )
        if shot.full_grid_url:
            yield _reference(
                shot.full_grid_url, source, f"{label}_full_grid",
                TargetFolder.IMAGES_HISTORY, MediaKind.IMAGE,
                shot_ids=[shot.id],
            )
        if shot.audio_track:
            yield _reference(
                shot.audio_track, source, f"{label}_audio",
                TargetFolder.AUDIO, MediaKind.AUDIO,
                shot_ids=[shot.id], assigned=True,
            )


def shot_history_references(project: Project, orders: Dict[str, int]) -> Iterator[MediaReference]:
    """Past generation results kept in each shot's history."""
    for shot in project.shots:
        label = format_shot_label([orders[shot.id]] if shot.id in orders else [])
        selected_image = normalize_url(shot.reference_image or "")
        selected_video = normalize_url(shot.video_clip or "")

        for i, item in enumerate(shot.generation_history, start=1):
            if not item.result or item.status == "failed":
                continue
            key = normalize_url(item.result)
            if item.type == "video":
                yield _reference(
                    item.result,
                    ReferenceSource.SHOT_HISTORY,
                    f"{label}_history_{i}",
                    TargetFolder.VIDEOS_HISTORY,
                    MediaKind.VIDEO,
                    shot_ids=[shot.id],
                    assigned=bool(selected_video) and key == selected_video,
                )
                continue
            is_selected = bool(selected_image) and key == selected_image
            yield _reference(
                item.result,
                ReferenceSource.SHOT_HISTORY,
                f"{label}_selected_history_{i}" if is_selected else f"{label}_history_{i}",
                TargetFolder.IMAGES_SELECTED if is_selected else TargetFolder.IMAGES_HISTORY,
                MediaKind.IMAGE,
                shot_ids=[shot.id],
                assigned=is_selected,
            )


def project_asset_references(project: Project) -> Iterator[MediaReference]:
    """Character and location reference images plus project audio."""
    source = ReferenceSource.PROJECT_ASSET
    for character in project.characters:
        name = sanitize_name(character.name, "character")
        for i, url in enumerate(character.reference_images, start=1):
            if url:
                yield _reference(url, source, f"{name}_{i}", TargetFolder.IMAGES_CHARACTERS, MediaKind.IMAGE)

    for location in project.locations:
        name = sanitize_name(location.name, "location")
        for i, url in enumerate(location.reference_images, start=1):
            if url:
                yield _reference(url, source, f"{name}_{i}", TargetFolder.IMAGES_LOCATIONS, MediaKind.IMAGE)

    for i, audio in enumerate(project.audio_assets, start=1):
        if not audio.url:
            continue
        yield _reference(
            audio.url,
            source,
            sanitize_name(audio.name, f"audio_{i}"),
            TargetFolder.AUDIO,
            MediaKind.AUDIO,
            extension=AUDIO_TYPE_EXTENSIONS.get(audio.type),
        )


def collect_references(
    project: Project,
    tasks: Sequence[TaskRecord] = (),
) -> List[MediaReference]:
    """
    Build the deduplicated reference set for a project snapshot.

    Args:
        project: Project snapshot
        tasks: Generation-task records for the project (unfiltered)

    Returns:
        Unique MediaReferences ordered by archive folder and file name
    """
    collector = AssetCollector()
    orders = project.global_shot_orders()

    for ref, mirrors in task_record_references(tasks, orders):
        collector.add(ref)
        for mirror in mirrors:
            collector.alias(ref.url, mirror)

    for candidates in (
        scene_artifact_references(project, orders),
        shot_clip_references(project, orders),
        shot_history_references(project, orders),
        project_asset_references(project),
    ):
        for candidate in candidates:
            collector.add(candidate)

    references = collector.references()
    logger.info(
        f"Collected {len(references)} unique assets for project "
        f"{project.id or project.metadata.title!r} ({len(tasks)} task records)"
    )
    return references
