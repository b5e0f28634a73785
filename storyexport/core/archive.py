"""
Archive assembly for project export.

Places fetched assets into the archive folder taxonomy, writes the manifest
documents and compresses everything into one zip file.
"""

import asyncio
import json
import logging
import posixpath
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from storyexport.config import (
    ARCHIVE_COMPRESSION_LEVEL,
    ARCHIVE_EXTENSION,
    DEFAULT_PROJECT_TITLE,
)
from storyexport.core.collector import format_shot_label
from storyexport.core.models import ExportResult, MediaKind, MediaReference
from storyexport.core.project import Project
from storyexport.core.urls import sanitize_name

logger = logging.getLogger(__name__)

PROJECT_INFO_FILE = "project_info.json"
STORYBOARD_JSON_FILE = "storyboard.json"
STORYBOARD_TEXT_FILE = "storyboard.txt"
SCRIPT_FILE = "script.txt"

RULE_HEAVY = "═" * 60
RULE_LIGHT = "-" * 60


class ArchiveError(Exception):
    """The archive could not be assembled. Fatal for the export."""
    pass


def archive_file_name(title: Optional[str]) -> str:
    """`<sanitized title>_assets.zip`"""
    return f"{sanitize_name(title, DEFAULT_PROJECT_TITLE)}_assets.{ARCHIVE_EXTENSION}"


def plan_archive_paths(references: Sequence[MediaReference]) -> List[Tuple[MediaReference, str]]:
    """
    Assign each reference a unique path inside the archive.

    Collisions get `_2`, `_3` ... suffixes in reference order, so placement
    never depends on which download finishes first.
    """
    used: set[str] = set()
    planned: List[Tuple[MediaReference, str]] = []
    for ref in references:
        path = ref.archive_path
        if path in used:
            stem, ext = posixpath.splitext(path)
            n = 2
            while f"{stem}_{n}{ext}" in used:
                n += 1
            path = f"{stem}_{n}{ext}"
        used.add(path)
        planned.append((ref, path))
    return planned


class ArchiveBuilder:
    """Collects archive entries for one export and writes the zip."""

    def __init__(self, project: Project, compression_level: int = ARCHIVE_COMPRESSION_LEVEL):
        self.project = project
        self.compression_level = compression_level
        self._assets: Dict[str, Tuple[MediaKind, bytes]] = {}
        self._orders = project.global_shot_orders()

    def add_asset(self, path: str, data: bytes, kind: MediaKind) -> None:
        self._assets[path] = (kind, data)

    @property
    def asset_paths(self) -> List[str]:
        return sorted(self._assets)

    def fold_counts(self, result: ExportResult) -> ExportResult:
        """Set the per-kind counts on `result` from the packed assets."""
        result.image_count = result.video_count = result.audio_count = 0
        for kind, _ in self._assets.values():
            result.count(kind)
        return result

    # -------------------------------------------------------------------------
    # Manifest documents
    # -------------------------------------------------------------------------

    def project_info(self, result: ExportResult) -> Dict[str, Any]:
        project = self.project
        return {
            "projectName": project.metadata.title,
            "description": project.metadata.description,
            "artStyle": project.metadata.art_style,
            "aspectRatio": project.settings.aspect_ratio,
            "sceneCount": len(project.scenes),
            "shotCount": len(project.shots),
            "imageCount": result.image_count,
            "videoCount": result.video_count,
            "audioCount": result.audio_count,
            "totalCount": result.total_count,
            "failedCount": len(result.failures),
            "failures": [failure.to_dict() for failure in result.failures],
            "warnings": list(result.warnings),
            "createdAt": _isoformat(project.metadata.created),
            "modifiedAt": _isoformat(project.metadata.modified),
            "exportedAt": datetime.now(timezone.utc).isoformat(),
        }

    def storyboard_data(self) -> Dict[str, Any]:
        project = self.project
        return {
            "projectName": project.metadata.title,
            "artStyle": project.metadata.art_style,
            "aspectRatio": project.settings.aspect_ratio,
            "scenes": [
                {
                    "id": scene.id,
                    "name": scene.name,
                    "location": scene.location,
                    "description": scene.description,
                    "shots": [
                        {
                            "id": shot.id,
                            "order": shot.order,
                            "globalOrder": self._orders.get(shot.id),
                            "shotSize": shot.shot_size,
                            "cameraMovement": shot.camera_movement,
                            "duration": shot.duration,
                            "description": shot.description,
                            "dialogue": shot.dialogue,
                            "narration": shot.narration,
                            "status": shot.status,
                            "hasReferenceImage": bool(shot.reference_image),
                            "hasVideo": bool(shot.video_clip),
                            "gridImagesCount": len(shot.grid_images),
                            "generationHistoryCount": len(shot.generation_history),
                        }
                        for shot in project.shots_in_scene(scene)
                    ],
                }
                for scene in sorted(project.scenes, key=lambda s: s.order)
            ],
        }

    def storyboard_text(self) -> str:
        project = self.project
        title = project.metadata.title or DEFAULT_PROJECT_TITLE
        lines = [
            title,
            "=" * len(title),
            "",
            f"Art style: {project.metadata.art_style or 'unspecified'}",
            f"Aspect ratio: {project.settings.aspect_ratio}",
            f"Scenes: {len(project.scenes)}",
            f"Shots: {len(project.shots)}",
            "",
        ]

        for scene in sorted(project.scenes, key=lambda s: s.order):
            lines += ["", RULE_HEAVY, f"Scene: {scene.name}"]
            if scene.location:
                lines.append(f"Location: {scene.location}")
            lines += [RULE_HEAVY, ""]

            for shot in project.shots_in_scene(scene):
                order = self._orders.get(shot.id)
                label = format_shot_label([order] if order is not None else [])
                lines += [
                    f"[Shot #{label}]",
                    f"  Size: {shot.shot_size}",
                    f"  Camera: {shot.camera_movement}",
                    f"  Duration: {shot.duration:g}s",
                    f"  Status: {shot.status}",
                    "",
                    "  Visual description:",
                    f"  {shot.description}",
                    "",
                ]
                if shot.dialogue:
                    lines += ["  Dialogue:", f'  "{shot.dialogue}"', ""]
                if shot.narration:
                    lines += ["  Narration:", f"  {shot.narration}", ""]
                lines += [
                    "  Assets:",
                    f"    - Reference image: {'yes' if shot.reference_image else 'no'}",
                    f"    - Video: {'yes' if shot.video_clip else 'no'}",
                    f"    - Grid slices: {len(shot.grid_images)}",
                    f"    - Generation history: {len(shot.generation_history)} entries",
                    "",
                    RULE_LIGHT,
                    "",
                ]

        return "\n".join(lines) + "\n"

    def documents(self, result: ExportResult) -> List[Tuple[str, bytes]]:
        docs = [
            (PROJECT_INFO_FILE, _json_bytes(self.project_info(result))),
            (STORYBOARD_JSON_FILE, _json_bytes(self.storyboard_data())),
            (STORYBOARD_TEXT_FILE, self.storyboard_text().encode("utf-8")),
        ]
        if self.project.script:
            docs.append((SCRIPT_FILE, self.project.script.encode("utf-8")))
        return docs

    # -------------------------------------------------------------------------
    # Compression
    # -------------------------------------------------------------------------

    async def write(
        self,
        destination: Path,
        result: ExportResult,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> ExportResult:
        """
        Compress manifests and assets into `destination`.

        Counts are folded into `result` before the manifests are rendered.
        `on_progress` receives the percentage of input bytes compressed, once
        per change after each entry; 0% is left to the caller.

        Raises:
            ArchiveError: If the archive cannot be written
        """
        self.fold_counts(result)
        entries = self.documents(result) + [
            (path, self._assets[path][1]) for path in self.asset_paths
        ]
        total_bytes = sum(len(data) for _, data in entries) or 1
        written = 0
        last_percent = 0  # callers announce 0% before writing

        logger.info(f"Compressing {len(entries)} entries into {destination.name}")
        try:
            with zipfile.ZipFile(
                destination,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compression_level,
            ) as archive:
                for name, data in entries:
                    await asyncio.to_thread(archive.writestr, name, data)
                    written += len(data)
                    percent = min(100, written * 100 // total_bytes)
                    if on_progress is not None and percent != last_percent:
                        on_progress(percent)
                        last_percent = percent
        except Exception as e:
            logger.error(f"Failed to write archive {destination}: {e}", exc_info=True)
            raise ArchiveError(f"Failed to write archive: {e}") from e

        return result


def _json_bytes(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
