"""
Main project export workflow.

Orchestrates task loading, asset collection, bounded concurrent download
and archive assembly, reporting progress through the caller's reporter.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import httpx

from storyexport.config import (
    EXPORTS_DIR,
    FETCH_MAX_ATTEMPTS,
    FETCH_PROXY_URL,
    FETCH_RETRY_BACKOFF_SECONDS,
    FETCH_TIMEOUT_IMAGE_SECONDS,
    FETCH_TIMEOUT_MEDIA_SECONDS,
)
from storyexport.core.archive import ArchiveBuilder, archive_file_name, plan_archive_paths
from storyexport.core.collector import collect_references
from storyexport.core.fetcher import MediaFetcher, build_strategies
from storyexport.core.models import ExportArtifact, ExportResult, MediaReference
from storyexport.core.pool import BoundedWorkerPool, WorkUnit
from storyexport.core.progress import PhaseReporter, ProgressReporter
from storyexport.core.project import Project, TaskRecord

logger = logging.getLogger(__name__)

TaskLoader = Callable[[str], Sequence[TaskRecord]]


@dataclass
class ExportOptions:
    """Per-call configuration for `export_project`."""

    progress: Optional[ProgressReporter] = None
    concurrency: Optional[int] = None

    # Task records: inline list wins over the loader
    tasks: Optional[Sequence[TaskRecord]] = None
    task_loader: Optional[TaskLoader] = None

    # Fetch policy
    proxy_url: Optional[str] = FETCH_PROXY_URL
    max_attempts: int = FETCH_MAX_ATTEMPTS
    retry_backoff: float = FETCH_RETRY_BACKOFF_SECONDS
    image_timeout: float = FETCH_TIMEOUT_IMAGE_SECONDS
    media_timeout: float = FETCH_TIMEOUT_MEDIA_SECONDS
    client: Optional[httpx.AsyncClient] = None

    # Output
    destination: Optional[Path] = None
    output_dir: Path = EXPORTS_DIR


async def load_task_records(
    project: Project,
    options: ExportOptions,
    result: ExportResult,
) -> List[TaskRecord]:
    """
    Resolve the generation-task records for a project.

    A failing loader degrades to an empty list and a warning on `result`.
    """
    if options.tasks is not None:
        return list(options.tasks)
    if options.task_loader is None:
        return []
    try:
        return list(await asyncio.to_thread(options.task_loader, project.id))
    except Exception as e:
        message = f"Generation tasks unavailable, exporting without them: {e}"
        logger.warning(message)
        result.warnings.append(message)
        return []


def create_export_units(
    planned: Sequence[Tuple[MediaReference, str]],
    fetcher: MediaFetcher,
    builder: ArchiveBuilder,
) -> List[WorkUnit]:
    """One fetch-and-pack unit per planned archive entry."""

    def make_unit(ref: MediaReference, path: str) -> WorkUnit:
        async def unit() -> None:
            data = await fetcher.fetch(ref.url, ref.kind)
            if data is not None:
                builder.add_asset(path, data, ref.kind)

        return unit

    return [make_unit(ref, path) for ref, path in planned]


async def _download_assets(
    client: httpx.AsyncClient,
    planned: Sequence[Tuple[MediaReference, str]],
    builder: ArchiveBuilder,
    options: ExportOptions,
    result: ExportResult,
    reporter: PhaseReporter,
) -> None:
    fetcher = MediaFetcher(
        client,
        build_strategies(options.max_attempts, options.retry_backoff, options.proxy_url),
        failures=result.failures,
        image_timeout=options.image_timeout,
        media_timeout=options.media_timeout,
    )
    units = create_export_units(planned, fetcher, builder)
    reporter.download(0, len(units))
    await BoundedWorkerPool(options.concurrency).run(units, on_progress=reporter.download)


def _scratch_path(output_dir: Path, file_name: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="export_", suffix=f"_{file_name}", dir=output_dir)
    os.close(fd)
    return Path(path)


async def export_project(
    project: Project,
    options: Optional[ExportOptions] = None,
) -> ExportArtifact:
    """
    Export every asset of a project into one archive.

    This function orchestrates the export pipeline:
    1. Load generation-task records (degrades to none on failure)
    2. Collect and deduplicate media references
    3. Fetch assets through the bounded worker pool
    4. Write manifests and compress the archive

    Args:
        project: Project snapshot
        options: Per-call options; a fresh default is used when omitted

    Returns:
        ExportArtifact with the archive path and the ExportResult

    Raises:
        ArchiveError: If the archive itself cannot be written
    """
    options = options or ExportOptions()
    reporter = PhaseReporter(options.progress)
    result = ExportResult()

    logger.info(f"Starting export for project {project.id or project.metadata.title!r}")
    reporter.prepare("Loading generation tasks")
    tasks = await load_task_records(project, options, result)

    reporter.prepare("Collecting assets")
    references = collect_references(project, tasks)
    planned = plan_archive_paths(references)
    builder = ArchiveBuilder(project)

    if options.client is not None:
        await _download_assets(options.client, planned, builder, options, result, reporter)
    else:
        async with httpx.AsyncClient(timeout=options.media_timeout) as client:
            await _download_assets(client, planned, builder, options, result, reporter)

    file_name = archive_file_name(project.metadata.title)
    owns_destination = options.destination is None
    destination = options.destination or _scratch_path(options.output_dir, file_name)

    reporter.zip(0)
    try:
        await builder.write(destination, result, on_progress=reporter.zip)
    except BaseException:
        if owns_destination:
            destination.unlink(missing_ok=True)
        raise

    logger.info(
        f"Export complete: {result.total_count} assets packed, "
        f"{len(result.failures)} failed -> {destination}"
    )
    reporter.done(f"{result.total_count} assets exported, {len(result.failures)} failed")
    return ExportArtifact(file_name=file_name, path=destination, result=result)
