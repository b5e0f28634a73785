#!/usr/bin/env python3
"""
CLI interface for the project export pipeline.

Usage:
    storyexport project.json --tasks tasks.json -o exports/

    # Or using Python module:
    python -m storyexport.cli project.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from storyexport.config import EXPORTS_DIR, FETCH_PROXY_URL
from storyexport.core.archive import ArchiveError, archive_file_name
from storyexport.core.exporter import ExportOptions, export_project
from storyexport.core.progress import ProgressEvent, ProgressPhase
from storyexport.core.project import Project, TaskRecord


def setup_logging(verbose: bool = False) -> None:
    """Route the package logger to stderr at the requested level; stdout carries the result JSON."""
    level = logging.DEBUG if verbose else logging.WARNING
    package_logger = logging.getLogger("storyexport")
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.setLevel(level)
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setStream(sys.stderr)


def print_progress(event: ProgressEvent) -> None:
    """Single-line progress on stderr."""
    if event.phase == ProgressPhase.DOWNLOAD:
        line = f"downloading {event.completed}/{event.total}"
    elif event.phase == ProgressPhase.ZIP:
        line = f"compressing {event.percent}%"
    else:
        line = f"{event.phase.value}: {event.message or ''}"
    print(line, file=sys.stderr)


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_project(path: Path) -> Project:
    return Project.model_validate(_read_json(path))


def load_tasks(path: Path) -> List[TaskRecord]:
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("tasks", [])
    return [TaskRecord.model_validate(item) for item in data]


def main(args: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Export every asset of a storyboard project into one zip archive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export a saved project snapshot
  %(prog)s project.json

  # Include generation-task records and write next to the snapshot
  %(prog)s project.json --tasks tasks.json -o .

  # Slow network: fewer parallel downloads, proxy fallback
  %(prog)s project.json --concurrency 2 --proxy https://example.com/api/fetch-media
        """,
    )
    parser.add_argument("project", help="Path to the project snapshot JSON")
    parser.add_argument(
        "--tasks", "-t",
        help="Path to a JSON list of generation-task records",
    )
    parser.add_argument(
        "--output-dir", "-o",
        default=str(EXPORTS_DIR),
        help="Directory for the archive (default: %(default)s)",
    )
    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        help="Parallel downloads",
    )
    parser.add_argument(
        "--proxy",
        default=FETCH_PROXY_URL,
        help="Fetch proxy URL used after direct attempts fail",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress progress output",
    )

    parsed = parser.parse_args(args)
    setup_logging(parsed.verbose)
    logger = logging.getLogger("storyexport.cli")

    try:
        project_path = Path(parsed.project)
        if not project_path.exists():
            logger.error(f"Project file not found: {project_path}")
            return 1

        project = load_project(project_path)
        tasks = None
        if parsed.tasks:
            tasks_path = Path(parsed.tasks)
            if not tasks_path.exists():
                logger.error(f"Tasks file not found: {tasks_path}")
                return 1
            tasks = load_tasks(tasks_path)

        output_dir = Path(parsed.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        options = ExportOptions(
            progress=None if parsed.quiet else print_progress,
            concurrency=parsed.concurrency,
            tasks=tasks,
            proxy_url=parsed.proxy or None,
            destination=output_dir / archive_file_name(project.metadata.title),
        )

        artifact = asyncio.run(export_project(project, options))

        print(json.dumps(
            {"archive": str(artifact.path), **artifact.result.to_dict()},
            ensure_ascii=False,
            indent=2,
        ))
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (ValidationError, json.JSONDecodeError, OSError) as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except ArchiveError as e:
        logger.error(f"Archive failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
