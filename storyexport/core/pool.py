"""
Bounded worker pool for export units.

N workers drain one shared backlog, so a slow unit never leaves the other
workers idle. Retry policy belongs to the units, not the pool.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterator, Optional, Sequence, Tuple

from storyexport.config import (
    EXPORT_CONCURRENCY,
    EXPORT_MAX_CONCURRENCY_LIMIT,
    MIN_EXPORT_CONCURRENCY,
)

logger = logging.getLogger(__name__)

WorkUnit = Callable[[], Awaitable[None]]
ProgressCallback = Callable[[int, int], None]


def resolve_concurrency(requested: Optional[int] = None) -> int:
    """
    Clamp a requested worker count.

    Returns:
        Number of workers (between MIN_EXPORT_CONCURRENCY and EXPORT_MAX_CONCURRENCY_LIMIT)
    """
    value = EXPORT_CONCURRENCY if requested is None else requested
    return max(MIN_EXPORT_CONCURRENCY, min(EXPORT_MAX_CONCURRENCY_LIMIT, value))


class BoundedWorkerPool:
    """Runs work units with at most `concurrency` in flight."""

    def __init__(self, concurrency: Optional[int] = None):
        self.concurrency = resolve_concurrency(concurrency)

    async def run(
        self,
        units: Sequence[WorkUnit],
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Execute every unit exactly once.

        Args:
            units: Zero-argument coroutine functions
            on_progress: Called with (completed, total) after each unit

        Returns:
            Number of completed units
        """
        total = len(units)
        if total == 0:
            logger.debug("No export units to run")
            return 0

        backlog: Iterator[Tuple[int, WorkUnit]] = iter(enumerate(units))
        completed = [0]  # Using list for mutable reference
        workers = min(self.concurrency, total)

        async def worker(worker_id: int) -> None:
            # Claiming from the shared iterator is atomic on the event loop
            for index, unit in backlog:
                try:
                    await unit()
                except Exception as e:
                    logger.error(
                        f"Export unit {index} failed on worker {worker_id}: {e}",
                        exc_info=True,
                    )
                completed[0] += 1
                if on_progress is not None:
                    try:
                        on_progress(completed[0], total)
                    except Exception as e:
                        logger.warning(f"Progress callback failed at {completed[0]}/{total}: {e}")

        logger.info(f"Running {total} export units with {workers} workers")
        await asyncio.gather(*(worker(i) for i in range(workers)))
        return completed[0]
