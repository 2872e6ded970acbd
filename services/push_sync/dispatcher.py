"""Bounded pool for detached push processing jobs."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class PushDispatcher:
    """Runs push jobs in the background and hands back awaitable tasks.

    At most ``max_concurrent`` jobs run at once; the rest wait their turn.
    A job that exceeds ``timeout`` seconds is cancelled. Job failures are
    logged here and never reach whoever submitted the job.
    """

    def __init__(self, max_concurrent: int = 8, timeout: Optional[float] = None):
        self.max_concurrent = max_concurrent
        self.timeout = timeout
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job: Callable[[], Awaitable[Any]], name: str = "push") -> asyncio.Task:
        """Schedule ``job`` and return its task handle."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        task = asyncio.create_task(self._run(job, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, job: Callable[[], Awaitable[Any]], name: str) -> Any:
        async with self._semaphore:
            try:
                if self.timeout is None:
                    return await job()
                return await asyncio.wait_for(job(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.error(f"Job {name} timed out after {self.timeout}s")
            except asyncio.CancelledError:
                logger.warning(f"Job {name} cancelled")
                raise
            except Exception as e:
                logger.exception(f"Job {name} failed: {e}")
            return None

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for every in-flight job. Returns False if ``timeout`` expired."""
        if not self._tasks:
            return True
        done, not_done = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"Cancelled {len(not_done)} unfinished push jobs")
        return not not_done
