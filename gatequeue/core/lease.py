"""
LeaseKeeper — async context manager that keeps a claimed job's lease alive.

When a worker claims a job it moves into the queue's active set with a
score equal to its lease expiry. A reaper loop returns jobs with expired
leases to the waiting set, which is how jobs held by a crashed worker are
recovered. A live worker wraps the processor call in LeaseKeeper so a
long-running job is not reaped while it is still being worked on.

Usage
-----
    async with LeaseKeeper(queue, job.id, interval=timedelta(seconds=30)):
        await processor(job)

If the processor raises, the lease task is cancelled and the exception
propagates to the worker loop, which applies the retry policy.

LeaseKeeper is typed against the structural Protocol _HasLease, so any object
with an async extend_lease(job_id) works, including test doubles.
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import timedelta
from types import TracebackType
from typing import Protocol

import structlog

from gatequeue.domain.errors import JobNotFoundError, StorageError

logger = structlog.get_logger(__name__)


class _HasLease(Protocol):
    """Structural Protocol — any object with an async extend_lease(job_id) method."""

    async def extend_lease(self, job_id: str) -> None: ...


@dataclasses.dataclass
class LeaseKeeper:
    """
    Extends the lease of a single job at a fixed interval.

    Parameters
    ----------
    queue    : any object with async extend_lease(job_id: str) -> None
    job_id   : the job to keep leased
    interval : time between extensions (default 60 seconds)
    """

    queue: _HasLease
    job_id: str
    interval: timedelta = timedelta(seconds=60)

    _task: asyncio.Task[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    async def __aenter__(self) -> LeaseKeeper:
        self._task = asyncio.create_task(
            self._extend(), name=f"gatequeue-lease-{self.job_id}"
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _extend(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                await self.queue.extend_lease(self.job_id)
            except JobNotFoundError:
                # Job left the active set (reaped or removed).
                return
            except StorageError as exc:
                logger.warning(
                    "lease_extend_failed", job_id=self.job_id, error=str(exc)
                )
