import asyncio
from datetime import timedelta

import pytest

from gatequeue.core.lease import LeaseKeeper
from gatequeue.domain.errors import JobNotFoundError, StorageError

# ---------------------------------------------------------------------------
# Minimal queue stub
# ---------------------------------------------------------------------------


class _MockQueue:
    def __init__(self, side_effect: Exception | None = None) -> None:
        self.calls: list[str] = []
        self._side_effect = side_effect

    async def extend_lease(self, job_id: str) -> None:
        self.calls.append(job_id)
        if self._side_effect is not None:
            raise self._side_effect


# ---------------------------------------------------------------------------
# Basic operation
# ---------------------------------------------------------------------------


async def test_lease_extended_at_interval() -> None:
    queue = _MockQueue()
    async with LeaseKeeper(queue=queue, job_id="job-1", interval=timedelta(milliseconds=10)):
        await asyncio.sleep(0.08)

    assert len(queue.calls) >= 3
    assert all(jid == "job-1" for jid in queue.calls)


async def test_no_extension_after_exit() -> None:
    queue = _MockQueue()
    async with LeaseKeeper(queue=queue, job_id="job-1", interval=timedelta(milliseconds=10)):
        await asyncio.sleep(0.04)

    calls_at_exit = len(queue.calls)
    await asyncio.sleep(0.04)
    assert len(queue.calls) == calls_at_exit


# ---------------------------------------------------------------------------
# Task lifecycle
# ---------------------------------------------------------------------------


async def test_task_running_inside_context_and_cleared_after() -> None:
    keeper = LeaseKeeper(queue=_MockQueue(), job_id="j", interval=timedelta(seconds=100))
    async with keeper:
        assert keeper._task is not None
        assert not keeper._task.done()
    assert keeper._task is None


async def test_exception_in_body_still_cancels_task() -> None:
    keeper = LeaseKeeper(queue=_MockQueue(), job_id="j", interval=timedelta(seconds=100))
    with pytest.raises(ValueError):
        async with keeper:
            raise ValueError("processor error")
    assert keeper._task is None


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


async def test_job_not_found_stops_extension_silently() -> None:
    queue = _MockQueue(side_effect=JobNotFoundError("job-1"))
    async with LeaseKeeper(queue=queue, job_id="job-1", interval=timedelta(milliseconds=5)):
        await asyncio.sleep(0.04)

    assert len(queue.calls) == 1


async def test_storage_error_keeps_retrying() -> None:
    queue = _MockQueue(side_effect=StorageError("Redis move failed", ConnectionError("x")))
    async with LeaseKeeper(queue=queue, job_id="job-1", interval=timedelta(milliseconds=5)):
        await asyncio.sleep(0.05)

    assert len(queue.calls) >= 2


async def test_unexpected_error_propagates_through_exit() -> None:
    queue = _MockQueue(side_effect=RuntimeError("unexpected"))
    keeper = LeaseKeeper(queue=queue, job_id="job-1", interval=timedelta(milliseconds=5))
    with pytest.raises(RuntimeError, match="unexpected"):
        async with keeper:
            await asyncio.sleep(0.03)


def test_default_interval_is_60_seconds() -> None:
    assert LeaseKeeper(queue=_MockQueue(), job_id="j").interval == timedelta(seconds=60)
