import asyncio

import pytest

from gatequeue.core.handlers import instrumented, with_deadline
from gatequeue.domain.models import Job


async def test_instrumented_passes_through() -> None:
    seen: list[str] = []

    async def send_email(job: Job) -> None:
        seen.append(job.id)

    wrapped = instrumented(send_email, event="email")
    job = Job.new("email", {"to": "x"})
    await wrapped(job)
    assert seen == [job.id]
    assert wrapped.__name__ == "send_email"


async def test_instrumented_reraises() -> None:
    async def broken(job: Job) -> None:
        raise ValueError("bad payload")

    with pytest.raises(ValueError, match="bad payload"):
        await instrumented(broken, event="email")(Job.new("email", 1))


async def test_deadline_allows_fast_handlers() -> None:
    async def fast(job: Job) -> None:
        await asyncio.sleep(0)

    await with_deadline(fast, 1.0)(Job.new("q", 1))


async def test_deadline_raises_timeout() -> None:
    async def slow(job: Job) -> None:
        await asyncio.sleep(1)

    with pytest.raises(TimeoutError):
        await with_deadline(slow, 0.01)(Job.new("q", 1))
