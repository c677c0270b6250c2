"""
Processor handler types and composable wrappers.

A processor is any `async def handler(job: Job) -> None`. Raising marks the
attempt as failed; returning marks it as successful.

Wrappers take a handler and return a new handler, so instrumentation is
explicit composition at registration time:

    queue.register_processor(
        ProcessorName.SEND_EMAIL,
        instrumented(with_deadline(send, 30.0), event="email"),
    )
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable

import structlog

from gatequeue.domain.models import Job

JobHandler = Callable[[Job], Awaitable[None]]

logger = structlog.get_logger(__name__)


def instrumented(handler: JobHandler, *, event: str) -> JobHandler:
    """Log start, completion (with duration) and failure of every call."""

    @functools.wraps(handler)
    async def wrapper(job: Job) -> None:
        log = logger.bind(event_group=event, queue=job.queue, job_id=job.id)
        started = time.perf_counter()
        log.debug("handler_started", attempt=job.attempts)
        try:
            await handler(job)
        except Exception as exc:
            log.warning(
                "handler_failed",
                attempt=job.attempts,
                error=str(exc),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        log.debug(
            "handler_finished",
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    return wrapper


def with_deadline(handler: JobHandler, seconds: float) -> JobHandler:
    """
    Bound a handler's run time.

    The queue engine never cancels handlers on its own; callers that want a
    timeout opt in here. Expiry raises TimeoutError, which the engine treats
    like any other processor failure.
    """

    @functools.wraps(handler)
    async def wrapper(job: Job) -> None:
        await asyncio.wait_for(handler(job), timeout=seconds)

    return wrapper
