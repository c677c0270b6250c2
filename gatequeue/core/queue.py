"""
JobQueue — priority / delayed job queue over a KeyValueStorePort.

Store layout (all keys namespaced by queue name)
-------------------------------------------------
  queue:<name>:job:<id>     JSON job record, expires after job_ttl_seconds
  queue:<name>:waiting      sorted set, score = priority (pop-max)
  queue:<name>:delayed      sorted set, score = due time in epoch ms
  queue:<name>:active       sorted set, score = lease expiry in epoch ms
  queue:<name>:completed    counter
  queue:<name>:failed       counter

A job lives in at most one of the three sets at a time. Every hand-over
between sets is a single atomic store operation (claim / move / pipeline),
so any number of worker loops, promoters and reapers may share one queue
namespace across processes.

Processing
----------
start_processing() spawns, as asyncio tasks:

  - `concurrency` worker loops: claim max-priority id → load record →
    run processor under a LeaseKeeper → complete, retry or fail
  - one promotion loop: move due ids from delayed to waiting at their priority
  - one reaper loop: move ids whose lease expired from active back to waiting

Retries never touch the waiting set directly: a failed attempt is scheduled
into the delayed set at now + retry_delay_ms * 2 ** (attempts - 1) and
re-enters waiting through promotion, so the waiting set is only ever scored
by priority.

stop_processing() is cooperative. Loops observe the stop event at iteration
boundaries; a handler that is running is allowed to finish.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any

import pydantic
import structlog

from gatequeue.core import codec
from gatequeue.core.handlers import JobHandler
from gatequeue.core.lease import LeaseKeeper
from gatequeue.domain.errors import (
    AlreadyProcessingError,
    JobNotFoundError,
    ProcessorNotFoundError,
    QueueError,
    StorageError,
    ValidationError,
)
from gatequeue.domain.models import (
    Job,
    JobSpec,
    JobStatus,
    ProcessOptions,
    QueueConfig,
    QueueStats,
    epoch_ms,
)
from gatequeue.ports.store import KeyValueStorePort, PipelinePort

logger = structlog.get_logger(__name__)


def processor_key(name: str | Enum) -> str:
    """Registry key for a processor name given as a plain str or an Enum member."""
    value = name.value if isinstance(name, Enum) else name
    return str(value)


@dataclasses.dataclass
class JobQueue:
    """
    One named queue and its worker pool.

    Parameters
    ----------
    store  : any KeyValueStorePort implementation
    config : static queue configuration (name, retry policy, concurrency)
    """

    store: KeyValueStorePort
    config: QueueConfig

    _processors: dict[str, JobHandler] = dataclasses.field(
        default_factory=dict, init=False, repr=False
    )
    _tasks: list[asyncio.Task[None]] = dataclasses.field(
        default_factory=list, init=False, repr=False
    )
    _draining: list[asyncio.Task[None]] = dataclasses.field(
        default_factory=list, init=False, repr=False
    )
    # One event per run; loops only ever watch the event they were started with.
    _stop: asyncio.Event | None = dataclasses.field(default=None, init=False, repr=False)
    _active_processor: str | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    # ------------------------------------------------------------------ #
    # Properties                                                           #
    # ------------------------------------------------------------------ #

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_processing(self) -> bool:
        return self._stop is not None and not self._stop.is_set()

    @property
    def active_processor(self) -> str | None:
        return self._active_processor

    @property
    def processors(self) -> Mapping[str, JobHandler]:
        return MappingProxyType(self._processors)

    @property
    def waiting_key(self) -> str:
        return f"queue:{self.name}:waiting"

    @property
    def delayed_key(self) -> str:
        return f"queue:{self.name}:delayed"

    @property
    def active_key(self) -> str:
        return f"queue:{self.name}:active"

    @property
    def completed_key(self) -> str:
        return f"queue:{self.name}:completed"

    @property
    def failed_key(self) -> str:
        return f"queue:{self.name}:failed"

    def job_key(self, job_id: str) -> str:
        return f"queue:{self.name}:job:{job_id}"

    @property
    def lease(self) -> timedelta:
        return timedelta(seconds=self.config.lease_timeout_seconds)

    def backoff_ms(self, attempts: int) -> int:
        """Delay before the retry that follows the `attempts`-th failure."""
        return self.config.retry_delay_ms * 2 ** max(0, attempts - 1)

    # ------------------------------------------------------------------ #
    # Submission                                                           #
    # ------------------------------------------------------------------ #

    async def enqueue(
        self,
        data: Any,
        *,
        priority: int | None = None,
        delay: int = 0,
        attempts: int = 0,
        max_attempts: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Add a job. Returns its id.

        delay is in milliseconds. Raises ValidationError for bad input and
        QueueError when the store write fails (retryable).
        """
        job = self._build(
            JobSpec(
                data=data,
                priority=priority,
                delay=delay,
                attempts=attempts,
                max_attempts=max_attempts,
                metadata=metadata,
            )
        )
        pipe = self.store.pipeline()
        self._stage(pipe, job)
        await self._execute(pipe, "enqueue", job_id=job.id)
        logger.info(
            "job_added",
            queue=self.name,
            job_id=job.id,
            priority=job.priority,
            delay=job.delay,
        )
        return job.id

    async def enqueue_batch(
        self, jobs: Iterable[JobSpec | Mapping[str, Any]]
    ) -> list[str]:
        """
        Add several jobs in one pipelined submission. Returns ids in order.

        Every item is validated before anything is written; a transport
        failure during the pipeline is reported as QueueError.
        """
        built: list[Job] = []
        for index, item in enumerate(jobs):
            try:
                spec = item if isinstance(item, JobSpec) else JobSpec.model_validate(item)
            except pydantic.ValidationError as exc:
                raise ValidationError(
                    f"Invalid job at index {index}",
                    details=exc.errors(include_url=False, include_context=False),
                ) from exc
            built.append(self._build(spec, index=index))
        if not built:
            return []

        pipe = self.store.pipeline()
        for job in built:
            self._stage(pipe, job)
        await self._execute(pipe, "enqueue_batch", count=len(built))
        logger.info("jobs_added", queue=self.name, count=len(built))
        return [job.id for job in built]

    def _build(self, spec: JobSpec, index: int | None = None) -> Job:
        where = "" if index is None else f" at index {index}"
        if spec.data is None:
            raise ValidationError(f"Job data is required{where}")
        if spec.delay < 0:
            raise ValidationError(f"Job delay must be >= 0{where}")
        max_attempts = (
            self.config.max_attempts if spec.max_attempts is None else spec.max_attempts
        )
        if max_attempts < 1:
            raise ValidationError(f"Job max_attempts must be >= 1{where}")
        try:
            return Job.new(
                self.name,
                spec.data,
                priority=(
                    self.config.default_priority if spec.priority is None else spec.priority
                ),
                delay=spec.delay,
                attempts=spec.attempts,
                max_attempts=max_attempts,
                metadata=spec.metadata,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"Invalid job{where}",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    def _stage(self, pipe: PipelinePort, job: Job) -> None:
        pipe.set(self.job_key(job.id), codec.encode(job), ttl=self.config.job_ttl_seconds)
        if job.delay > 0:
            pipe.zadd(self.delayed_key, {job.id: float(epoch_ms() + job.delay)})
        else:
            pipe.zadd(self.waiting_key, {job.id: float(job.priority)})

    async def _execute(self, pipe: PipelinePort, what: str, **context: Any) -> None:
        try:
            await pipe.execute()
        except StorageError as exc:
            logger.error(f"{what}_failed", queue=self.name, error=str(exc), **context)
            raise QueueError(self.name, f"{what} failed: {exc.cause}") from exc

    # ------------------------------------------------------------------ #
    # Inspection and removal                                               #
    # ------------------------------------------------------------------ #

    async def get_job(self, job_id: str) -> Job | None:
        """
        Return the job record, or None if it expired or was removed.

        For non-terminal jobs the status and lease reflect current set
        membership rather than the last write to the record.
        """
        try:
            job = codec.decode(await self.store.get(self.job_key(job_id)))
            if job is None or job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
                return job
            return await self._with_live_status(job)
        except StorageError as exc:
            raise QueueError(self.name, f"get_job failed: {exc.cause}") from exc
        except pydantic.ValidationError as exc:
            logger.error("job_record_corrupt", queue=self.name, job_id=job_id, error=str(exc))
            raise QueueError(self.name, f"job {job_id!r} has an unreadable record") from exc

    async def require_job(self, job_id: str) -> Job:
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def _with_live_status(self, job: Job) -> Job:
        lease_ms = await self.store.zscore(self.active_key, job.id)
        if lease_ms is not None:
            expires = datetime.fromtimestamp(lease_ms / 1000, tz=UTC)
            return job.model_copy(
                update={"status": JobStatus.ACTIVE, "lease_expires_at": expires}
            )
        if await self.store.zscore(self.waiting_key, job.id) is not None:
            return job.model_copy(update={"status": JobStatus.WAITING})
        if await self.store.zscore(self.delayed_key, job.id) is not None:
            return job.model_copy(update={"status": JobStatus.DELAYED})
        return job

    async def remove_job(self, job_id: str) -> bool:
        """Delete the record and every set membership. Idempotent."""
        pipe = (
            self.store.pipeline()
            .delete(self.job_key(job_id))
            .zrem(self.waiting_key, job_id)
            .zrem(self.delayed_key, job_id)
            .zrem(self.active_key, job_id)
        )
        await self._execute(pipe, "remove_job", job_id=job_id)
        logger.info("job_removed", queue=self.name, job_id=job_id)
        return True

    async def clear(self) -> int:
        """Delete every job, set and counter of this queue. Returns jobs removed."""
        try:
            ids: list[str] = []
            for key in (self.waiting_key, self.delayed_key, self.active_key):
                ids.extend(await self.store.zrange(key))
        except StorageError as exc:
            raise QueueError(self.name, f"clear failed: {exc.cause}") from exc

        pipe = self.store.pipeline()
        if ids:
            pipe.delete(*(self.job_key(job_id) for job_id in ids))
        pipe.delete(
            self.waiting_key,
            self.delayed_key,
            self.active_key,
            self.completed_key,
            self.failed_key,
        )
        await self._execute(pipe, "clear")
        logger.info("queue_cleared", queue=self.name, count=len(ids))
        return len(ids)

    async def get_stats(self) -> QueueStats:
        try:
            return QueueStats(
                waiting=await self.store.zcard(self.waiting_key),
                delayed=await self.store.zcard(self.delayed_key),
                processing=await self.store.zcard(self.active_key),
                completed=int(await self.store.get(self.completed_key) or 0),
                failed=int(await self.store.get(self.failed_key) or 0),
            )
        except StorageError as exc:
            raise QueueError(self.name, f"get_stats failed: {exc.cause}") from exc

    # ------------------------------------------------------------------ #
    # Processors and lifecycle                                             #
    # ------------------------------------------------------------------ #

    def register_processor(self, name: str | Enum, handler: JobHandler) -> None:
        key = processor_key(name)
        if key in self._processors:
            logger.warning("processor_replaced", queue=self.name, processor=key)
        self._processors[key] = handler
        logger.info("processor_registered", queue=self.name, processor=key)

    async def start_processing(
        self,
        processor_name: str | Enum,
        options: ProcessOptions | None = None,
    ) -> None:
        """
        Spawn the worker pool for `processor_name`.

        Raises AlreadyProcessingError if the queue is running and
        ProcessorNotFoundError if the name was never registered.
        """
        if self.is_processing:
            raise AlreadyProcessingError(self.name)
        key = processor_key(processor_name)
        handler = self._processors.get(key)
        if handler is None:
            raise ProcessorNotFoundError(self.name, key)

        opts = options or ProcessOptions()
        stop = asyncio.Event()
        self._stop = stop
        self._active_processor = key
        self._tasks = [
            asyncio.create_task(
                self._promote_loop(stop, opts), name=f"gatequeue-{self.name}-promote"
            ),
            asyncio.create_task(
                self._reap_loop(stop, opts), name=f"gatequeue-{self.name}-reap"
            ),
        ]
        self._tasks.extend(
            asyncio.create_task(
                self._worker_loop(stop, worker, handler, opts),
                name=f"gatequeue-{self.name}-worker-{worker}",
            )
            for worker in range(self.config.concurrency)
        )
        logger.info(
            "queue_processing_started",
            queue=self.name,
            processor=key,
            concurrency=self.config.concurrency,
        )

    async def stop_processing(self, wait: bool = True) -> None:
        """
        Signal all loops to exit.

        With wait=True (the default) this returns once every loop has
        observed the stop and any in-flight job has finished, including
        loops left draining by an earlier stop with wait=False.
        """
        was_running = self.is_processing
        if self._stop is not None:
            self._stop.set()
        self._draining = [t for t in self._draining if not t.done()]
        self._draining.extend(self._tasks)
        self._tasks = []
        if wait and self._draining:
            draining, self._draining = self._draining, []
            await asyncio.gather(*draining, return_exceptions=True)
        self._active_processor = None
        if was_running:
            logger.info("queue_processing_stopped", queue=self.name)

    @staticmethod
    async def _pause(stop: asyncio.Event, seconds: float) -> None:
        """Sleep up to `seconds`, returning early when `stop` is set."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(stop.wait(), timeout=seconds)
        except TimeoutError:
            pass

    # ------------------------------------------------------------------ #
    # Worker loop                                                          #
    # ------------------------------------------------------------------ #

    async def _worker_loop(
        self, stop: asyncio.Event, worker: int, handler: JobHandler, opts: ProcessOptions
    ) -> None:
        log = logger.bind(queue=self.name, worker=worker)
        while not stop.is_set():
            try:
                claimed = await self.claim_next()
                if claimed is None:
                    await self._pause(stop, opts.poll_interval)
                    continue
                await self.process(claimed, handler, opts)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log.error("worker_loop_error", error=str(exc), exc_info=True)
                await self._pause(stop, opts.error_backoff)

    async def claim_next(self) -> Job | None:
        """
        Claim the highest-priority waiting job for this worker.

        The id moves from waiting to active atomically. If its record has
        expired or cannot be decoded the id is dropped and the next one is tried.
        """
        while True:
            lease_until = epoch_ms() + int(self.lease.total_seconds() * 1000)
            popped = await self.store.claim(self.waiting_key, self.active_key, lease_until)
            if popped is None:
                return None
            job_id, _ = popped
            try:
                job = codec.decode(await self.store.get(self.job_key(job_id)))
            except pydantic.ValidationError as exc:
                await self.store.zrem(self.active_key, job_id)
                logger.error("job_record_corrupt", queue=self.name, job_id=job_id, error=str(exc))
                continue
            if job is None:
                await self.store.zrem(self.active_key, job_id)
                logger.warning("job_record_missing", queue=self.name, job_id=job_id)
                continue
            job = job.claimed(self.lease)
            await self.store.set(
                self.job_key(job.id), codec.encode(job), ttl=self.config.job_ttl_seconds
            )
            return job

    async def process(
        self, job: Job, handler: JobHandler, opts: ProcessOptions | None = None
    ) -> None:
        """Run `handler` on a claimed job and record the outcome."""
        opts = opts or ProcessOptions()
        refresh = opts.lease_refresh_interval or self.lease.total_seconds() / 3
        started = time.perf_counter()
        try:
            async with LeaseKeeper(self, job.id, interval=timedelta(seconds=refresh)):
                await handler(job)
        except Exception as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            await self._on_failure(job, exc, opts, duration_ms)
            return
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        await self._on_success(job, opts, duration_ms)

    async def _on_success(self, job: Job, opts: ProcessOptions, duration_ms: float) -> None:
        pipe = self._detach(self.store.pipeline(), job.id).incr(self.completed_key)
        if opts.remove_on_complete:
            pipe.delete(self.job_key(job.id))
        else:
            pipe.set(
                self.job_key(job.id),
                codec.encode(job.completed()),
                ttl=self.config.job_ttl_seconds,
            )
        await self._execute(pipe, "complete_job", job_id=job.id)
        logger.info(
            "job_completed", queue=self.name, job_id=job.id, duration_ms=duration_ms
        )

    async def _on_failure(
        self, job: Job, exc: Exception, opts: ProcessOptions, duration_ms: float
    ) -> None:
        error = str(exc) or type(exc).__name__
        retried = job.retried(error)
        if opts.retry_on_error and not retried.exhausted:
            delay_ms = self.backoff_ms(retried.attempts)
            pipe = (
                self._detach(self.store.pipeline(), job.id)
                .set(
                    self.job_key(job.id),
                    codec.encode(retried),
                    ttl=self.config.job_ttl_seconds,
                )
                .zadd(self.delayed_key, {job.id: float(epoch_ms() + delay_ms)})
            )
            await self._execute(pipe, "retry_job", job_id=job.id)
            logger.warning(
                "job_retried",
                queue=self.name,
                job_id=job.id,
                attempts=retried.attempts,
                max_attempts=retried.max_attempts,
                delay_ms=delay_ms,
                error=error,
                duration_ms=duration_ms,
            )
            return

        failed = job.failed(error)
        pipe = self._detach(self.store.pipeline(), job.id).incr(self.failed_key)
        if opts.remove_on_fail:
            pipe.delete(self.job_key(job.id))
        else:
            pipe.set(
                self.job_key(job.id),
                codec.encode(failed),
                ttl=self.config.job_ttl_seconds,
            )
        await self._execute(pipe, "fail_job", job_id=job.id)
        logger.error(
            "job_failed",
            queue=self.name,
            job_id=job.id,
            attempts=failed.attempts,
            max_attempts=failed.max_attempts,
            error=error,
            duration_ms=duration_ms,
        )

    def _detach(self, pipe: PipelinePort, job_id: str) -> PipelinePort:
        # The reaper may have re-queued a slow job; drop every membership.
        return (
            pipe.zrem(self.active_key, job_id)
            .zrem(self.waiting_key, job_id)
            .zrem(self.delayed_key, job_id)
        )

    async def extend_lease(self, job_id: str) -> None:
        """Push the lease of an active job forward. JobNotFoundError if not active."""
        lease_until = epoch_ms() + int(self.lease.total_seconds() * 1000)
        if not await self.store.move(self.active_key, self.active_key, job_id, lease_until):
            raise JobNotFoundError(job_id)

    # ------------------------------------------------------------------ #
    # Promotion and reaping                                                #
    # ------------------------------------------------------------------ #

    async def _promote_loop(self, stop: asyncio.Event, opts: ProcessOptions) -> None:
        while not stop.is_set():
            try:
                await self.promote_due()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("promote_loop_error", queue=self.name, error=str(exc))
            await self._pause(stop, opts.promote_interval)

    async def _reap_loop(self, stop: asyncio.Event, opts: ProcessOptions) -> None:
        while not stop.is_set():
            try:
                await self.reap_expired()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("reap_loop_error", queue=self.name, error=str(exc))
            await self._pause(stop, opts.reap_interval)

    async def promote_due(self, now_ms: int | None = None) -> int:
        """Move delayed jobs whose due time has passed into waiting."""
        moved = await self._requeue(self.delayed_key, now_ms)
        if moved:
            logger.info("delayed_jobs_promoted", queue=self.name, count=moved)
        return moved

    async def reap_expired(self, now_ms: int | None = None) -> int:
        """Return active jobs whose lease expired to waiting."""
        moved = await self._requeue(self.active_key, now_ms)
        if moved:
            logger.warning("expired_leases_requeued", queue=self.name, count=moved)
        return moved

    async def _requeue(self, src: str, now_ms: int | None) -> int:
        """
        Move every member of `src` scored <= now into waiting at its priority.

        Works in pages of batch_size. Only the caller whose move() removed
        the member re-adds it, so concurrent loops never duplicate a job.
        """
        now = epoch_ms() if now_ms is None else now_ms
        moved = 0
        while True:
            due = await self.store.zrangebyscore(
                src, float("-inf"), float(now), limit=self.config.batch_size
            )
            for job_id in due:
                job = codec.decode(await self.store.get(self.job_key(job_id)))
                if job is None:
                    await self.store.zrem(src, job_id)
                    continue
                if await self.store.move(src, self.waiting_key, job_id, float(job.priority)):
                    moved += 1
            if len(due) < self.config.batch_size:
                return moved
