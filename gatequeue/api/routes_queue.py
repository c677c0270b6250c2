from __future__ import annotations

from fastapi import APIRouter, Depends

from gatequeue.api import schemas
from gatequeue.api.deps import get_locale, get_registry, require_access
from gatequeue.core.presets import preset_for
from gatequeue.core.queue import JobQueue
from gatequeue.core.registry import QueueRegistry
from gatequeue.domain.errors import QueueNotFoundError
from gatequeue.domain.models import Job, QueueStats
from gatequeue.i18n import translate

router = APIRouter(
    prefix="/api/queue",
    tags=["queue"],
    dependencies=[Depends(require_access())],
)


def queue_info(queue: JobQueue) -> schemas.QueueInfo:
    return schemas.QueueInfo(
        name=queue.name,
        processing=queue.is_processing,
        processors=list(queue.processors),
        max_attempts=queue.config.max_attempts,
        retry_delay_ms=queue.config.retry_delay_ms,
        concurrency=queue.config.concurrency,
        batch_size=queue.config.batch_size,
    )


@router.post("", response_model=schemas.Envelope[schemas.QueueInfo], status_code=201)
async def create_queue(
    body: schemas.CreateQueueBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    if preset_for(body.name) is not None:
        queue = registry.preset(body.name)
    else:
        queue = registry.create_custom(body.name, **body.options.overrides())
    return schemas.Envelope(
        data=queue_info(queue), message=translate("queue.created", locale, queue=queue.name)
    )


@router.get("/stats", response_model=schemas.Envelope[dict[str, QueueStats]])
async def all_stats(
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    return schemas.Envelope(
        data=await registry.get_all_stats(), message=translate("queue.stats", locale)
    )


@router.delete("/{name}", response_model=schemas.Envelope[schemas.ChangedOut])
async def remove_queue(
    name: str,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    if not await registry.remove(name):
        raise QueueNotFoundError(name)
    return schemas.Envelope(
        data=schemas.ChangedOut(changed=True),
        message=translate("queue.removed", locale, queue=name),
    )


@router.post(
    "/{name}/jobs", response_model=schemas.Envelope[schemas.JobIdOut], status_code=201
)
async def add_job(
    name: str,
    body: schemas.AddJobBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    job_id = await registry.require(name).enqueue(
        body.data,
        priority=body.priority,
        delay=body.delay,
        max_attempts=body.max_attempts,
        metadata=body.metadata,
    )
    return schemas.Envelope(
        data=schemas.JobIdOut(job_id=job_id), message=translate("job.added", locale)
    )


@router.post(
    "/{name}/jobs/batch",
    response_model=schemas.Envelope[schemas.JobIdsOut],
    status_code=201,
)
async def add_jobs(
    name: str,
    body: schemas.AddJobsBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    job_ids = await registry.require(name).enqueue_batch(
        [job.model_dump() for job in body.jobs]
    )
    return schemas.Envelope(
        data=schemas.JobIdsOut(job_ids=job_ids),
        message=translate("job.batch_added", locale, count=len(job_ids)),
    )


@router.get("/{name}/jobs/{job_id}", response_model=schemas.Envelope[Job])
async def get_job(name: str, job_id: str, registry: QueueRegistry = Depends(get_registry)):
    return schemas.Envelope(data=await registry.require(name).require_job(job_id))


@router.delete("/{name}/jobs/{job_id}", response_model=schemas.Envelope[schemas.ChangedOut])
async def remove_job(
    name: str,
    job_id: str,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    changed = await registry.require(name).remove_job(job_id)
    return schemas.Envelope(
        data=schemas.ChangedOut(changed=changed), message=translate("job.removed", locale)
    )


@router.post("/{name}/start", response_model=schemas.Envelope[schemas.QueueInfo])
async def start_queue(
    name: str,
    body: schemas.StartBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    queue = registry.require(name)
    await queue.start_processing(body.processor_name, registry.process_options)
    return schemas.Envelope(
        data=queue_info(queue),
        message=translate(
            "queue.started", locale, queue=name, processor=body.processor_name
        ),
    )


@router.post("/{name}/stop", response_model=schemas.Envelope[schemas.QueueInfo])
async def stop_queue(
    name: str,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    queue = registry.require(name)
    await queue.stop_processing()
    return schemas.Envelope(
        data=queue_info(queue), message=translate("queue.stopped", locale, queue=name)
    )


@router.get("/{name}/stats", response_model=schemas.Envelope[QueueStats])
async def queue_stats(
    name: str,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    return schemas.Envelope(
        data=await registry.require(name).get_stats(),
        message=translate("queue.stats", locale),
    )


@router.delete("/{name}/clear", response_model=schemas.Envelope[schemas.ClearedOut])
async def clear_queue(
    name: str,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    removed = await registry.require(name).clear()
    return schemas.Envelope(
        data=schemas.ClearedOut(removed=removed),
        message=translate("queue.cleared", locale, queue=name, count=removed),
    )
