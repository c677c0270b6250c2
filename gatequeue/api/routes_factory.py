from __future__ import annotations

from fastapi import APIRouter, Depends

from gatequeue.api import schemas
from gatequeue.api.deps import get_locale, get_registry, require_access
from gatequeue.api.routes_queue import queue_info
from gatequeue.core.presets import QueueCategory, parse_payload
from gatequeue.core.registry import QueueRegistry
from gatequeue.domain.models import QueueStats
from gatequeue.i18n import translate

router = APIRouter(
    prefix="/api/queue-factory",
    tags=["queue-factory"],
    dependencies=[Depends(require_access())],
)


def _job_spec(category: QueueCategory, body: schemas.PresetJobBody) -> dict:
    payload = parse_payload(category, body.payload)
    priority = body.priority if body.priority is not None else payload.job_priority()
    return {
        "data": payload.model_dump(mode="json", by_alias=True),
        "priority": priority,
        "delay": body.delay,
    }


@router.get("/stats", response_model=schemas.Envelope[dict[str, QueueStats]])
async def factory_stats(
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    return schemas.Envelope(
        data=await registry.get_all_stats(), message=translate("queue.stats", locale)
    )


@router.post("/start", response_model=schemas.Envelope[list[str]])
async def start_all(
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    started = await registry.start_all()
    return schemas.Envelope(
        data=started, message=translate("queue.all_started", locale, count=len(started))
    )


@router.post("/stop", response_model=schemas.Envelope[list[str]])
async def stop_all(
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    await registry.stop_all()
    return schemas.Envelope(data=registry.names(), message=translate("queue.all_stopped", locale))


@router.post("/custom", response_model=schemas.Envelope[schemas.QueueInfo], status_code=201)
async def create_custom(
    body: schemas.CreateQueueBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    queue = registry.create_custom(body.name, **body.options.overrides())
    return schemas.Envelope(
        data=queue_info(queue), message=translate("queue.created", locale, queue=queue.name)
    )


@router.post("/{category}", response_model=schemas.Envelope[schemas.QueueInfo], status_code=201)
async def create_preset(
    category: QueueCategory,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    queue = registry.preset(category)
    return schemas.Envelope(
        data=queue_info(queue), message=translate("queue.created", locale, queue=queue.name)
    )


@router.post(
    "/{category}/jobs", response_model=schemas.Envelope[schemas.JobIdOut], status_code=201
)
async def add_preset_job(
    category: QueueCategory,
    body: schemas.PresetJobBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    spec = _job_spec(category, body)
    job_id = await registry.preset(category).enqueue(
        spec["data"], priority=spec["priority"], delay=spec["delay"]
    )
    return schemas.Envelope(
        data=schemas.JobIdOut(job_id=job_id), message=translate("job.added", locale)
    )


@router.post(
    "/{category}/jobs/batch",
    response_model=schemas.Envelope[schemas.JobIdsOut],
    status_code=201,
)
async def add_preset_jobs(
    category: QueueCategory,
    body: schemas.PresetJobsBody,
    registry: QueueRegistry = Depends(get_registry),
    locale: str = Depends(get_locale),
):
    specs = [_job_spec(category, job) for job in body.jobs]
    job_ids = await registry.preset(category).enqueue_batch(specs)
    return schemas.Envelope(
        data=schemas.JobIdsOut(job_ids=job_ids),
        message=translate("job.batch_added", locale, count=len(job_ids)),
    )
