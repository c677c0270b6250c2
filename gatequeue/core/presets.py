"""
Queue presets — the five built-in queue categories and their processors.

  category         processor          attempts  retry ms  concurrency  batch
  email            sendEmail          3         10000     5            20
  sms              sendSMS            2         5000      10           50
  notification     sendNotification   2         3000      8            30
  data-processing  processData        3         15000     3            10
  scheduled        scheduledTask      1         0         2            5

Each processor validates `job.data` against the category's payload model
and hands the parsed payload to a sender. Senders are injected through the
Senders dataclass; the defaults only log, so a deployment plugs in its own
mail / SMS / push integrations without touching the queue code.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Literal

import pydantic
import structlog
from pydantic import BaseModel, ConfigDict, Field

from gatequeue.core.handlers import JobHandler
from gatequeue.domain.errors import ValidationError
from gatequeue.domain.models import Job

logger = structlog.get_logger(__name__)


class QueueCategory(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    NOTIFICATION = "notification"
    DATA_PROCESSING = "data-processing"
    SCHEDULED = "scheduled"


class ProcessorName(str, Enum):
    SEND_EMAIL = "sendEmail"
    SEND_SMS = "sendSMS"
    SEND_NOTIFICATION = "sendNotification"
    PROCESS_DATA = "processData"
    SCHEDULED_TASK = "scheduledTask"


# ---------------------------------------------------------------------- #
# Payload models                                                          #
# ---------------------------------------------------------------------- #

# Job priority assigned to the textual urgency levels of sms / notification.
URGENCY_PRIORITY: dict[str, int] = {"low": 0, "normal": 5, "high": 10, "urgent": 20}


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def job_priority(self) -> int | None:
        """Job priority implied by the payload, if it carries one."""
        return None


class Attachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(min_length=1)
    content: str
    content_type: str | None = Field(default=None, alias="contentType")


class EmailJobData(_Payload):
    to: str | list[str]
    subject: str = Field(min_length=1)
    content: str = Field(min_length=1)
    template: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    reply_to: str | None = Field(default=None, alias="replyTo")


class SMSJobData(_Payload):
    to: str | list[str]
    content: str = Field(min_length=1)
    template: str | None = None
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    provider: str | None = None

    def job_priority(self) -> int | None:
        return URGENCY_PRIORITY[self.priority]


class NotificationJobData(_Payload):
    user_id: str | list[str] = Field(alias="userId")
    type: Literal["push", "in_app", "webhook"]
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    priority: Literal["low", "normal", "high"] = "normal"

    def job_priority(self) -> int | None:
        return URGENCY_PRIORITY[self.priority]


class DataProcessingJobData(_Payload):
    type: str = Field(min_length=1)
    data: Any
    user_id: str | None = Field(default=None, alias="userId")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScheduledJobData(_Payload):
    task_type: str = Field(min_length=1, alias="taskType")
    params: dict[str, Any] = Field(default_factory=dict)
    schedule: str | None = None


# ---------------------------------------------------------------------- #
# Preset table                                                            #
# ---------------------------------------------------------------------- #


@dataclasses.dataclass(frozen=True)
class Preset:
    category: QueueCategory
    processor: ProcessorName
    payload: type[_Payload]
    max_attempts: int
    retry_delay_ms: int
    concurrency: int
    batch_size: int

    def config_overrides(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "retry_delay_ms": self.retry_delay_ms,
            "concurrency": self.concurrency,
            "batch_size": self.batch_size,
        }


PRESETS: dict[QueueCategory, Preset] = {
    p.category: p
    for p in (
        Preset(QueueCategory.EMAIL, ProcessorName.SEND_EMAIL, EmailJobData, 3, 10_000, 5, 20),
        Preset(QueueCategory.SMS, ProcessorName.SEND_SMS, SMSJobData, 2, 5_000, 10, 50),
        Preset(
            QueueCategory.NOTIFICATION,
            ProcessorName.SEND_NOTIFICATION,
            NotificationJobData,
            2,
            3_000,
            8,
            30,
        ),
        Preset(
            QueueCategory.DATA_PROCESSING,
            ProcessorName.PROCESS_DATA,
            DataProcessingJobData,
            3,
            15_000,
            3,
            10,
        ),
        Preset(QueueCategory.SCHEDULED, ProcessorName.SCHEDULED_TASK, ScheduledJobData, 1, 0, 2, 5),
    )
}


def preset_for(name: str | QueueCategory) -> Preset | None:
    """Preset for a queue name, or None for custom queues."""
    try:
        return PRESETS[QueueCategory(name)]
    except ValueError:
        return None


def parse_payload(category: QueueCategory, data: Any) -> _Payload:
    """Validate `data` against the category's payload model."""
    model = PRESETS[category].payload
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            f"Invalid {category.value} job payload",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc


# ---------------------------------------------------------------------- #
# Senders and processors                                                  #
# ---------------------------------------------------------------------- #

Sender = Callable[[Any], Awaitable[None]]


def _log_only(kind: str) -> Sender:
    async def send(payload: _Payload) -> None:
        logger.info(
            f"{kind}_dispatched",
            payload=payload.model_dump(mode="json", by_alias=True),
        )

    return send


@dataclasses.dataclass
class Senders:
    """Delivery integrations used by the preset processors."""

    email: Sender = dataclasses.field(default_factory=lambda: _log_only("email"))
    sms: Sender = dataclasses.field(default_factory=lambda: _log_only("sms"))
    notification: Sender = dataclasses.field(
        default_factory=lambda: _log_only("notification")
    )
    data_processing: Sender = dataclasses.field(
        default_factory=lambda: _log_only("data_processing")
    )
    scheduled: Sender = dataclasses.field(
        default_factory=lambda: _log_only("scheduled_task")
    )

    def for_category(self, category: QueueCategory) -> Sender:
        return {
            QueueCategory.EMAIL: self.email,
            QueueCategory.SMS: self.sms,
            QueueCategory.NOTIFICATION: self.notification,
            QueueCategory.DATA_PROCESSING: self.data_processing,
            QueueCategory.SCHEDULED: self.scheduled,
        }[category]


def build_processor(category: QueueCategory, senders: Senders) -> JobHandler:
    """Processor that parses the payload and forwards it to the category's sender."""
    send = senders.for_category(category)

    async def process(job: Job) -> None:
        payload = parse_payload(category, job.data)
        try:
            await send(payload)
        except Exception as exc:
            logger.error(
                "preset_job_failed",
                queue=job.queue,
                job_id=job.id,
                category=category.value,
                attempt=job.attempts + 1,
                error=str(exc),
            )
            raise
        logger.info(
            "preset_job_processed",
            queue=job.queue,
            job_id=job.id,
            category=category.value,
        )

    process.__name__ = PRESETS[category].processor.value
    return process
