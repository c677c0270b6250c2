"""
Domain models for gatequeue — backed by Pydantic v2.

Pydantic handles:
  - JSON serialization / deserialization of job records (via codec.py)
  - datetime parsing (ISO-8601 with timezone)
  - field validation for enqueue options, queue configuration and
    policy tuples

Job and the policy value types are frozen. Mutations return new instances
via model_copy(update=...), following a functional-update style.
"""

from __future__ import annotations

import secrets
import string
import time
import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_BASE36 = string.digits + string.ascii_lowercase

WILDCARD = "*"


def utcnow() -> datetime:
    return datetime.now(UTC)


def epoch_ms(ts: datetime | None = None) -> int:
    """Milliseconds since the epoch for `ts` (default: now)."""
    if ts is None:
        return int(time.time() * 1000)
    return int(ts.timestamp() * 1000)


def new_job_id(queue: str) -> str:
    """
    Build a job id of the form <queue>:<epoch-ms>:<random>:<uuid-prefix>.

    The queue name and timestamp make ids roughly sortable by submission
    time; the random parts keep concurrent submitters from colliding.
    """
    rand = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{queue}:{epoch_ms()}:{rand}:{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------- #
# Jobs                                                                    #
# ---------------------------------------------------------------------- #


class JobStatus(str, Enum):
    """Lifecycle states recorded on a job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """
    A single unit of work stored in a queue.

    id               — stable identifier, assigned at enqueue time
    queue            — name of the owning queue
    data             — arbitrary JSON-compatible payload
    priority         — higher value = dequeued first
    delay            — milliseconds before the job first becomes eligible
    attempts         — processing attempts made so far
    max_attempts     — job fails permanently once attempts reaches this
    status           — last recorded lifecycle state
    created_at       — UTC timestamp set at enqueue time
    processed_at     — UTC timestamp of the latest claim by a worker
    completed_at     — set when a retained job finishes successfully
    failed_at        — set when retries are exhausted
    lease_expires_at — while active: the reaper requeues after this instant
    error            — message of the last processor failure
    metadata         — free-form annotations, not interpreted by the engine
    """

    model_config = ConfigDict(frozen=True)

    id: str
    queue: str
    data: Any
    priority: int = 0
    delay: int = Field(default=0, ge=0)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    status: JobStatus = JobStatus.WAITING
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    lease_expires_at: datetime | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def new(
        cls,
        queue: str,
        data: Any,
        *,
        priority: int = 0,
        delay: int = 0,
        attempts: int = 0,
        max_attempts: int = 3,
        metadata: dict[str, Any] | None = None,
    ) -> "Job":
        """Factory — assigns a fresh id and picks WAITING or DELAYED."""
        return cls(
            id=new_job_id(queue),
            queue=queue,
            data=data,
            priority=priority,
            delay=delay,
            attempts=attempts,
            max_attempts=max_attempts,
            status=JobStatus.DELAYED if delay > 0 else JobStatus.WAITING,
            metadata=metadata or {},
        )

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def claimed(self, lease: timedelta) -> "Job":
        """Return a new Job marked ACTIVE with a fresh lease."""
        now = utcnow()
        return self.model_copy(
            update={
                "status": JobStatus.ACTIVE,
                "processed_at": now,
                "lease_expires_at": now + lease,
            }
        )

    def retried(self, error: str) -> "Job":
        """Return a new Job scheduled for another attempt."""
        return self.model_copy(
            update={
                "attempts": self.attempts + 1,
                "error": error,
                "status": JobStatus.DELAYED,
                "lease_expires_at": None,
            }
        )

    def failed(self, error: str) -> "Job":
        """Return a new Job in its terminal FAILED state."""
        return self.model_copy(
            update={
                "attempts": self.attempts + 1,
                "error": error,
                "status": JobStatus.FAILED,
                "failed_at": utcnow(),
                "lease_expires_at": None,
            }
        )

    def completed(self) -> "Job":
        return self.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "completed_at": utcnow(),
                "lease_expires_at": None,
            }
        )


class JobSpec(BaseModel):
    """Options accepted by enqueue / enqueue_batch for a single job."""

    data: Any
    priority: int | None = None
    delay: int = 0
    attempts: int = 0
    max_attempts: int | None = None
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------- #
# Queue configuration                                                     #
# ---------------------------------------------------------------------- #


class QueueConfig(BaseModel):
    """Static configuration of one named queue."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    max_attempts: int = Field(default=3, ge=1)
    default_priority: int = 0
    retry_delay_ms: int = Field(default=5000, ge=0)
    concurrency: int = Field(default=1, ge=1)
    batch_size: int = Field(default=10, ge=1)
    job_ttl_seconds: int = Field(default=86400, ge=1)
    lease_timeout_seconds: float = Field(default=300.0, gt=0)

    @field_validator("name")
    @classmethod
    def _no_blank_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("queue name must not be blank")
        return v


class ProcessOptions(BaseModel):
    """Runtime options for start_processing. Intervals are in seconds."""

    model_config = ConfigDict(frozen=True)

    retry_on_error: bool = True
    remove_on_complete: bool = True
    remove_on_fail: bool = True
    poll_interval: float = Field(default=1.0, gt=0)
    promote_interval: float = Field(default=1.0, gt=0)
    error_backoff: float = Field(default=5.0, ge=0)
    reap_interval: float = Field(default=5.0, gt=0)
    lease_refresh_interval: float | None = Field(default=None, gt=0)


class QueueStats(BaseModel):
    waiting: int = 0
    delayed: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


# ---------------------------------------------------------------------- #
# Access control                                                          #
# ---------------------------------------------------------------------- #


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class PolicyRule(BaseModel):
    """
    One access-control tuple.

    sub    — subject; normally a role, may be a user
    obj    — resource path, `*` matches any run of characters
    act    — action (HTTP method) or `*`
    domain — tenant, or `*`
    region — region code, or `*`
    level  — clearance level (integer string), or `*`
    eft    — allow / deny; deny overrides allow
    """

    model_config = ConfigDict(frozen=True)

    sub: str = Field(min_length=1)
    obj: str = Field(min_length=1)
    act: str = Field(min_length=1)
    domain: str = WILDCARD
    region: str = WILDCARD
    level: str = WILDCARD
    eft: Effect = Effect.ALLOW

    def as_tuple(self) -> tuple[str, ...]:
        return (
            self.sub,
            self.obj,
            self.act,
            self.domain,
            self.region,
            self.level,
            self.eft.value,
        )


class RoleAssignment(BaseModel):
    """Grouping relation: `user` holds `role` within `domain`."""

    model_config = ConfigDict(frozen=True)

    user: str = Field(min_length=1)
    role: str = Field(min_length=1)
    domain: str = WILDCARD

    def as_tuple(self) -> tuple[str, str, str]:
        return (self.user, self.role, self.domain)


class PermissionRequest(BaseModel):
    """The tuple a permission check is asked about."""

    model_config = ConfigDict(frozen=True)

    sub: str = Field(min_length=1)
    obj: str = Field(min_length=1)
    act: str = Field(min_length=1)
    domain: str = WILDCARD
    region: str = WILDCARD
    level: str = WILDCARD

    def cache_key(self) -> tuple[str, ...]:
        return (self.sub, self.obj, self.act, self.domain, self.region, self.level)
