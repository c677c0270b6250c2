"""Request and response bodies of the HTTP API."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from gatequeue.domain.models import WILDCARD, Effect

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------- #
# Queues                                                                  #
# ---------------------------------------------------------------------- #


class QueueOptionsBody(_CamelModel):
    max_attempts: int | None = Field(default=None, ge=1, alias="maxAttempts")
    default_priority: int | None = Field(default=None, alias="defaultPriority")
    retry_delay_ms: int | None = Field(default=None, ge=0, alias="retryDelay")
    concurrency: int | None = Field(default=None, ge=1)
    batch_size: int | None = Field(default=None, ge=1, alias="batchSize")

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CreateQueueBody(_CamelModel):
    name: str = Field(min_length=1)
    options: QueueOptionsBody = Field(default_factory=QueueOptionsBody)


class QueueInfo(BaseModel):
    name: str
    processing: bool
    processors: list[str]
    max_attempts: int
    retry_delay_ms: int
    concurrency: int
    batch_size: int


class AddJobBody(_CamelModel):
    data: Any
    priority: int | None = None
    delay: int = Field(default=0, ge=0)
    max_attempts: int | None = Field(default=None, ge=1, alias="maxAttempts")
    metadata: dict[str, Any] | None = None


class AddJobsBody(BaseModel):
    jobs: list[AddJobBody] = Field(min_length=1)


class JobIdOut(_CamelModel):
    job_id: str = Field(serialization_alias="jobId")


class JobIdsOut(_CamelModel):
    job_ids: list[str] = Field(serialization_alias="jobIds")


class StartBody(_CamelModel):
    processor_name: str = Field(min_length=1, alias="processorName")


class ClearedOut(BaseModel):
    removed: int


class PresetJobBody(_CamelModel):
    """Payload plus scheduling options for a preset queue."""

    payload: dict[str, Any]
    priority: int | None = None
    delay: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------- #
# Permissions                                                             #
# ---------------------------------------------------------------------- #


class PolicyBody(BaseModel):
    sub: str = Field(min_length=1)
    obj: str = Field(min_length=1)
    act: str = Field(min_length=1)
    domain: str = WILDCARD
    region: str = WILDCARD
    level: str = WILDCARD
    eft: Effect = Effect.ALLOW


class PoliciesBody(BaseModel):
    policies: list[PolicyBody] = Field(min_length=1)


class CheckBody(BaseModel):
    sub: str = Field(min_length=1)
    obj: str = Field(min_length=1)
    act: str = Field(min_length=1)
    domain: str = WILDCARD
    region: str = WILDCARD
    level: str = WILDCARD


class CheckOut(BaseModel):
    allowed: bool


class RoleBody(BaseModel):
    role: str = Field(min_length=1)
    domain: str = WILDCARD


class RolesOut(BaseModel):
    user: str
    roles: list[str]


class UsersOut(BaseModel):
    role: str
    users: list[str]


class ChangedOut(BaseModel):
    changed: bool


class CountOut(BaseModel):
    count: int


class UpdatePolicyBody(BaseModel):
    old: PolicyBody
    new: PolicyBody


class GroupBody(BaseModel):
    group: str = Field(min_length=1)
    domain: str = WILDCARD


class PresetJobsBody(BaseModel):
    jobs: list[PresetJobBody] = Field(min_length=1)
