"""
Codec — serialize and deserialize job records to/from str using Pydantic v2.

Pydantic v2 handles the full wire format automatically:
  - datetime fields are serialized as ISO-8601 strings with UTC offset
  - Enum values are serialized as their string values
  - `data` and `metadata` are written as plain JSON

Wire format (produced by model_dump_json), stored at queue:<name>:job:<id>:
-----------------------------------------------------------------------------
{
  "id": "email:1735689600000:k3j9x0a1b:550e8400",
  "queue": "email",
  "data": {"to": "user@example.com"},
  "priority": 5,
  "delay": 0,
  "attempts": 0,
  "max_attempts": 3,
  "status": "waiting",
  "created_at": "2025-01-01T00:00:00Z",
  "processed_at": null,
  ...
}
"""

from __future__ import annotations

from gatequeue.domain.models import Job


def encode(job: Job) -> str:
    """Serialize a Job to a JSON string."""
    return job.model_dump_json()


def decode(raw: str | bytes | None) -> Job | None:
    """Deserialize a stored record. Missing or empty → None."""
    if not raw:
        return None
    return Job.model_validate_json(raw)
