import json

from gatequeue.core import codec
from gatequeue.domain.models import Job, JobStatus


def test_decode_none_returns_none():
    assert codec.decode(None) is None


def test_decode_empty_returns_none():
    assert codec.decode("") is None
    assert codec.decode(b"") is None


def test_encode_is_valid_json_with_wire_fields():
    job = Job.new("email", {"to": "a@example.com"}, priority=5)
    data = json.loads(codec.encode(job))
    assert data["id"] == job.id
    assert data["queue"] == "email"
    assert data["data"] == {"to": "a@example.com"}
    assert data["priority"] == 5
    assert data["status"] == "waiting"
    assert data["attempts"] == 0


def test_roundtrip_preserves_job():
    job = Job.new("sms", {"to": "+100", "content": "hi"}, delay=1000, metadata={"k": 1})
    restored = codec.decode(codec.encode(job))
    assert restored == job
    assert restored.status == JobStatus.DELAYED


def test_datetime_serialized_with_utc_offset():
    job = Job.new("q", {"x": 1})
    data = json.loads(codec.encode(job))
    assert data["created_at"].endswith("Z") or data["created_at"].endswith("+00:00")


def test_decode_accepts_bytes():
    job = Job.new("q", [1, 2, 3])
    assert codec.decode(codec.encode(job).encode()) == job
