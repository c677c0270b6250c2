import pytest

from gatequeue.core.access import AccessDecision, AccessOutcome
from gatequeue.domain.errors import (
    AccessDeniedError,
    AlreadyProcessingError,
    GateQueueError,
    JobNotFoundError,
    ProcessorNotFoundError,
    QueueError,
    QueueNotFoundError,
    StorageError,
    ValidationError,
)


def test_gatequeue_error_is_exception():
    err = GateQueueError("test message")
    assert isinstance(err, Exception)
    assert str(err) == "test message"


def test_validation_error_carries_details():
    err = ValidationError("bad input", details=[{"loc": ["data"]}])
    assert isinstance(err, GateQueueError)
    assert err.details == [{"loc": ["data"]}]
    assert str(err) == "bad input"


def test_validation_error_details_default_none():
    assert ValidationError("x").details is None


def test_storage_error_stores_cause_and_message():
    cause = ConnectionError("connection refused")
    err = StorageError("Redis get failed", cause)
    assert err.cause is cause
    assert "Redis get failed" in str(err)
    assert "connection refused" in str(err)


def test_queue_error_names_queue():
    err = QueueError("email", "enqueue failed")
    assert err.queue == "email"
    assert "email" in str(err)
    assert "enqueue failed" in str(err)


def test_processor_not_found_stores_names():
    err = ProcessorNotFoundError("email", "sendEmail")
    assert err.queue == "email"
    assert err.processor == "sendEmail"


def test_job_and_queue_not_found_messages():
    assert "abc-123" in str(JobNotFoundError("abc-123"))
    assert JobNotFoundError("abc-123").job_id == "abc-123"
    assert "reports" in str(QueueNotFoundError("reports"))


def test_access_denied_carries_decision():
    decision = AccessDecision(AccessOutcome.DENIED, "/api/room", "GET", user_id="u1")
    err = AccessDeniedError(decision)
    assert err.decision is decision
    assert str(err) == "Access denied"


@pytest.mark.parametrize(
    "cls",
    [
        ValidationError,
        StorageError,
        QueueError,
        AlreadyProcessingError,
        ProcessorNotFoundError,
        QueueNotFoundError,
        JobNotFoundError,
        AccessDeniedError,
    ],
)
def test_error_hierarchy(cls):
    assert issubclass(cls, GateQueueError)


def test_can_catch_subclass_as_base():
    with pytest.raises(GateQueueError):
        raise AlreadyProcessingError("email")
