"""
Exception hierarchy for gatequeue.

GateQueueError
├── ValidationError         — caller supplied bad input; never retried
├── StorageError            — underlying I/O failure (wraps original exception)
├── QueueError              — a queue operation failed; safe to retry
├── AlreadyProcessingError  — start_processing on a running queue
├── ProcessorNotFoundError  — processor name not registered on the queue
├── QueueNotFoundError      — queue name not present in the registry
├── JobNotFoundError        — job_id has no record (expired or removed)
└── AccessDeniedError       — access layer rejected the caller
"""

from __future__ import annotations

from typing import Any


class GateQueueError(Exception):
    """Base class for all gatequeue exceptions."""


class ValidationError(GateQueueError):
    """
    Raised when input fails validation (missing job data, bad policy tuple).

    Attributes
    ----------
    details : optional structured detail forwarded to API responses
    """

    def __init__(self, message: str, details: Any = None) -> None:
        self.details = details
        super().__init__(message)


class StorageError(GateQueueError):
    """
    Wraps an underlying I/O failure from a store adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the storage backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class QueueError(GateQueueError):
    """
    Raised when a queue operation could not be applied to the store.

    The caller should treat this as retryable: nothing about the request
    itself was wrong.
    """

    def __init__(self, queue: str, message: str) -> None:
        self.queue = queue
        super().__init__(f"Queue {queue!r}: {message}")


class AlreadyProcessingError(GateQueueError):
    def __init__(self, queue: str) -> None:
        self.queue = queue
        super().__init__(f"Queue {queue!r} is already processing")


class ProcessorNotFoundError(GateQueueError):
    def __init__(self, queue: str, processor: str) -> None:
        self.queue = queue
        self.processor = processor
        super().__init__(f"Processor {processor!r} not found on queue {queue!r}")


class QueueNotFoundError(GateQueueError):
    def __init__(self, queue: str) -> None:
        self.queue = queue
        super().__init__(f"Queue {queue!r} not found")


class JobNotFoundError(GateQueueError):
    """Raised when a job_id has no record in the store."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id!r} not found")


class AccessDeniedError(GateQueueError):
    """
    Raised by the HTTP layer when the access controller rejects a request.

    decision is an AccessDecision; the API maps it to 401 or 403.
    """

    def __init__(self, decision: Any, message: str = "Access denied") -> None:
        self.decision = decision
        super().__init__(message)
