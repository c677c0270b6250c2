import pytest
import structlog
from structlog.testing import capture_logs

from gatequeue.adapters.store.memory import InMemoryStore
from gatequeue.core.queue import JobQueue
from gatequeue.domain.models import QueueConfig
from gatequeue.logging import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_renderer_selected() -> None:
    configure_logging("debug", json=True)
    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    assert structlog.contextvars.merge_contextvars in processors


def test_console_renderer_is_default() -> None:
    configure_logging()
    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


async def test_enqueue_emits_job_added() -> None:
    queue = JobQueue(store=InMemoryStore(), config=QueueConfig(name="email"))
    with capture_logs() as logs:
        job_id = await queue.enqueue({"to": "x"}, priority=2)
    added = [e for e in logs if e["event"] == "job_added"]
    assert added == [
        {
            "event": "job_added",
            "log_level": "info",
            "queue": "email",
            "job_id": job_id,
            "priority": 2,
            "delay": 0,
        }
    ]
