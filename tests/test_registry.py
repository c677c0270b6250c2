import asyncio

import pytest

from gatequeue.adapters.store.memory import InMemoryStore
from gatequeue.core.presets import Senders
from gatequeue.core.registry import QueueRegistry
from gatequeue.domain.errors import QueueNotFoundError
from gatequeue.domain.models import ProcessOptions, QueueConfig

FAST = ProcessOptions(poll_interval=0.01, promote_interval=0.01, error_backoff=0.01)


@pytest.fixture
async def registry():
    reg = QueueRegistry(store=InMemoryStore(), process_options=FAST)
    yield reg
    await reg.stop_all()


# ---------------------------------------------------------------------------
# Lookup and creation
# ---------------------------------------------------------------------------


async def test_get_or_create_returns_same_instance(registry: QueueRegistry) -> None:
    first = registry.get_or_create("reports")
    second = registry.get_or_create("reports", QueueConfig(name="reports", concurrency=9))
    assert first is second
    assert second.config.concurrency == 1
    assert "reports" in registry
    assert len(registry) == 1


async def test_config_name_follows_registry_name(registry: QueueRegistry) -> None:
    queue = registry.get_or_create("a", QueueConfig(name="b"))
    assert queue.name == "a"


def test_config_defaults_apply_to_new_queues() -> None:
    reg = QueueRegistry(store=InMemoryStore(), config_defaults={"job_ttl_seconds": 60})
    assert reg.get_or_create("x").config.job_ttl_seconds == 60
    assert reg.email().config.job_ttl_seconds == 60


async def test_require_unknown_queue_raises(registry: QueueRegistry) -> None:
    assert registry.get("missing") is None
    with pytest.raises(QueueNotFoundError):
        registry.require("missing")


async def test_create_custom_applies_overrides(registry: QueueRegistry) -> None:
    queue = registry.create_custom("reports", max_attempts=7, retry_delay_ms=50)
    assert queue.config.max_attempts == 7
    assert queue.config.retry_delay_ms == 50
    assert queue.processors == {}


@pytest.mark.parametrize(
    "accessor, name, processor",
    [
        ("email", "email", "sendEmail"),
        ("sms", "sms", "sendSMS"),
        ("notification", "notification", "sendNotification"),
        ("data_processing", "data-processing", "processData"),
        ("scheduled", "scheduled", "scheduledTask"),
    ],
)
async def test_preset_accessors(registry: QueueRegistry, accessor, name, processor) -> None:
    queue = getattr(registry, accessor)()
    assert queue.name == name
    assert processor in queue.processors
    assert getattr(registry, accessor)() is queue


async def test_preset_registers_processor_on_existing_queue(registry: QueueRegistry) -> None:
    plain = registry.get_or_create("email")
    assert registry.preset("email") is plain
    assert "sendEmail" in plain.processors


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def test_start_all_starts_presets_and_skips_custom(registry: QueueRegistry) -> None:
    registry.email()
    registry.sms()
    registry.create_custom("reports")
    started = await registry.start_all()
    assert sorted(started) == ["email", "sms"]
    assert registry.require("email").is_processing
    assert not registry.require("reports").is_processing
    assert await registry.start_all() == []


async def test_stop_all(registry: QueueRegistry) -> None:
    registry.email()
    await registry.start_all()
    await registry.stop_all()
    assert not registry.require("email").is_processing


async def test_started_preset_delivers_jobs() -> None:
    delivered = asyncio.Event()

    async def send(payload) -> None:
        delivered.set()

    reg = QueueRegistry(store=InMemoryStore(), senders=Senders(email=send), process_options=FAST)
    await reg.email().enqueue({"to": "a@example.com", "subject": "s", "content": "c"})
    await reg.start_all()
    try:
        await asyncio.wait_for(delivered.wait(), timeout=2)
    finally:
        await reg.stop_all()


async def test_remove_clears_and_forgets(registry: QueueRegistry) -> None:
    queue = registry.get_or_create("reports")
    await queue.enqueue("x")
    assert await registry.remove("reports") is True
    assert "reports" not in registry
    assert (await queue.get_stats()).waiting == 0
    assert await registry.remove("reports") is False


async def test_get_all_stats(registry: QueueRegistry) -> None:
    await registry.get_or_create("a").enqueue(1)
    registry.get_or_create("b")
    stats = await registry.get_all_stats()
    assert set(stats) == {"a", "b"}
    assert stats["a"].waiting == 1
    assert stats["b"].waiting == 0
