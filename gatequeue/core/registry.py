"""
QueueRegistry — named JobQueue instances sharing one store.

The registry is an ordinary object created by the composition root and
passed to whatever needs it. It guarantees at most one JobQueue per name,
so stats, processors and running state stay attached to that instance.

Presets (see presets.py) are created on first use with their canonical
configuration and processor already registered:

    registry = QueueRegistry(store)
    email = registry.preset(QueueCategory.EMAIL)
    await email.enqueue({"to": "a@example.com", "subject": "hi", "content": "..."})
    await registry.start_all()
"""

from __future__ import annotations

import dataclasses
from typing import Any

import structlog

from gatequeue.core.handlers import instrumented
from gatequeue.core.presets import (
    PRESETS,
    QueueCategory,
    Senders,
    build_processor,
    preset_for,
)
from gatequeue.core.queue import JobQueue
from gatequeue.domain.errors import QueueNotFoundError
from gatequeue.domain.models import ProcessOptions, QueueConfig, QueueStats
from gatequeue.ports.store import KeyValueStorePort

logger = structlog.get_logger(__name__)


@dataclasses.dataclass
class QueueRegistry:
    """
    Parameters
    ----------
    store           : shared KeyValueStorePort for every queue
    senders         : delivery integrations for the preset processors
    config_defaults : QueueConfig fields applied to every queue created here
                      (e.g. job_ttl_seconds, lease_timeout_seconds)
    process_options : ProcessOptions used by start_all
    """

    store: KeyValueStorePort
    senders: Senders = dataclasses.field(default_factory=Senders)
    config_defaults: dict[str, Any] = dataclasses.field(default_factory=dict)
    process_options: ProcessOptions = dataclasses.field(default_factory=ProcessOptions)

    _queues: dict[str, JobQueue] = dataclasses.field(
        default_factory=dict, init=False, repr=False
    )

    # ------------------------------------------------------------------ #
    # Lookup                                                               #
    # ------------------------------------------------------------------ #

    def get(self, name: str) -> JobQueue | None:
        return self._queues.get(name)

    def require(self, name: str) -> JobQueue:
        queue = self._queues.get(name)
        if queue is None:
            raise QueueNotFoundError(name)
        return queue

    def names(self) -> list[str]:
        return list(self._queues)

    def queues(self) -> list[JobQueue]:
        return list(self._queues.values())

    def __contains__(self, name: object) -> bool:
        return name in self._queues

    def __len__(self) -> int:
        return len(self._queues)

    # ------------------------------------------------------------------ #
    # Creation                                                             #
    # ------------------------------------------------------------------ #

    def get_or_create(self, name: str, config: QueueConfig | None = None) -> JobQueue:
        """
        Return the queue called `name`, creating it on first call.

        `config` is only used when the queue does not exist yet; a later
        call with a different config returns the existing instance unchanged.
        """
        queue = self._queues.get(name)
        if queue is not None:
            return queue
        if config is None:
            config = QueueConfig(name=name, **self.config_defaults)
        elif config.name != name:
            config = config.model_copy(update={"name": name})
        queue = JobQueue(store=self.store, config=config)
        self._queues[name] = queue
        logger.info("queue_created", queue=name, concurrency=config.concurrency)
        return queue

    def create_custom(self, name: str, **overrides: Any) -> JobQueue:
        """Create a queue with the base defaults plus `overrides` (QueueConfig fields)."""
        return self.get_or_create(
            name, QueueConfig(name=name, **{**self.config_defaults, **overrides})
        )

    def preset(self, category: QueueCategory | str) -> JobQueue:
        """Create (or return) a preset queue with its processor registered."""
        spec = PRESETS[QueueCategory(category)]
        queue = self.get_or_create(
            spec.category.value,
            QueueConfig(
                name=spec.category.value,
                **{**self.config_defaults, **spec.config_overrides()},
            ),
        )
        if spec.processor.value not in queue.processors:
            queue.register_processor(
                spec.processor,
                instrumented(
                    build_processor(spec.category, self.senders),
                    event=spec.category.value,
                ),
            )
        return queue

    def email(self) -> JobQueue:
        return self.preset(QueueCategory.EMAIL)

    def sms(self) -> JobQueue:
        return self.preset(QueueCategory.SMS)

    def notification(self) -> JobQueue:
        return self.preset(QueueCategory.NOTIFICATION)

    def data_processing(self) -> JobQueue:
        return self.preset(QueueCategory.DATA_PROCESSING)

    def scheduled(self) -> JobQueue:
        return self.preset(QueueCategory.SCHEDULED)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    async def start_all(self) -> list[str]:
        """
        Start every preset queue on its canonical processor.

        Queues without a preset are skipped with a warning, as are queues
        that are already processing. Returns the names that were started.
        """
        started: list[str] = []
        for name, queue in list(self._queues.items()):
            spec = preset_for(name)
            if spec is None:
                logger.warning("queue_start_skipped", queue=name, reason="no_preset")
                continue
            if queue.is_processing:
                continue
            await queue.start_processing(spec.processor, self.process_options)
            started.append(name)
        logger.info("queues_started", queues=started)
        return started

    async def stop_all(self) -> None:
        for queue in self.queues():
            await queue.stop_processing()
        logger.info("queues_stopped", count=len(self._queues))

    async def remove(self, name: str) -> bool:
        """Stop, clear and forget a queue. False if it was not registered."""
        queue = self._queues.get(name)
        if queue is None:
            return False
        await queue.stop_processing()
        await queue.clear()
        del self._queues[name]
        logger.info("queue_removed", queue=name)
        return True

    async def get_all_stats(self) -> dict[str, QueueStats]:
        return {name: await queue.get_stats() for name, queue in self._queues.items()}
