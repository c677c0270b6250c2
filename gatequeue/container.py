"""
Composition root — builds the service graph from Settings.

    store       RedisStore when redis_url is set, else InMemoryStore
    policies    SQLAlchemyPolicyStore when database_url is set, else in memory
    engine      PolicyEngine over the policy store with a DecisionCache
    registry    QueueRegistry over the store
    access      AccessController over the engine

Nothing here is a module-level singleton; the app factory and tests each
build their own Container.
"""

from __future__ import annotations

import dataclasses

import structlog

from gatequeue.adapters.policy.memory import InMemoryPolicyStore
from gatequeue.adapters.policy.sqlalchemy import SQLAlchemyPolicyStore
from gatequeue.adapters.store.memory import InMemoryStore
from gatequeue.adapters.store.redis import RedisStore
from gatequeue.config import Settings
from gatequeue.core.access import AccessController
from gatequeue.core.cache import DecisionCache
from gatequeue.core.policy import PolicyEngine
from gatequeue.core.presets import PRESETS, Senders
from gatequeue.core.registry import QueueRegistry
from gatequeue.domain.policy_defaults import DEFAULT_ASSIGNMENTS, DEFAULT_RULES
from gatequeue.ports.policy_store import PolicyStorePort
from gatequeue.ports.store import KeyValueStorePort

logger = structlog.get_logger(__name__)


@dataclasses.dataclass
class Container:
    settings: Settings
    store: KeyValueStorePort
    policy_store: PolicyStorePort
    engine: PolicyEngine
    registry: QueueRegistry
    access: AccessController

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        store: KeyValueStorePort | None = None,
        policy_store: PolicyStorePort | None = None,
        senders: Senders | None = None,
    ) -> "Container":
        if store is None:
            store = (
                RedisStore.from_url(settings.redis_url)
                if settings.redis_url
                else InMemoryStore()
            )
        if policy_store is None:
            policy_store = (
                SQLAlchemyPolicyStore.from_url(settings.database_url)
                if settings.database_url
                else InMemoryPolicyStore()
            )
        engine = PolicyEngine(
            policy_store,
            DecisionCache(
                ttl_seconds=settings.permission_cache_ttl_seconds,
                maxsize=settings.permission_cache_maxsize,
            ),
        )
        registry = QueueRegistry(
            store,
            senders=senders or Senders(),
            config_defaults={
                "job_ttl_seconds": settings.job_ttl_seconds,
                "lease_timeout_seconds": settings.lease_timeout_seconds,
            },
        )
        return cls(
            settings=settings,
            store=store,
            policy_store=policy_store,
            engine=engine,
            registry=registry,
            access=AccessController(engine),
        )

    async def startup(self) -> None:
        """Prepare storage and policies, then optionally start the preset queues."""
        if isinstance(self.policy_store, SQLAlchemyPolicyStore):
            await self.policy_store.create_schema()
        await self.engine.load()
        if self.settings.seed_default_policies:
            await self.engine.seed(DEFAULT_RULES, DEFAULT_ASSIGNMENTS)
        self.engine.start_reloading(self.settings.policy_reload_interval_seconds)
        if self.settings.autostart_queues:
            for category in PRESETS:
                self.registry.preset(category)
            await self.registry.start_all()
        logger.info(
            "container_started",
            environment=self.settings.environment,
            store=type(self.store).__name__,
            policy_store=type(self.policy_store).__name__,
        )

    async def shutdown(self) -> None:
        await self.engine.stop_reloading()
        await self.registry.stop_all()
        await self.store.close()
        await self.policy_store.close()
        logger.info("container_stopped")
