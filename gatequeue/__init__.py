"""
gatequeue — multi-tenant job queue and policy-checked HTTP backend.

Two cores share one process:

  - a priority / delayed job queue over Redis sorted sets, with
    exponential-backoff retry, concurrent worker pools and lease-based
    crash recovery
  - a Casbin-style policy engine (subject, object, action, domain, region,
    level) with a decision cache, used to authorize every API request

Quick start
-----------
    import asyncio
    from gatequeue import InMemoryStore, QueueRegistry, QueueCategory

    async def main():
        registry = QueueRegistry(InMemoryStore())
        email = registry.preset(QueueCategory.EMAIL)

        await email.enqueue(
            {"to": "user@example.com", "subject": "Welcome", "content": "Hi!"},
            priority=5,
        )
        await registry.start_all()
        await asyncio.sleep(1)
        await registry.stop_all()

    asyncio.run(main())

Store adapters
--------------
  - InMemoryStore — asyncio.Lock-based, for tests and single-process use
  - RedisStore    — redis.asyncio, Lua scripts for atomic claim/move

Custom adapters implement the KeyValueStorePort Protocol.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (Job, QueueConfig, PolicyRule, ...)
  ports/    — Protocol interfaces (KeyValueStorePort, PolicyStorePort)
  core/     — business logic (JobQueue, QueueRegistry, PolicyEngine, ...)
  adapters/ — concrete store implementations
  api/      — FastAPI surface
"""
from __future__ import annotations

from gatequeue.adapters.policy.memory import InMemoryPolicyStore
from gatequeue.adapters.store.memory import InMemoryStore
from gatequeue.adapters.store.redis import RedisStore
from gatequeue.core.access import AccessController, AccessDecision, AccessOutcome, Identity
from gatequeue.core.cache import DecisionCache
from gatequeue.core.handlers import instrumented, with_deadline
from gatequeue.core.lease import LeaseKeeper
from gatequeue.core.policy import PolicyEngine
from gatequeue.core.presets import ProcessorName, QueueCategory, Senders
from gatequeue.core.queue import JobQueue
from gatequeue.core.registry import QueueRegistry
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
from gatequeue.domain.models import (
    Effect,
    Job,
    JobSpec,
    JobStatus,
    PermissionRequest,
    PolicyRule,
    ProcessOptions,
    QueueConfig,
    QueueStats,
    RoleAssignment,
)
from gatequeue.ports.policy_store import PolicyStorePort
from gatequeue.ports.store import KeyValueStorePort

__all__ = [
    # Domain models
    "Job",
    "JobSpec",
    "JobStatus",
    "QueueConfig",
    "ProcessOptions",
    "QueueStats",
    "Effect",
    "PolicyRule",
    "RoleAssignment",
    "PermissionRequest",
    # Errors
    "GateQueueError",
    "ValidationError",
    "StorageError",
    "QueueError",
    "AlreadyProcessingError",
    "ProcessorNotFoundError",
    "QueueNotFoundError",
    "JobNotFoundError",
    "AccessDeniedError",
    # Ports (for typing custom adapters)
    "KeyValueStorePort",
    "PolicyStorePort",
    # Queue API
    "JobQueue",
    "QueueRegistry",
    "QueueCategory",
    "ProcessorName",
    "Senders",
    "LeaseKeeper",
    "instrumented",
    "with_deadline",
    # Access control
    "PolicyEngine",
    "DecisionCache",
    "AccessController",
    "AccessDecision",
    "AccessOutcome",
    "Identity",
    # Built-in adapters
    "InMemoryStore",
    "RedisStore",
    "InMemoryPolicyStore",
]
