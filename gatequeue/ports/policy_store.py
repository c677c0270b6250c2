"""
PolicyStorePort — persistence for access-control rules and role groupings.

The policy engine keeps the working model in memory and writes every
mutation through this port before applying it locally. Adapters only need
bulk load and exact add/remove; filtered removals are resolved by the
engine against its in-memory model.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from gatequeue.domain.models import PolicyRule, RoleAssignment


@runtime_checkable
class PolicyStorePort(Protocol):
    """
    Implementing adapters (built-in):
      - InMemoryPolicyStore   — lists in process memory
      - SQLAlchemyPolicyStore — casbin_rule-style table via SQLAlchemy async

    All methods raise StorageError on I/O failure.
    """

    async def load_rules(self) -> list[PolicyRule]: ...

    async def load_groupings(self) -> list[RoleAssignment]: ...

    async def add_rules(self, rules: Sequence[PolicyRule]) -> None: ...

    async def remove_rules(self, rules: Sequence[PolicyRule]) -> None: ...

    async def add_groupings(self, groupings: Sequence[RoleAssignment]) -> None: ...

    async def remove_groupings(self, groupings: Sequence[RoleAssignment]) -> None: ...

    async def close(self) -> None: ...
