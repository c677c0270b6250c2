"""
InMemoryPolicyStore — process-local policy persistence for tests and development.

Rules and groupings are kept as insertion-ordered dicts keyed by their
tuples, so duplicate adds are ignored and removals are O(1).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence

from gatequeue.domain.models import PolicyRule, RoleAssignment


@dataclasses.dataclass
class InMemoryPolicyStore:
    rules: dict[tuple[str, ...], PolicyRule] = dataclasses.field(default_factory=dict)
    groupings: dict[tuple[str, ...], RoleAssignment] = dataclasses.field(
        default_factory=dict
    )

    async def load_rules(self) -> list[PolicyRule]:
        return list(self.rules.values())

    async def load_groupings(self) -> list[RoleAssignment]:
        return list(self.groupings.values())

    async def add_rules(self, rules: Sequence[PolicyRule]) -> None:
        for rule in rules:
            self.rules.setdefault(rule.as_tuple(), rule)

    async def remove_rules(self, rules: Sequence[PolicyRule]) -> None:
        for rule in rules:
            self.rules.pop(rule.as_tuple(), None)

    async def add_groupings(self, groupings: Sequence[RoleAssignment]) -> None:
        for grouping in groupings:
            self.groupings.setdefault(grouping.as_tuple(), grouping)

    async def remove_groupings(self, groupings: Sequence[RoleAssignment]) -> None:
        for grouping in groupings:
            self.groupings.pop(grouping.as_tuple(), None)

    async def close(self) -> None:
        return None
