"""
PolicyEngine — Casbin-style RBAC with domains, regions and clearance levels.

Model
-----
  request  (sub, obj, act, domain, region, level)
  rule     (sub, obj, act, domain, region, level, eft)
  grouping (user, role, domain)

Matching
--------
  subjects  {sub} plus every role reachable from sub through groupings whose
            domain matches the request domain (transitive, so roles can
            inherit from groups)
  obj       key match: `*` in the rule matches any run of characters
  act, domain, region
            equal, or the rule side is `*`
  level     rule side `*`; both integers → request >= rule; else equal

A `*` in the request is not a wildcard: it only meets a `*` in the rule or
grouping, so an unscoped request is held to unscoped rules and grants.

A request is allowed iff at least one allow rule matches and no deny rule
matches (deny overrides).

Rules and groupings are held in memory and written through a
PolicyStorePort. Decisions are cached in a DecisionCache; any successful
mutation flushes the whole cache. Evaluation errors are logged and deny
access without being cached.

Mutations made by other processes reach this one through start_reloading(),
which re-reads the store every cache TTL by default, so a remote change is
visible within about one TTL.
"""

from __future__ import annotations

import asyncio
import functools
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import pydantic
import structlog
from pydantic import BaseModel

from gatequeue.core.cache import DecisionCache
from gatequeue.domain.errors import ValidationError
from gatequeue.domain.models import (
    WILDCARD,
    Effect,
    PermissionRequest,
    PolicyRule,
    RoleAssignment,
)
from gatequeue.ports.policy_store import PolicyStorePort

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------- #
# Matchers                                                                #
# ---------------------------------------------------------------------- #


@functools.lru_cache(maxsize=1024)
def _pattern(rule_obj: str) -> re.Pattern[str]:
    return re.compile(".*".join(re.escape(part) for part in rule_obj.split(WILDCARD)))


def key_match(path: str, pattern: str) -> bool:
    """True when `path` matches `pattern`, where `*` matches any run of characters."""
    if pattern == WILDCARD:
        return True
    return _pattern(pattern).fullmatch(path) is not None


def field_match(requested: str, ruled: str) -> bool:
    """Only the rule side may be a wildcard; a requested `*` matches a ruled `*` only."""
    return requested == ruled or ruled == WILDCARD


def level_match(requested: str, ruled: str) -> bool:
    if ruled == WILDCARD:
        return True
    if requested == WILDCARD:
        return False
    try:
        return int(requested) >= int(ruled)
    except ValueError:
        return requested == ruled


def rule_matches(rule: PolicyRule, subjects: set[str], request: PermissionRequest) -> bool:
    return (
        rule.sub in subjects
        and key_match(request.obj, rule.obj)
        and field_match(request.act, rule.act)
        and field_match(request.domain, rule.domain)
        and field_match(request.region, rule.region)
        and level_match(request.level, rule.level)
    )


class PolicyStats(BaseModel):
    policies: int
    groupings: int
    roles: int
    cache_size: int
    cache_hits: int
    cache_misses: int


def _validated(model: type[BaseModel], value: Any, what: str) -> Any:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            f"Invalid {what}",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc


# ---------------------------------------------------------------------- #
# Engine                                                                  #
# ---------------------------------------------------------------------- #


class PolicyEngine:
    """
    Parameters
    ----------
    store : PolicyStorePort used for loading and persisting mutations
    cache : decision cache (default: 5 minute TTL)
    """

    def __init__(self, store: PolicyStorePort, cache: DecisionCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else DecisionCache()
        self._rules: dict[tuple[str, ...], PolicyRule] = {}
        self._groupings: dict[tuple[str, ...], RoleAssignment] = {}
        self._lock = asyncio.Lock()
        self._reloader: asyncio.Task[None] | None = None
        self._reload_stop = asyncio.Event()

    async def load(self) -> bool:
        """
        Replace the in-memory model with the store's contents.

        Returns True when the model changed; the decision cache is flushed
        only in that case.
        """
        async with self._lock:
            rules = {r.as_tuple(): r for r in await self.store.load_rules()}
            groupings = {g.as_tuple(): g for g in await self.store.load_groupings()}
            if rules == self._rules and groupings == self._groupings:
                return False
            self._rules = rules
            self._groupings = groupings
            self.cache.clear()
        logger.info("policies_loaded", policies=len(rules), groupings=len(groupings))
        return True

    @property
    def is_reloading(self) -> bool:
        return self._reloader is not None and not self._reloader.done()

    def start_reloading(self, interval: float | None = None) -> None:
        """
        Re-read the store every `interval` seconds in a background task.

        Parameters
        ----------
        interval : seconds between reloads (default: the cache TTL)
        """
        if self.is_reloading:
            return
        seconds = interval if interval is not None else self.cache.ttl_seconds
        self._reload_stop = asyncio.Event()
        self._reloader = asyncio.create_task(
            self._reload_loop(self._reload_stop, seconds), name="gatequeue-policy-reload"
        )

    async def stop_reloading(self) -> None:
        self._reload_stop.set()
        task, self._reloader = self._reloader, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _reload_loop(self, stop: asyncio.Event, seconds: float) -> None:
        while True:
            try:
                await asyncio.wait_for(stop.wait(), timeout=seconds)
                return
            except TimeoutError:
                pass
            try:
                await self.load()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("policy_reload_failed", error=str(exc))

    async def seed(
        self,
        rules: Iterable[PolicyRule],
        assignments: Iterable[RoleAssignment],
        *,
        only_if_empty: bool = True,
    ) -> bool:
        """Add default rules and assignments. Skipped when rules already exist."""
        if only_if_empty and self._rules:
            return False
        await self.add_policies(list(rules))
        for a in assignments:
            await self.assign_role(a.user, a.role, a.domain)
        logger.info("policies_seeded", policies=len(self._rules), groupings=len(self._groupings))
        return True

    # ------------------------------------------------------------------ #
    # Evaluation                                                           #
    # ------------------------------------------------------------------ #

    async def check_permission(
        self, request: PermissionRequest | Mapping[str, Any]
    ) -> bool:
        """
        Cached decision for `request`.

        Raises ValidationError when sub/obj/act are missing. Any error while
        evaluating is logged and treated as a denial.
        """
        request = _validated(PermissionRequest, request, "permission request")
        key = request.cache_key()
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        try:
            allowed = self.evaluate(request)
        except Exception as exc:
            logger.error(
                "permission_check_failed",
                error=str(exc),
                **request.model_dump(),
                exc_info=True,
            )
            return False
        self.cache.set(key, allowed)
        logger.debug("permission_evaluated", allowed=allowed, **request.model_dump())
        return allowed

    def evaluate(self, request: PermissionRequest) -> bool:
        """Uncached decision for `request` against the current model."""
        subjects = self._subjects(request.sub, request.domain)
        allowed = False
        for rule in self._rules.values():
            if not rule_matches(rule, subjects, request):
                continue
            if rule.eft is Effect.DENY:
                return False
            allowed = True
        return allowed

    def _subjects(self, sub: str, domain: str | None) -> set[str]:
        seen = {sub}
        frontier = [sub]
        while frontier:
            current = frontier.pop()
            for g in self._groupings.values():
                if g.user != current or g.role in seen:
                    continue
                if domain is not None and not field_match(domain, g.domain):
                    continue
                seen.add(g.role)
                frontier.append(g.role)
        return seen

    async def authorize_roles(
        self,
        roles: Sequence[str],
        obj: str,
        act: str,
        domain: str = WILDCARD,
        region: str = WILDCARD,
        level: str = WILDCARD,
    ) -> bool:
        """True if any of `roles` is allowed; stops at the first allow."""
        for role in roles:
            request = PermissionRequest(
                sub=role, obj=obj, act=act, domain=domain, region=region, level=level
            )
            if await self.check_permission(request):
                return True
        return False

    # ------------------------------------------------------------------ #
    # Rule mutations                                                       #
    # ------------------------------------------------------------------ #

    def _changed(self, event: str, **context: Any) -> None:
        self.cache.clear()
        logger.info(event, **context)

    async def add_policy(self, rule: PolicyRule | Mapping[str, Any]) -> bool:
        """Add one rule. False if it already exists."""
        return await self.add_policies([rule]) == 1

    async def add_policies(self, rules: Sequence[PolicyRule | Mapping[str, Any]]) -> int:
        """Add rules, skipping existing ones. Returns how many were new."""
        parsed = [_validated(PolicyRule, r, "policy rule") for r in rules]
        async with self._lock:
            new = list(
                {r.as_tuple(): r for r in parsed if r.as_tuple() not in self._rules}.values()
            )
            if not new:
                return 0
            await self.store.add_rules(new)
            self._rules.update((r.as_tuple(), r) for r in new)
            self._changed("policies_added", count=len(new))
        return len(new)

    async def remove_policy(self, rule: PolicyRule | Mapping[str, Any]) -> bool:
        """Remove one rule. False if it did not exist."""
        return await self.remove_policies([rule]) == 1

    async def remove_policies(self, rules: Sequence[PolicyRule | Mapping[str, Any]]) -> int:
        parsed = [_validated(PolicyRule, r, "policy rule") for r in rules]
        async with self._lock:
            present = list(
                {r.as_tuple(): r for r in parsed if r.as_tuple() in self._rules}.values()
            )
            if not present:
                return 0
            await self.store.remove_rules(present)
            for r in present:
                del self._rules[r.as_tuple()]
            self._changed("policies_removed", count=len(present))
        return len(present)

    async def update_policy(
        self,
        old: PolicyRule | Mapping[str, Any],
        new: PolicyRule | Mapping[str, Any],
    ) -> bool:
        """Replace `old` with `new`. False if `old` does not exist."""
        old = _validated(PolicyRule, old, "policy rule")
        new = _validated(PolicyRule, new, "policy rule")
        async with self._lock:
            if old.as_tuple() not in self._rules:
                return False
            await self.store.remove_rules([old])
            await self.store.add_rules([new])
            del self._rules[old.as_tuple()]
            self._rules[new.as_tuple()] = new
            self._changed("policy_updated", old=old.as_tuple(), new=new.as_tuple())
        return True

    # ------------------------------------------------------------------ #
    # Grouping mutations                                                   #
    # ------------------------------------------------------------------ #

    async def assign_role(self, user: str, role: str, domain: str = WILDCARD) -> bool:
        """Grant `role` to `user` in `domain`. False if already granted."""
        grouping = _validated(
            RoleAssignment, {"user": user, "role": role, "domain": domain}, "role assignment"
        )
        async with self._lock:
            if grouping.as_tuple() in self._groupings:
                return False
            await self.store.add_groupings([grouping])
            self._groupings[grouping.as_tuple()] = grouping
            self._changed("role_assigned", user=user, role=role, domain=domain)
        return True

    async def remove_role(self, user: str, role: str, domain: str = WILDCARD) -> bool:
        """Revoke `role` from `user` in `domain`. False if not granted."""
        grouping = _validated(
            RoleAssignment, {"user": user, "role": role, "domain": domain}, "role assignment"
        )
        async with self._lock:
            if grouping.as_tuple() not in self._groupings:
                return False
            await self.store.remove_groupings([grouping])
            del self._groupings[grouping.as_tuple()]
            self._changed("role_revoked", user=user, role=role, domain=domain)
        return True

    async def add_role_to_group(self, role: str, group: str, domain: str = WILDCARD) -> bool:
        """Make `role` inherit everything granted to `group`."""
        return await self.assign_role(role, group, domain)

    async def delete_role(self, role: str) -> bool:
        """Drop every rule whose subject is `role` and every grant of `role`."""
        async with self._lock:
            rules = [r for r in self._rules.values() if r.sub == role]
            groupings = [g for g in self._groupings.values() if g.role == role]
            if not rules and not groupings:
                return False
            if rules:
                await self.store.remove_rules(rules)
            if groupings:
                await self.store.remove_groupings(groupings)
            for r in rules:
                del self._rules[r.as_tuple()]
            for g in groupings:
                del self._groupings[g.as_tuple()]
            self._changed("role_deleted", role=role, policies=len(rules), groupings=len(groupings))
        return True

    # ------------------------------------------------------------------ #
    # Projections                                                          #
    # ------------------------------------------------------------------ #

    def get_policy(self) -> list[PolicyRule]:
        return list(self._rules.values())

    def get_groupings(self) -> list[RoleAssignment]:
        return list(self._groupings.values())

    def has_policy(self, rule: PolicyRule | Mapping[str, Any]) -> bool:
        return _validated(PolicyRule, rule, "policy rule").as_tuple() in self._rules

    def get_roles_for_user(self, user: str, domain: str | None = None) -> list[str]:
        """Roles granted directly to `user` (in `domain` or `*` when given)."""
        return [
            g.role
            for g in self._groupings.values()
            if g.user == user and (domain is None or field_match(domain, g.domain))
        ]

    def get_users_for_role(self, role: str, domain: str | None = None) -> list[str]:
        return [
            g.user
            for g in self._groupings.values()
            if g.role == role and (domain is None or field_match(domain, g.domain))
        ]

    def get_roles_in_group(self, group: str, domain: str | None = None) -> list[str]:
        """Members (roles or users) that inherit from `group`."""
        return self.get_users_for_role(group, domain)

    def has_role(self, user: str, role: str, domain: str | None = None) -> bool:
        """True if `role` is reachable from `user`, directly or by inheritance."""
        return role in self._subjects(user, domain) - {user}

    def get_permissions_for_role(self, role: str) -> list[PolicyRule]:
        return [r for r in self._rules.values() if r.sub == role]

    def get_permissions_for_user(self, user: str, domain: str | None = None) -> list[PolicyRule]:
        """Rules granted to `user` directly or through any reachable role."""
        subjects = self._subjects(user, domain)
        return [r for r in self._rules.values() if r.sub in subjects]

    def stats(self) -> PolicyStats:
        roles = {r.sub for r in self._rules.values()} | {
            g.role for g in self._groupings.values()
        }
        return PolicyStats(
            policies=len(self._rules),
            groupings=len(self._groupings),
            roles=len(roles),
            cache_size=len(self.cache),
            cache_hits=self.cache.hits,
            cache_misses=self.cache.misses,
        )

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("permission_cache_cleared")
