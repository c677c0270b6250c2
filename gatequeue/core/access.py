"""
AccessController — decides whether an identity may perform (obj, act).

    identity missing ─┬─ auth required → UNAUTHENTICATED (401)
                      └─ not required  → ALLOWED
    no roles          → NO_ROLES (403)
    roles             → first role the policy engine allows → ALLOWED
                        none allowed                        → DENIED (403)

The controller knows nothing about HTTP; gatequeue.api.deps binds it to
FastAPI requests.
"""

from __future__ import annotations

import dataclasses
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field

from gatequeue.core.policy import PolicyEngine
from gatequeue.domain.models import WILDCARD

logger = structlog.get_logger(__name__)


class AccessOutcome(str, Enum):
    ALLOWED = "allowed"
    UNAUTHENTICATED = "unauthenticated"
    NO_ROLES = "no_roles"
    DENIED = "denied"


class Identity(BaseModel):
    """The caller, as established by authentication."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    domain: str = WILDCARD
    region: str = WILDCARD
    level: str = WILDCARD
    roles: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    obj: str
    act: str
    user_id: str | None = None
    role: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOWED

    @property
    def status_code(self) -> int:
        if self.outcome is AccessOutcome.ALLOWED:
            return 200
        if self.outcome is AccessOutcome.UNAUTHENTICATED:
            return 401
        return 403


@dataclasses.dataclass
class AccessController:
    engine: PolicyEngine

    async def roles_for(self, identity: Identity) -> list[str]:
        """Explicit roles on the identity, else the roles granted in its domain."""
        if identity.roles:
            return list(identity.roles)
        return self.engine.get_roles_for_user(identity.user_id, identity.domain)

    async def authorize(
        self,
        identity: Identity | None,
        obj: str,
        act: str,
        *,
        require_auth: bool = True,
    ) -> AccessDecision:
        if identity is None:
            outcome = AccessOutcome.UNAUTHENTICATED if require_auth else AccessOutcome.ALLOWED
            return self._decided(AccessDecision(outcome, obj, act))

        roles = await self.roles_for(identity)
        if not roles:
            return self._decided(
                AccessDecision(AccessOutcome.NO_ROLES, obj, act, user_id=identity.user_id)
            )

        for role in roles:
            allowed = await self.engine.authorize_roles(
                [role],
                obj,
                act,
                domain=identity.domain,
                region=identity.region,
                level=identity.level,
            )
            if allowed:
                return self._decided(
                    AccessDecision(
                        AccessOutcome.ALLOWED, obj, act, user_id=identity.user_id, role=role
                    )
                )
        return self._decided(
            AccessDecision(AccessOutcome.DENIED, obj, act, user_id=identity.user_id)
        )

    def _decided(self, decision: AccessDecision) -> AccessDecision:
        log = logger.debug if decision.allowed else logger.warning
        log(
            "access_decided",
            outcome=decision.outcome.value,
            user_id=decision.user_id,
            role=decision.role,
            obj=decision.obj,
            act=decision.act,
        )
        return decision
