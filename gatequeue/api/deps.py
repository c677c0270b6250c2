"""
FastAPI dependencies: service lookup, caller identity and access checks.

Identity is read from request headers:

    X-User-Id   required for an authenticated caller
    X-Domain    tenant
    X-Region    region code
    X-Level     clearance level

An omitted scope header becomes "*", which matches only rules and grants
that are themselves unscoped. A caller who leaves out X-Domain therefore
keeps just its global grants, and one who leaves out X-Level clears no
level threshold.

Authentication proper (tokens, sessions) is out of scope; a deployment
overrides `current_identity` with app.dependency_overrides to plug one in.
"""

from __future__ import annotations

import structlog
from fastapi import Depends, Request

from gatequeue.config import Settings
from gatequeue.container import Container
from gatequeue.core.access import AccessController, AccessDecision, AccessOutcome, Identity
from gatequeue.core.policy import PolicyEngine
from gatequeue.core.registry import QueueRegistry
from gatequeue.domain.errors import AccessDeniedError
from gatequeue.domain.models import WILDCARD
from gatequeue.i18n import resolve_locale


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(container: Container = Depends(get_container)) -> QueueRegistry:
    return container.registry


def get_engine(container: Container = Depends(get_container)) -> PolicyEngine:
    return container.engine


def get_access(container: Container = Depends(get_container)) -> AccessController:
    return container.access


def get_locale(request: Request, settings: Settings = Depends(get_settings)) -> str:
    return resolve_locale(
        request.headers.get("accept-language"), default=settings.default_locale
    )


def current_identity(request: Request) -> Identity | None:
    user_id = (request.headers.get("x-user-id") or "").strip()
    if not user_id:
        return None
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return Identity(
        user_id=user_id,
        domain=request.headers.get("x-domain") or WILDCARD,
        region=request.headers.get("x-region") or WILDCARD,
        level=request.headers.get("x-level") or WILDCARD,
    )


def require_access(require_auth: bool | None = None):
    """
    Authorize the request path and method through the policy engine.

    require_auth=None follows Settings.auth_required.
    """

    async def dep(
        request: Request,
        identity: Identity | None = Depends(current_identity),
        access: AccessController = Depends(get_access),
        settings: Settings = Depends(get_settings),
    ) -> Identity | None:
        needs_auth = settings.auth_required if require_auth is None else require_auth
        decision = await access.authorize(
            identity, request.url.path, request.method, require_auth=needs_auth
        )
        if not decision.allowed:
            raise AccessDeniedError(decision)
        return identity

    return dep


def _denied(request: Request, outcome: AccessOutcome, identity: Identity | None) -> AccessDeniedError:
    return AccessDeniedError(
        AccessDecision(
            outcome,
            request.url.path,
            request.method,
            user_id=identity.user_id if identity else None,
        )
    )


def require_identity(
    request: Request, identity: Identity | None = Depends(current_identity)
) -> Identity:
    if identity is None:
        raise _denied(request, AccessOutcome.UNAUTHENTICATED, None)
    return identity


def require_role(*roles: str):
    """Allow callers holding at least one of `roles` (directly or inherited)."""

    async def dep(
        request: Request,
        identity: Identity = Depends(require_identity),
        engine: PolicyEngine = Depends(get_engine),
    ) -> Identity:
        if not any(engine.has_role(identity.user_id, r, identity.domain) for r in roles):
            raise _denied(request, AccessOutcome.DENIED, identity)
        return identity

    return dep


def require_level(min_level: int):
    """Allow callers whose X-Level is at least `min_level`."""

    def dep(request: Request, identity: Identity = Depends(require_identity)) -> Identity:
        try:
            level = int(identity.level)
        except ValueError:
            raise _denied(request, AccessOutcome.DENIED, identity) from None
        if level < min_level:
            raise _denied(request, AccessOutcome.DENIED, identity)
        return identity

    return dep
