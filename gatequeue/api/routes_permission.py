from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from gatequeue.api import schemas
from gatequeue.api.deps import (
    get_engine,
    get_locale,
    require_identity,
    require_level,
    require_role,
)
from gatequeue.core.policy import PolicyEngine, PolicyStats
from gatequeue.domain.models import PermissionRequest, PolicyRule, RoleAssignment
from gatequeue.i18n import translate

ADMIN_ROLES = ("admin", "super_admin")
SUPERVISOR_LEVEL = 30

router = APIRouter(prefix="/api/permission", tags=["permission"])
admin = [Depends(require_role(*ADMIN_ROLES))]


@router.post(
    "/check",
    response_model=schemas.Envelope[schemas.CheckOut],
    dependencies=[Depends(require_identity)],
)
async def check(
    body: schemas.CheckBody,
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    allowed = await engine.check_permission(PermissionRequest(**body.model_dump()))
    return schemas.Envelope(
        data=schemas.CheckOut(allowed=allowed), message=translate("permission.checked", locale)
    )


# ---------------------------------------------------------------------- #
# Policies                                                                #
# ---------------------------------------------------------------------- #


@router.get("/policies", response_model=schemas.Envelope[list[PolicyRule]], dependencies=admin)
async def list_policies(
    sub: str | None = Query(default=None),
    engine: PolicyEngine = Depends(get_engine),
):
    rules = engine.get_permissions_for_role(sub) if sub else engine.get_policy()
    return schemas.Envelope(data=rules)


@router.post(
    "/policies",
    response_model=schemas.Envelope[schemas.ChangedOut],
    status_code=201,
    dependencies=admin,
)
async def add_policy(
    body: schemas.PolicyBody,
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    added = await engine.add_policy(PolicyRule(**body.model_dump()))
    key = "permission.policy_added" if added else "permission.policy_exists"
    return schemas.Envelope(data=schemas.ChangedOut(changed=added), message=translate(key, locale))


@router.put("/policies", response_model=schemas.Envelope[schemas.ChangedOut], dependencies=admin)
async def update_policy(
    body: schemas.UpdatePolicyBody,
    engine: PolicyEngine = Depends(get_engine),
):
    changed = await engine.update_policy(
        PolicyRule(**body.old.model_dump()), PolicyRule(**body.new.model_dump())
    )
    return schemas.Envelope(data=schemas.ChangedOut(changed=changed))


@router.delete(
    "/policies", response_model=schemas.Envelope[schemas.ChangedOut], dependencies=admin
)
async def remove_policy(
    body: schemas.PolicyBody,
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    removed = await engine.remove_policy(PolicyRule(**body.model_dump()))
    return schemas.Envelope(
        data=schemas.ChangedOut(changed=removed),
        message=translate("permission.policy_removed", locale),
    )


@router.post(
    "/policies/batch",
    response_model=schemas.Envelope[schemas.CountOut],
    status_code=201,
    dependencies=admin,
)
async def add_policies(
    body: schemas.PoliciesBody,
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    count = await engine.add_policies([PolicyRule(**p.model_dump()) for p in body.policies])
    return schemas.Envelope(
        data=schemas.CountOut(count=count),
        message=translate("permission.policies_added", locale, count=count),
    )


# ---------------------------------------------------------------------- #
# Roles                                                                   #
# ---------------------------------------------------------------------- #


@router.get(
    "/users/{user}/roles", response_model=schemas.Envelope[schemas.RolesOut], dependencies=admin
)
async def user_roles(
    user: str,
    domain: str | None = Query(default=None),
    engine: PolicyEngine = Depends(get_engine),
):
    return schemas.Envelope(
        data=schemas.RolesOut(user=user, roles=engine.get_roles_for_user(user, domain))
    )


@router.post(
    "/users/{user}/roles",
    response_model=schemas.Envelope[schemas.ChangedOut],
    status_code=201,
    dependencies=admin,
)
async def assign_role(
    user: str,
    body: schemas.RoleBody,
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    changed = await engine.assign_role(user, body.role, body.domain)
    return schemas.Envelope(
        data=schemas.ChangedOut(changed=changed),
        message=translate("permission.role_assigned", locale, user=user, role=body.role),
    )


@router.delete(
    "/users/{user}/roles", response_model=schemas.Envelope[schemas.ChangedOut], dependencies=admin
)
async def remove_role(
    user: str,
    body: schemas.RoleBody,
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    changed = await engine.remove_role(user, body.role, body.domain)
    return schemas.Envelope(
        data=schemas.ChangedOut(changed=changed),
        message=translate("permission.role_removed", locale, user=user, role=body.role),
    )


@router.get(
    "/roles/{role}/users", response_model=schemas.Envelope[schemas.UsersOut], dependencies=admin
)
async def role_users(
    role: str,
    domain: str | None = Query(default=None),
    engine: PolicyEngine = Depends(get_engine),
):
    return schemas.Envelope(
        data=schemas.UsersOut(role=role, users=engine.get_users_for_role(role, domain))
    )


@router.get(
    "/roles/{role}/permissions",
    response_model=schemas.Envelope[list[PolicyRule]],
    dependencies=admin,
)
async def role_permissions(role: str, engine: PolicyEngine = Depends(get_engine)):
    return schemas.Envelope(data=engine.get_permissions_for_role(role))


@router.post(
    "/roles/{role}/groups",
    response_model=schemas.Envelope[schemas.ChangedOut],
    status_code=201,
    dependencies=admin,
)
async def add_role_to_group(
    role: str,
    body: schemas.GroupBody,
    engine: PolicyEngine = Depends(get_engine),
):
    changed = await engine.add_role_to_group(role, body.group, body.domain)
    return schemas.Envelope(data=schemas.ChangedOut(changed=changed))


@router.delete(
    "/roles/{role}", response_model=schemas.Envelope[schemas.ChangedOut], dependencies=admin
)
async def delete_role(role: str, engine: PolicyEngine = Depends(get_engine)):
    return schemas.Envelope(data=schemas.ChangedOut(changed=await engine.delete_role(role)))


@router.get(
    "/groupings", response_model=schemas.Envelope[list[RoleAssignment]], dependencies=admin
)
async def list_groupings(engine: PolicyEngine = Depends(get_engine)):
    return schemas.Envelope(data=engine.get_groupings())


# ---------------------------------------------------------------------- #
# Engine                                                                  #
# ---------------------------------------------------------------------- #


@router.get(
    "/stats",
    response_model=schemas.Envelope[PolicyStats],
    dependencies=[Depends(require_level(SUPERVISOR_LEVEL))],
)
async def stats(engine: PolicyEngine = Depends(get_engine)):
    return schemas.Envelope(data=engine.stats())


@router.post("/cache/clear", response_model=schemas.Envelope[schemas.ChangedOut], dependencies=admin)
async def clear_cache(
    engine: PolicyEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    engine.clear_cache()
    return schemas.Envelope(
        data=schemas.ChangedOut(changed=True),
        message=translate("permission.cache_cleared", locale),
    )
