import pytest

from gatequeue.adapters.policy.memory import InMemoryPolicyStore
from gatequeue.core.access import AccessController, AccessOutcome, Identity
from gatequeue.core.policy import PolicyEngine
from gatequeue.domain.policy_defaults import DEFAULT_ASSIGNMENTS, DEFAULT_RULES


@pytest.fixture
async def access() -> AccessController:
    engine = PolicyEngine(InMemoryPolicyStore())
    await engine.seed(DEFAULT_RULES, DEFAULT_ASSIGNMENTS)
    return AccessController(engine)


def staff(**kwargs) -> Identity:
    return Identity(user_id="u1002", domain="hotelA", region="CN", level="20", **kwargs)


async def test_missing_identity_is_unauthenticated(access: AccessController) -> None:
    decision = await access.authorize(None, "/api/room", "GET")
    assert decision.outcome is AccessOutcome.UNAUTHENTICATED
    assert decision.status_code == 401
    assert not decision.allowed


async def test_missing_identity_allowed_when_auth_optional(access: AccessController) -> None:
    decision = await access.authorize(None, "/api/room", "GET", require_auth=False)
    assert decision.allowed
    assert decision.status_code == 200


async def test_identity_without_roles(access: AccessController) -> None:
    decision = await access.authorize(Identity(user_id="stranger"), "/api/room", "GET")
    assert decision.outcome is AccessOutcome.NO_ROLES
    assert decision.status_code == 403
    assert decision.user_id == "stranger"


async def test_roles_looked_up_in_identity_domain(access: AccessController) -> None:
    decision = await access.authorize(staff(), "/api/room", "GET")
    assert decision.allowed
    assert decision.role == "staff"


async def test_denied_when_no_role_allows(access: AccessController) -> None:
    decision = await access.authorize(staff(), "/api/admin/users", "GET")
    assert decision.outcome is AccessOutcome.DENIED
    assert decision.status_code == 403


async def test_level_below_rule_is_denied(access: AccessController) -> None:
    identity = Identity(user_id="u1002", domain="hotelA", region="CN", level="10")
    assert not (await access.authorize(identity, "/api/booking", "GET")).allowed


async def test_explicit_roles_override_lookup(access: AccessController) -> None:
    identity = staff(roles=("guest", "staff"))
    decision = await access.authorize(identity, "/api/room/checkout", "POST")
    assert decision.allowed
    assert decision.role == "staff"
    assert await access.roles_for(identity) == ["guest", "staff"]


async def test_wildcard_domain_user(access: AccessController) -> None:
    decision = await access.authorize(Identity(user_id="root", domain="hotelB"), "/api/queue", "POST")
    assert decision.allowed
    assert decision.role == "super_admin"


async def test_omitted_domain_keeps_only_global_grants(access: AccessController) -> None:
    await access.engine.assign_role("u2000", "admin", "hotelB")
    decision = await access.authorize(Identity(user_id="u2000"), "/api/report", "GET")
    assert decision.outcome is AccessOutcome.NO_ROLES
    assert not decision.allowed


async def test_other_tenant_admin_denied_in_hotel_a(access: AccessController) -> None:
    await access.engine.assign_role("u2000", "admin", "hotelB")
    identity = Identity(user_id="u2000", domain="hotelA", region="CN", level="50")
    decision = await access.authorize(identity, "/api/report", "GET")
    assert decision.outcome is AccessOutcome.NO_ROLES


async def test_omitted_level_clears_no_threshold(access: AccessController) -> None:
    identity = Identity(user_id="u1002", domain="hotelA", region="CN")
    decision = await access.authorize(identity, "/api/booking", "GET")
    assert decision.outcome is AccessOutcome.DENIED
    assert (await access.authorize(staff(), "/api/booking", "GET")).allowed
