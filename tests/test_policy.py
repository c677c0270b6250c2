import asyncio

import pytest

from gatequeue.adapters.policy.memory import InMemoryPolicyStore
from gatequeue.core.policy import PolicyEngine, field_match, key_match, level_match
from gatequeue.domain.errors import ValidationError
from gatequeue.domain.models import Effect, PermissionRequest, PolicyRule
from gatequeue.domain.policy_defaults import DEFAULT_ASSIGNMENTS, DEFAULT_RULES


@pytest.fixture
def store() -> InMemoryPolicyStore:
    return InMemoryPolicyStore()


@pytest.fixture
async def engine(store: InMemoryPolicyStore) -> PolicyEngine:
    eng = PolicyEngine(store)
    await eng.seed(DEFAULT_RULES, DEFAULT_ASSIGNMENTS)
    return eng


def req(sub: str, obj: str, act: str, domain="hotelA", region="CN", level="50") -> PermissionRequest:
    return PermissionRequest(sub=sub, obj=obj, act=act, domain=domain, region=region, level=level)


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "path, pattern, expected",
    [
        ("/api/room", "/api/room", True),
        ("/api/room/1", "/api/room", False),
        ("/api/admin/users", "/api/admin/*", True),
        ("/api/admin/users/7", "/api/admin/*", True),
        ("/api/public", "/api/public/*", False),
        ("/anything", "*", True),
        ("/api/room.x", "/api/room?x", False),
    ],
)
def test_key_match(path: str, pattern: str, expected: bool) -> None:
    assert key_match(path, pattern) is expected


@pytest.mark.parametrize(
    "requested, ruled, expected",
    [
        ("30", "20", True),
        ("20", "20", True),
        ("10", "20", False),
        ("*", "50", False),
        ("10", "*", True),
        ("*", "*", True),
        ("gold", "gold", True),
        ("gold", "20", False),
    ],
)
def test_level_match(requested: str, ruled: str, expected: bool) -> None:
    assert level_match(requested, ruled) is expected


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


async def test_role_allowed_by_matching_rule(engine: PolicyEngine) -> None:
    assert await engine.check_permission(req("staff", "/api/room", "GET"))
    assert not await engine.check_permission(req("staff", "/api/room", "DELETE"))


async def test_domain_and_region_must_match(engine: PolicyEngine) -> None:
    assert not await engine.check_permission(req("staff", "/api/room", "GET", domain="hotelB"))
    assert not await engine.check_permission(req("staff", "/api/room", "GET", region="US"))


async def test_level_threshold(engine: PolicyEngine) -> None:
    assert await engine.check_permission(req("staff", "/api/booking", "GET", level="25"))
    assert not await engine.check_permission(req("staff", "/api/booking", "GET", level="10"))


async def test_user_inherits_roles_through_groupings(engine: PolicyEngine) -> None:
    assert await engine.check_permission(req("u1002", "/api/room/checkin", "POST"))
    assert not await engine.check_permission(req("u1001", "/api/room/checkin", "POST"))


async def test_grouping_domain_is_respected(engine: PolicyEngine) -> None:
    await engine.assign_role("u2000", "admin", "hotelB")
    assert not await engine.check_permission(req("u2000", "/api/report", "GET"))


async def test_unscoped_request_does_not_match_scoped_values(engine: PolicyEngine) -> None:
    await engine.assign_role("u2000", "admin", "hotelB")
    assert not await engine.check_permission(req("u2000", "/api/report", "GET", domain="*"))
    assert not await engine.check_permission(req("staff", "/api/room", "GET", region="*"))
    assert not await engine.check_permission(req("staff", "/api/booking", "GET", level="*"))
    assert engine.get_roles_for_user("u2000", "*") == []
    assert engine.get_roles_for_user("root", "*") == ["super_admin"]
    assert not engine.has_role("u2000", "admin", "*")


def test_field_match_wildcard_is_rule_side_only() -> None:
    assert field_match("hotelA", "*")
    assert field_match("*", "*")
    assert not field_match("*", "hotelA")


async def test_any_of_several_roles_suffices(engine: PolicyEngine) -> None:
    assert await engine.authorize_roles(["guest", "staff"], "/api/room/checkin", "POST", "hotelA", "CN")
    assert not await engine.authorize_roles(["guest"], "/api/room/checkin", "POST", "hotelA", "CN")
    assert not await engine.authorize_roles([], "/api/room", "GET")


async def test_deny_overrides_allow(engine: PolicyEngine) -> None:
    await engine.add_policy(PolicyRule(sub="staff", obj="*", act="*"))
    assert await engine.check_permission(req("staff", "/api/anything", "GET"))
    assert not await engine.check_permission(req("staff", "/api/admin/users", "GET"))


async def test_super_admin_allowed_everywhere(engine: PolicyEngine) -> None:
    assert await engine.check_permission(req("root", "/api/admin/x", "DELETE", domain="hotelZ"))


async def test_transitive_role_inheritance(engine: PolicyEngine) -> None:
    await engine.add_role_to_group("night_manager", "supervisor", "hotelA")
    await engine.assign_role("u3000", "night_manager", "hotelA")
    assert await engine.check_permission(req("u3000", "/api/report", "GET"))
    assert engine.has_role("u3000", "supervisor", "hotelA")
    assert engine.get_roles_in_group("supervisor", "hotelA") == ["u1003", "night_manager"]


async def test_missing_fields_rejected(engine: PolicyEngine) -> None:
    with pytest.raises(ValidationError):
        await engine.check_permission({"sub": "staff", "obj": "/api/room"})


async def test_evaluation_error_fails_closed_and_is_not_cached(
    engine: PolicyEngine, monkeypatch
) -> None:
    def boom(request):
        raise RuntimeError("corrupt model")

    monkeypatch.setattr(engine, "evaluate", boom)
    assert await engine.check_permission(req("root", "/x", "GET")) is False
    assert len(engine.cache) == 0
    monkeypatch.undo()
    assert await engine.check_permission(req("root", "/x", "GET")) is True


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


async def test_repeat_checks_are_served_from_cache(engine: PolicyEngine) -> None:
    request = req("staff", "/api/room", "GET")
    await engine.check_permission(request)
    await engine.check_permission(request)
    stats = engine.stats()
    assert stats.cache_hits == 1
    assert stats.cache_size == 1


async def test_add_policy_invalidates_cached_denial(engine: PolicyEngine) -> None:
    request = req("guest", "/api/booking", "GET")
    assert not await engine.check_permission(request)
    await engine.add_policy({"sub": "guest", "obj": "/api/booking", "act": "GET"})
    assert await engine.check_permission(request)


async def test_remove_role_invalidates_cached_allow(engine: PolicyEngine) -> None:
    request = req("u1002", "/api/room", "GET")
    assert await engine.check_permission(request)
    assert await engine.remove_role("u1002", "staff", "hotelA")
    assert not await engine.check_permission(request)


async def test_clear_cache(engine: PolicyEngine) -> None:
    await engine.check_permission(req("staff", "/api/room", "GET"))
    engine.clear_cache()
    assert engine.stats().cache_size == 0


# ---------------------------------------------------------------------------
# Mutations and persistence
# ---------------------------------------------------------------------------


async def test_seed_only_when_empty(engine: PolicyEngine) -> None:
    assert await engine.seed(DEFAULT_RULES, DEFAULT_ASSIGNMENTS) is False
    assert len(engine.get_policy()) == len(DEFAULT_RULES)


async def test_add_policy_reports_duplicates(engine: PolicyEngine) -> None:
    rule = PolicyRule(sub="guest", obj="/api/menu", act="GET")
    assert await engine.add_policy(rule) is True
    assert await engine.add_policy(rule) is False
    assert engine.has_policy(rule)


async def test_add_policies_counts_new_rules(engine: PolicyEngine) -> None:
    rules = [
        {"sub": "guest", "obj": "/api/menu", "act": "GET"},
        {"sub": "guest", "obj": "/api/menu", "act": "GET"},
        {"sub": "staff", "obj": "/api/room", "act": "GET", "domain": "hotelA",
         "region": "CN", "level": "20"},
    ]
    assert await engine.add_policies(rules) == 1


async def test_invalid_rule_rejected(engine: PolicyEngine) -> None:
    with pytest.raises(ValidationError):
        await engine.add_policy({"sub": "guest", "obj": "", "act": "GET"})


async def test_mutations_are_persisted(engine: PolicyEngine, store: InMemoryPolicyStore) -> None:
    rule = PolicyRule(sub="guest", obj="/api/menu", act="GET")
    await engine.add_policy(rule)
    assert rule.as_tuple() in store.rules
    await engine.remove_policy(rule)
    assert rule.as_tuple() not in store.rules

    reloaded = PolicyEngine(store)
    await reloaded.load()
    assert len(reloaded.get_policy()) == len(DEFAULT_RULES)
    assert len(reloaded.get_groupings()) == len(DEFAULT_ASSIGNMENTS)


async def test_load_without_changes_keeps_cache(engine: PolicyEngine) -> None:
    await engine.check_permission(req("staff", "/api/room", "GET"))
    assert await engine.load() is False
    assert len(engine.cache) == 1


async def wait_for_decision(
    engine: PolicyEngine, request: PermissionRequest, expected: bool, timeout: float = 2.0
) -> None:
    async def poll() -> None:
        while await engine.check_permission(request) is not expected:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


async def test_reload_picks_up_changes_from_another_engine(
    engine: PolicyEngine, store: InMemoryPolicyStore
) -> None:
    other = PolicyEngine(store)
    await other.load()
    request = req("guest", "/api/menu", "GET")
    assert not await other.check_permission(request)

    other.start_reloading(0.02)
    try:
        assert other.is_reloading
        await engine.add_policy({"sub": "guest", "obj": "/api/menu", "act": "GET"})
        await wait_for_decision(other, request, True)
        await engine.remove_role("u1002", "staff", "hotelA")
        await wait_for_decision(other, req("u1002", "/api/room", "GET"), False)
    finally:
        await other.stop_reloading()
    assert not other.is_reloading


async def test_reload_survives_store_errors(
    engine: PolicyEngine, store: InMemoryPolicyStore, monkeypatch
) -> None:
    other = PolicyEngine(store)
    await other.load()
    calls = 0
    load_rules = store.load_rules

    async def flaky():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("database unavailable")
        return await load_rules()

    monkeypatch.setattr(store, "load_rules", flaky)
    other.start_reloading(0.02)
    try:
        await engine.add_policy({"sub": "guest", "obj": "/api/menu", "act": "GET"})
        await wait_for_decision(other, req("guest", "/api/menu", "GET"), True)
    finally:
        await other.stop_reloading()
    assert calls >= 2


async def test_remove_missing_policy(engine: PolicyEngine) -> None:
    assert await engine.remove_policy({"sub": "nobody", "obj": "/", "act": "GET"}) is False


async def test_update_policy(engine: PolicyEngine) -> None:
    old = PolicyRule(sub="guest", obj="/api/public/*", act="GET", level="10")
    new = old.model_copy(update={"act": "*"})
    assert await engine.update_policy(old, new)
    assert not engine.has_policy(old)
    assert await engine.check_permission(req("guest", "/api/public/faq", "POST", level="10"))
    assert await engine.update_policy(old, new) is False


async def test_delete_role_drops_rules_and_grants(engine: PolicyEngine) -> None:
    assert await engine.delete_role("supervisor")
    assert engine.get_permissions_for_role("supervisor") == []
    assert engine.get_users_for_role("supervisor") == []
    assert not await engine.check_permission(req("u1003", "/api/report", "GET"))
    assert await engine.delete_role("supervisor") is False


async def test_role_projections(engine: PolicyEngine) -> None:
    assert engine.get_roles_for_user("u1002", "hotelA") == ["staff"]
    assert engine.get_roles_for_user("u1002", "hotelB") == []
    assert engine.get_roles_for_user("root", "hotelB") == ["super_admin"]
    assert engine.get_users_for_role("guest") == ["u1001"]
    perms = engine.get_permissions_for_user("u1002", "hotelA")
    assert {p.sub for p in perms} == {"staff"}
    assert any(p.eft is Effect.DENY for p in perms)


async def test_stats(engine: PolicyEngine) -> None:
    stats = engine.stats()
    assert stats.policies == len(DEFAULT_RULES)
    assert stats.groupings == len(DEFAULT_ASSIGNMENTS)
    assert stats.roles == 5
