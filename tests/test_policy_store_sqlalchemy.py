import pytest
from sqlalchemy.exc import OperationalError

from gatequeue.adapters.policy.sqlalchemy import SQLAlchemyPolicyStore
from gatequeue.core.policy import PolicyEngine
from gatequeue.domain.errors import StorageError
from gatequeue.domain.models import Effect, PolicyRule, RoleAssignment
from gatequeue.domain.policy_defaults import DEFAULT_ASSIGNMENTS, DEFAULT_RULES
from gatequeue.ports.policy_store import PolicyStorePort

RULE = PolicyRule(sub="staff", obj="/api/room", act="GET", domain="hotelA", region="CN", level="20")
DENY = PolicyRule(sub="guest", obj="/api/admin/*", act="*", eft=Effect.DENY)
GRANT = RoleAssignment(user="u1", role="staff", domain="hotelA")


@pytest.fixture
async def store():
    s = SQLAlchemyPolicyStore.from_url("sqlite+aiosqlite:///:memory:")
    await s.create_schema()
    yield s
    await s.close()


async def test_satisfies_port(store: SQLAlchemyPolicyStore) -> None:
    assert isinstance(store, PolicyStorePort)


async def test_rules_round_trip_in_insertion_order(store: SQLAlchemyPolicyStore) -> None:
    await store.add_rules([RULE, DENY])
    assert await store.load_rules() == [RULE, DENY]


async def test_duplicate_rules_are_stored_once(store: SQLAlchemyPolicyStore) -> None:
    await store.add_rules([RULE])
    await store.add_rules([RULE])
    assert len(await store.load_rules()) == 1


async def test_remove_rules_matches_every_field(store: SQLAlchemyPolicyStore) -> None:
    await store.add_rules([RULE, DENY])
    await store.remove_rules([RULE.model_copy(update={"level": "30"})])
    assert len(await store.load_rules()) == 2
    await store.remove_rules([RULE])
    assert await store.load_rules() == [DENY]


async def test_groupings_are_separate_from_rules(store: SQLAlchemyPolicyStore) -> None:
    await store.add_rules([RULE])
    await store.add_groupings([GRANT])
    assert await store.load_groupings() == [GRANT]
    await store.remove_groupings([GRANT])
    assert await store.load_groupings() == []
    assert await store.load_rules() == [RULE]


async def test_engine_state_survives_reload(store: SQLAlchemyPolicyStore) -> None:
    engine = PolicyEngine(store)
    await engine.seed(DEFAULT_RULES, DEFAULT_ASSIGNMENTS)
    await engine.delete_role("guest")

    fresh = PolicyEngine(store)
    await fresh.load()
    assert len(fresh.get_policy()) == len(DEFAULT_RULES) - 3
    assert fresh.get_users_for_role("guest") == []
    assert fresh.get_roles_for_user("u1002", "hotelA") == ["staff"]


async def test_database_errors_are_wrapped() -> None:
    s = SQLAlchemyPolicyStore.from_url("sqlite+aiosqlite:///:memory:")
    try:
        with pytest.raises(StorageError) as info:
            await s.load_rules()
        assert isinstance(info.value.cause, OperationalError)
    finally:
        await s.close()
