"""
Default access-control rules and role assignments (hotel demo tenant).

Seeded into an empty policy store at start-up when
Settings.seed_default_policies is enabled.
"""

from __future__ import annotations

from gatequeue.domain.models import Effect, PolicyRule, RoleAssignment

GUEST_LEVEL = "10"
STAFF_LEVEL = "20"
SUPERVISOR_LEVEL = "30"
ADMIN_LEVEL = "50"

DEFAULT_RULES: tuple[PolicyRule, ...] = (
    # guest
    PolicyRule(sub="guest", obj="/api/public/*", act="GET", level=GUEST_LEVEL),
    PolicyRule(
        sub="guest", obj="/api/room", act="GET", domain="hotelA", region="CN", level=GUEST_LEVEL
    ),
    # staff
    PolicyRule(
        sub="staff", obj="/api/room", act="GET", domain="hotelA", region="CN", level=STAFF_LEVEL
    ),
    PolicyRule(
        sub="staff",
        obj="/api/room/checkin",
        act="POST",
        domain="hotelA",
        region="CN",
        level=STAFF_LEVEL,
    ),
    PolicyRule(
        sub="staff",
        obj="/api/room/checkout",
        act="POST",
        domain="hotelA",
        region="CN",
        level=STAFF_LEVEL,
    ),
    PolicyRule(
        sub="staff", obj="/api/booking", act="GET", domain="hotelA", region="CN", level=STAFF_LEVEL
    ),
    # supervisor
    PolicyRule(
        sub="supervisor",
        obj="/api/report",
        act="GET",
        domain="hotelA",
        region="CN",
        level=SUPERVISOR_LEVEL,
    ),
    PolicyRule(
        sub="supervisor",
        obj="/api/analytics",
        act="GET",
        domain="hotelA",
        region="CN",
        level=SUPERVISOR_LEVEL,
    ),
    PolicyRule(
        sub="supervisor",
        obj="/api/staff",
        act="GET",
        domain="hotelA",
        region="CN",
        level=SUPERVISOR_LEVEL,
    ),
    # admin: everything inside its tenant
    PolicyRule(sub="admin", obj="*", act="*", domain="hotelA", level=ADMIN_LEVEL),
    # super_admin: everything everywhere
    PolicyRule(sub="super_admin", obj="*", act="*"),
    # explicit denials
    PolicyRule(sub="guest", obj="/api/admin/*", act="*", eft=Effect.DENY),
    PolicyRule(sub="staff", obj="/api/admin/*", act="*", eft=Effect.DENY),
)

DEFAULT_ASSIGNMENTS: tuple[RoleAssignment, ...] = (
    RoleAssignment(user="u1001", role="guest", domain="hotelA"),
    RoleAssignment(user="u1002", role="staff", domain="hotelA"),
    RoleAssignment(user="u1003", role="supervisor", domain="hotelA"),
    RoleAssignment(user="u1009", role="admin", domain="hotelA"),
    RoleAssignment(user="root", role="super_admin", domain="*"),
)
