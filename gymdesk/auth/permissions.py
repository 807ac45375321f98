# gymdesk/auth/permissions.py
"""
Roles, capabilities and the static role -> capability table.

The table is built once at import and exposed read-only; nothing mutates it
at runtime.
"""
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping

SUPER_ADMIN = "superadmin"
GYM_OWNER = "gymowner"
STAFF = "staff"
TRAINER = "trainer"
MEMBER = "member"

ROLES: FrozenSet[str] = frozenset({SUPER_ADMIN, GYM_OWNER, STAFF, TRAINER, MEMBER})

MANAGE_USERS = "manage_users"
MANAGE_MEMBERS = "manage_members"
VIEW_MEMBERS = "view_members"
SCAN_QR = "scan_qr"
VIEW_ATTENDANCE = "view_attendance"
VIEW_REPORTS = "view_reports"
MANAGE_PLANS = "manage_plans"
VIEW_ALERTS = "view_alerts"

ROLE_PERMISSIONS: Mapping[str, FrozenSet[str]] = MappingProxyType({
    # system level only, no gym-operational capabilities
    SUPER_ADMIN: frozenset({VIEW_REPORTS}),
    GYM_OWNER: frozenset({
        MANAGE_USERS,
        MANAGE_MEMBERS,
        VIEW_MEMBERS,
        SCAN_QR,
        VIEW_ATTENDANCE,
        VIEW_REPORTS,
        MANAGE_PLANS,
        VIEW_ALERTS,
    }),
    STAFF: frozenset({
        MANAGE_MEMBERS,
        VIEW_MEMBERS,
        SCAN_QR,
        VIEW_ATTENDANCE,
        VIEW_ALERTS,
    }),
    TRAINER: frozenset({VIEW_MEMBERS, VIEW_ATTENDANCE}),
    MEMBER: frozenset(),
})


def allowed(role: str, required_roles: Iterable[str]) -> bool:
    """Coarse gate: is ``role`` one of ``required_roles``."""
    return role in set(required_roles)


def has_permission(role: str, permission: str) -> bool:
    """Fine gate: does ``role`` carry ``permission`` in the capability table."""
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def room_for(role: str) -> str:
    return f"{role}-room"
