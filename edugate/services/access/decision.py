from __future__ import annotations

from dataclasses import dataclass, field

from edugate.services.access.plan_access import PlanAccess
from edugate.services.access.user_permissions import RoleSummary


@dataclass(frozen=True)
class AccessSnapshot:
    # Everything an authorization decision needs, resolved once per request.
    user_id: str
    institution_id: str | None
    plan: PlanAccess
    user_permission_keys: frozenset[str] = field(default_factory=frozenset)
    roles: tuple[RoleSummary, ...] = ()
    is_admin: bool = False


def is_permitted(snapshot: AccessSnapshot, permission_key: str) -> bool:
    # The plan licence is checked first; admins skip only the per-user membership check.
    if permission_key not in snapshot.plan.permission_keys:
        return False
    if snapshot.is_admin:
        return True
    return permission_key in snapshot.user_permission_keys
