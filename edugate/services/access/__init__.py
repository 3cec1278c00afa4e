from __future__ import annotations

# Re-export access-control services for centralized imports.

from edugate.services.access.module_graph import ModuleGraph
from edugate.services.access.plan_access import PlanAccess, PlanAccessCache, resolve_plan_access
from edugate.services.access.user_permissions import (
    RoleSummary,
    UserAccess,
    UserAccessCache,
    aggregate_user_permissions,
    has_admin_role,
    load_user_roles,
)
from edugate.services.access.decision import AccessSnapshot, is_permitted
from edugate.services.access.caches import AccessCaches

__all__ = [
    "ModuleGraph",
    "PlanAccess",
    "PlanAccessCache",
    "resolve_plan_access",
    "RoleSummary",
    "UserAccess",
    "UserAccessCache",
    "aggregate_user_permissions",
    "has_admin_role",
    "load_user_roles",
    "AccessSnapshot",
    "is_permitted",
    "AccessCaches",
]
