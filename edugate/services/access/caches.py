from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from edugate.core.config import Settings
from edugate.services.academic_sessions import SessionContextCache
from edugate.services.access.plan_access import PlanAccessCache
from edugate.services.access.user_permissions import UserAccessCache


@dataclass
class AccessCaches:
    # Process-wide caches owned by the app instance and handed to requests explicitly.
    plan_access: PlanAccessCache
    sessions: SessionContextCache
    users: UserAccessCache

    @classmethod
    def from_settings(
        cls, settings: Settings, *, time_provider: Callable[[], float] | None = None
    ) -> AccessCaches:
        return cls(
            plan_access=PlanAccessCache(ttl_s=settings.plan_access_cache_ttl_s, time_provider=time_provider),
            sessions=SessionContextCache(ttl_s=settings.session_cache_ttl_s, time_provider=time_provider),
            users=UserAccessCache(ttl_s=settings.user_access_cache_ttl_s, time_provider=time_provider),
        )

    def invalidate_session_cache(self, institution_id: str) -> None:
        self.sessions.invalidate(institution_id)

    def clear_session_cache(self) -> None:
        self.sessions.clear()

    def invalidate_plan_access(self, institution_id: str) -> None:
        self.plan_access.invalidate(institution_id)

    def clear_plan_access(self) -> None:
        self.plan_access.clear()

    def invalidate_user_access(self, schema_name: str, user_id: str) -> None:
        self.users.invalidate_for_user(schema_name, user_id)

    def invalidate_tenant_access(self, schema_name: str) -> None:
        self.users.invalidate_for_tenant(schema_name)

    def clear_user_access(self) -> None:
        self.users.clear()
