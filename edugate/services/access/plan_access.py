from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession

from edugate.persistence.repos import catalog as catalog_repo
from edugate.services.access.module_graph import ModuleGraph


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanAccess:
    # Licensed module closure and permission closure for one institution.
    module_ids: frozenset[str] = field(default_factory=frozenset)
    permission_keys: frozenset[str] = field(default_factory=frozenset)
    institution_type: str | None = None
    plan_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.module_ids and not self.permission_keys


async def resolve_plan_access(session: AsyncSession, institution_id: str | None) -> PlanAccess:
    """Compute the licensed module and permission closures for an institution.

    Absence (no institution id, unknown institution, no or inactive plan)
    yields empty sets, meaning nothing is licensed. Store errors and
    ``ModuleGraphCycleError`` propagate: an empty result must only ever mean
    "no plan", never "resolution broke".
    """
    if not institution_id:
        return PlanAccess()

    loaded = await catalog_repo.get_institution_plan(session, institution_id)
    if loaded is None:
        return PlanAccess()
    institution, plan = loaded
    if plan is None:
        return PlanAccess(institution_type=institution.type)

    explicit_module_ids = await catalog_repo.list_plan_module_ids(session, plan.id)
    permission_keys = set(await catalog_repo.list_plan_permission_keys(session, plan.id))

    module_ids: frozenset[str] = frozenset()
    if explicit_module_ids:
        graph = ModuleGraph(await catalog_repo.list_module_edges(session))
        module_ids = graph.closure(explicit_module_ids)
        permission_keys |= await catalog_repo.list_feature_permission_keys(session, module_ids)

    logger.info(
        "plan_access_resolved institution_id=%s plan_id=%s modules=%s permissions=%s",
        institution_id,
        plan.id,
        len(module_ids),
        len(permission_keys),
    )
    return PlanAccess(
        module_ids=module_ids,
        permission_keys=frozenset(permission_keys),
        institution_type=institution.type,
        plan_id=plan.id,
    )


class PlanAccessCache:
    def __init__(self, *, ttl_s: int, time_provider: Callable[[], float] | None = None) -> None:
        # Allow injecting time for deterministic expiry tests.
        self._ttl_s = ttl_s
        self._time_provider = time_provider or time.monotonic
        self._entries: dict[str, tuple[float, PlanAccess]] = {}
        self._lock = asyncio.Lock()

    async def get_or_resolve(self, session: AsyncSession, institution_id: str | None) -> PlanAccess:
        # Absent institutions are never cached; resolution runs outside the lock.
        if not institution_id:
            return PlanAccess()
        if self._ttl_s > 0:
            async with self._lock:
                entry = self._entries.get(institution_id)
                if entry is not None:
                    expires_at, access = entry
                    if expires_at > self._time_provider():
                        return access
                    self._entries.pop(institution_id, None)

        access = await resolve_plan_access(session, institution_id)
        if self._ttl_s > 0:
            async with self._lock:
                self._entries[institution_id] = (self._time_provider() + self._ttl_s, access)
        return access

    def invalidate(self, institution_id: str) -> None:
        # Drop a cached closure after the institution's plan changes.
        self._entries.pop(institution_id, None)

    def clear(self) -> None:
        self._entries.clear()
