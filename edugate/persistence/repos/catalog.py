from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.domain.models import (
    Feature,
    Institution,
    Module,
    Permission,
    Plan,
    PlanModule,
    PlanPermission,
)


async def get_institution_plan(
    session: AsyncSession, institution_id: str
) -> tuple[Institution, Plan | None] | None:
    # Load the institution with its plan; an inactive plan is reported as absent.
    result = await session.execute(
        select(Institution, Plan)
        .outerjoin(Plan, Institution.plan_id == Plan.id)
        .where(Institution.id == institution_id)
    )
    row = result.first()
    if row is None:
        return None
    institution, plan = row
    if plan is not None and not plan.is_active:
        plan = None
    return institution, plan


async def list_plan_module_ids(session: AsyncSession, plan_id: str) -> list[str]:
    result = await session.execute(
        select(Module.id)
        .join(PlanModule, PlanModule.module_id == Module.id)
        .where(PlanModule.plan_id == plan_id, Module.is_active.is_(True))
    )
    return list(result.scalars().all())


async def list_plan_permission_keys(session: AsyncSession, plan_id: str) -> list[str]:
    result = await session.execute(
        select(Permission.key)
        .join(PlanPermission, PlanPermission.permission_id == Permission.id)
        .where(PlanPermission.plan_id == plan_id, Permission.is_active.is_(True))
    )
    return list(result.scalars().all())


async def list_module_edges(session: AsyncSession) -> list[tuple[str, str | None]]:
    # Load the whole module forest once so closure runs in memory.
    result = await session.execute(select(Module.id, Module.parent_id))
    return [(module_id, parent_id) for module_id, parent_id in result.all()]


async def list_feature_permission_keys(session: AsyncSession, module_ids: Iterable[str]) -> set[str]:
    # Permissions owned by active features of the given modules.
    ids = list(module_ids)
    if not ids:
        return set()
    result = await session.execute(
        select(Permission.key)
        .join(Feature, Permission.feature_id == Feature.id)
        .where(
            Feature.module_id.in_(ids),
            Feature.is_active.is_(True),
            Permission.is_active.is_(True),
        )
    )
    return set(result.scalars().all())


async def list_active_modules(session: AsyncSession, module_ids: Iterable[str]) -> list[Module]:
    ids = list(module_ids)
    if not ids:
        return []
    result = await session.execute(
        select(Module)
        .where(Module.id.in_(ids), Module.is_active.is_(True))
        .order_by(Module.sort_order.asc(), Module.name.asc())
    )
    return list(result.scalars().all())


async def list_active_features(session: AsyncSession, module_ids: Iterable[str]) -> list[Feature]:
    ids = list(module_ids)
    if not ids:
        return []
    result = await session.execute(
        select(Feature)
        .where(Feature.module_id.in_(ids), Feature.is_active.is_(True))
        .order_by(Feature.sort_order.asc(), Feature.name.asc())
    )
    return list(result.scalars().all())


async def list_active_feature_permissions(
    session: AsyncSession, feature_ids: Iterable[str]
) -> list[Permission]:
    ids = list(feature_ids)
    if not ids:
        return []
    result = await session.execute(
        select(Permission)
        .where(Permission.feature_id.in_(ids), Permission.is_active.is_(True))
        .order_by(Permission.key.asc())
    )
    return list(result.scalars().all())
