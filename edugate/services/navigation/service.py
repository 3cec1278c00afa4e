from __future__ import annotations

from collections import defaultdict
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from edugate.persistence.repos import catalog as catalog_repo
from edugate.services.access.caches import AccessCaches
from edugate.services.access.decision import AccessSnapshot
from edugate.services.access.plan_access import PlanAccess
from edugate.services.navigation.builder import (
    FeatureEntry,
    ModuleEntry,
    PermissionEntry,
    build_candidate_tree,
)
from edugate.services.navigation.collapse import (
    TitlePolicy,
    collapse_navigation,
    is_generic_grouping_title,
    to_payload,
)


logger = logging.getLogger(__name__)


async def load_module_entries(session: AsyncSession, module_ids: frozenset[str]) -> list[ModuleEntry]:
    # Snapshot active modules, features and permissions in three queries.
    modules = await catalog_repo.list_active_modules(session, module_ids)
    if not modules:
        return []
    features = await catalog_repo.list_active_features(session, [module.id for module in modules])
    permissions = await catalog_repo.list_active_feature_permissions(
        session, [feature.id for feature in features]
    )

    permissions_by_feature: dict[str, list[PermissionEntry]] = defaultdict(list)
    for permission in permissions:
        permissions_by_feature[permission.feature_id].append(
            PermissionEntry(
                key=permission.key,
                route_name=permission.route_name,
                route_title=permission.route_title,
                route_active=permission.route_active,
            )
        )
    features_by_module: dict[str, list[FeatureEntry]] = defaultdict(list)
    for feature in features:
        features_by_module[feature.module_id].append(
            FeatureEntry(
                slug=feature.slug,
                name=feature.name,
                icon=feature.icon,
                route_name=feature.route_name,
                route_title=feature.route_title,
                route_active=feature.route_active,
                sort_order=feature.sort_order or 0,
                permissions=tuple(permissions_by_feature.get(feature.id, ())),
            )
        )
    return [
        ModuleEntry(
            id=module.id,
            slug=module.slug,
            name=module.name,
            parent_id=module.parent_id,
            icon=module.icon,
            route_name=module.route_name,
            route_title=module.route_title,
            route_active=module.route_active,
            sort_order=module.sort_order or 0,
            institution_type=module.institution_type,
            features=tuple(features_by_module.get(module.id, ())),
        )
        for module in modules
    ]


class NavigationService:
    def __init__(
        self,
        *,
        caches: AccessCaches,
        is_generic_title: TitlePolicy = is_generic_grouping_title,
    ) -> None:
        self._caches = caches
        self._is_generic_title = is_generic_title

    async def load_access_snapshot(
        self,
        session: AsyncSession,
        *,
        schema_name: str,
        user_id: str,
        institution_id: str | None,
    ) -> AccessSnapshot:
        plan = await self._caches.plan_access.get_or_resolve(session, institution_id)
        access = await self._caches.users.get_or_load(
            session,
            schema_name=schema_name,
            user_id=user_id,
            plan_permission_keys=plan.permission_keys,
        )
        if not access.permission_keys and not access.is_admin:
            logger.warning(
                "user_has_no_permissions user_id=%s schema=%s institution_id=%s",
                user_id,
                schema_name,
                institution_id,
            )
        return AccessSnapshot(
            user_id=user_id,
            institution_id=institution_id,
            plan=plan,
            user_permission_keys=access.permission_keys,
            roles=access.roles,
            is_admin=access.is_admin,
        )

    async def build_navigation(
        self, session: AsyncSession, snapshot: AccessSnapshot
    ) -> list[dict[str, Any]]:
        plan: PlanAccess = snapshot.plan
        if not plan.module_ids:
            logger.info("navigation_empty_plan institution_id=%s", snapshot.institution_id)
            return []
        modules = await load_module_entries(session, plan.module_ids)
        candidates = build_candidate_tree(
            modules,
            plan_permission_keys=plan.permission_keys,
            user_permission_keys=snapshot.user_permission_keys,
            is_admin=snapshot.is_admin,
            institution_type=plan.institution_type,
        )
        navigation = to_payload(collapse_navigation(candidates, is_generic_title=self._is_generic_title))
        logger.info(
            "navigation_built user_id=%s modules=%s items=%s",
            snapshot.user_id,
            len(modules),
            len(navigation),
        )
        return navigation

    async def get_permissions_and_navigation(
        self,
        session: AsyncSession,
        *,
        schema_name: str,
        user_id: str,
        institution_id: str | None,
    ) -> dict[str, Any]:
        snapshot = await self.load_access_snapshot(
            session, schema_name=schema_name, user_id=user_id, institution_id=institution_id
        )
        navigation = await self.build_navigation(session, snapshot)
        return {
            "permissions": sorted(snapshot.user_permission_keys),
            "navigation": navigation,
            "roles": _roles_payload(snapshot),
            "isAdmin": snapshot.is_admin,
        }

    async def get_permissions_payload(
        self,
        session: AsyncSession,
        *,
        schema_name: str,
        user_id: str,
        institution_id: str | None,
    ) -> dict[str, Any]:
        snapshot = await self.load_access_snapshot(
            session, schema_name=schema_name, user_id=user_id, institution_id=institution_id
        )
        return {
            "permissions": sorted(snapshot.user_permission_keys),
            "roles": _roles_payload(snapshot),
            "isAdmin": snapshot.is_admin,
        }

    async def get_nav_items_payload(
        self,
        session: AsyncSession,
        *,
        schema_name: str,
        user_id: str,
        institution_id: str | None,
    ) -> dict[str, Any]:
        snapshot = await self.load_access_snapshot(
            session, schema_name=schema_name, user_id=user_id, institution_id=institution_id
        )
        return {"navigation": await self.build_navigation(session, snapshot)}


def _roles_payload(snapshot: AccessSnapshot) -> list[dict[str, str]]:
    return [{"id": role.id, "name": role.name} for role in snapshot.roles]
