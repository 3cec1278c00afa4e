from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import asyncio
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.core.errors import InvalidSchemaNameError
from edugate.persistence.repos import users as users_repo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleSummary:
    id: str
    name: str
    slug: str | None = None
    is_admin: bool = False


def has_admin_role(roles: Iterable[RoleSummary]) -> bool:
    # Admin status comes only from the explicit role flag.
    return any(role.is_admin for role in roles)


async def load_user_roles(
    session: AsyncSession, *, schema_name: str, user_id: str
) -> list[RoleSummary]:
    # Fail closed on lookup errors: no roles means no admin shortcut.
    try:
        roles = await users_repo.list_user_roles(session, schema_name=schema_name, user_id=user_id)
    except (SQLAlchemyError, InvalidSchemaNameError, OSError) as exc:
        logger.error(
            "user_roles_lookup_failed schema=%s user_id=%s", schema_name, user_id, exc_info=exc
        )
        return []
    return [
        RoleSummary(id=role.id, name=role.name, slug=role.slug, is_admin=bool(role.is_admin))
        for role in roles
    ]


async def aggregate_user_permissions(
    session: AsyncSession,
    *,
    schema_name: str,
    user_id: str,
    plan_permission_keys: frozenset[str] | set[str],
) -> set[str]:
    """Union role, direct, and delegated admin grants, gated by the plan.

    Every key must also be licensed by the plan, so grants that outlived a
    plan downgrade simply stop counting. Admin status is not consulted here;
    an admin with no explicit grants resolves to an empty set. Store errors
    are logged and degrade to the empty set.
    """
    permissions: set[str] = set()
    try:
        user = await users_repo.get_user(session, schema_name=schema_name, user_id=user_id)
        if user is None:
            logger.warning("user_not_found schema=%s user_id=%s", schema_name, user_id)
            return permissions

        role_keys = await users_repo.list_role_permission_keys(
            session, schema_name=schema_name, user_id=user_id
        )
        direct_keys = await users_repo.list_direct_permission_keys(
            session, schema_name=schema_name, user_id=user_id
        )
        delegated_keys = await users_repo.list_admin_permission_keys(
            session, schema_name=schema_name, user_id=user_id
        )
    except (SQLAlchemyError, InvalidSchemaNameError, OSError) as exc:
        logger.error(
            "user_permissions_lookup_failed schema=%s user_id=%s", schema_name, user_id, exc_info=exc
        )
        return set()

    for keys in (role_keys, direct_keys, delegated_keys):
        permissions.update(key for key in keys if key in plan_permission_keys)
    logger.debug(
        "user_permissions_aggregated user_id=%s roles=%s direct=%s delegated=%s effective=%s",
        user_id,
        len(role_keys),
        len(direct_keys),
        len(delegated_keys),
        len(permissions),
    )
    return permissions


@dataclass(frozen=True)
class UserAccess:
    roles: tuple[RoleSummary, ...]
    permission_keys: frozenset[str]
    # Plan keys the permissions were gated against; a different plan means a stale entry.
    plan_permission_keys: frozenset[str]

    @property
    def is_admin(self) -> bool:
        return has_admin_role(self.roles)


class UserAccessCache:
    """Per-user roles and plan-gated permissions, keyed by tenant schema and user.

    A ``ttl_s`` of zero turns caching off. Results with neither roles nor
    permissions are never stored, so a failed lookup is retried on the next
    request. Call ``invalidate_for_user`` after role or grant changes and
    ``invalidate_for_tenant`` after bulk changes inside one schema.
    """

    def __init__(self, *, ttl_s: int, time_provider: Callable[[], float] | None = None) -> None:
        self._ttl_s = ttl_s
        self._time_provider = time_provider or time.monotonic
        self._entries: dict[tuple[str, str], tuple[float, UserAccess]] = {}
        self._lock = asyncio.Lock()

    async def get_or_load(
        self,
        session: AsyncSession,
        *,
        schema_name: str,
        user_id: str,
        plan_permission_keys: frozenset[str],
    ) -> UserAccess:
        key = (schema_name, user_id)
        if self._ttl_s > 0:
            async with self._lock:
                entry = self._entries.get(key)
                if entry is not None:
                    expires_at, access = entry
                    if expires_at > self._time_provider() and access.plan_permission_keys == plan_permission_keys:
                        return access
                    self._entries.pop(key, None)

        roles = await load_user_roles(session, schema_name=schema_name, user_id=user_id)
        permissions = await aggregate_user_permissions(
            session,
            schema_name=schema_name,
            user_id=user_id,
            plan_permission_keys=plan_permission_keys,
        )
        access = UserAccess(
            roles=tuple(roles),
            permission_keys=frozenset(permissions),
            plan_permission_keys=plan_permission_keys,
        )
        if self._ttl_s > 0 and (access.roles or access.permission_keys):
            async with self._lock:
                self._entries[key] = (self._time_provider() + self._ttl_s, access)
        return access

    def invalidate_for_user(self, schema_name: str, user_id: str) -> None:
        self._entries.pop((schema_name, user_id), None)

    def invalidate_for_tenant(self, schema_name: str) -> None:
        for key in [key for key in self._entries if key[0] == schema_name]:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
