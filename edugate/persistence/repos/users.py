from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.domain.models import (
    AdminPermission,
    Permission,
    Role,
    RolePermission,
    User,
    UserPermission,
    UserRole,
)
from edugate.persistence.guards import tenant_options


async def get_user(session: AsyncSession, *, schema_name: str, user_id: str) -> User | None:
    result = await session.execute(
        select(User).where(User.id == user_id),
        execution_options=tenant_options(schema_name),
    )
    return result.scalar_one_or_none()


async def list_user_roles(session: AsyncSession, *, schema_name: str, user_id: str) -> list[Role]:
    result = await session.execute(
        select(Role)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
        .order_by(Role.name.asc()),
        execution_options=tenant_options(schema_name),
    )
    return list(result.scalars().all())


async def list_role_permission_keys(
    session: AsyncSession, *, schema_name: str, user_id: str
) -> set[str]:
    # Keys of active catalog permissions reachable through the user's roles.
    result = await session.execute(
        select(Permission.key)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .where(UserRole.user_id == user_id, Permission.is_active.is_(True)),
        execution_options=tenant_options(schema_name),
    )
    return set(result.scalars().all())


async def list_direct_permission_keys(
    session: AsyncSession, *, schema_name: str, user_id: str
) -> set[str]:
    result = await session.execute(
        select(UserPermission.permission_key).where(UserPermission.user_id == user_id),
        execution_options=tenant_options(schema_name),
    )
    return {key for key in result.scalars().all() if key}


async def list_admin_permission_keys(
    session: AsyncSession, *, schema_name: str, user_id: str
) -> set[str]:
    result = await session.execute(
        select(AdminPermission.permission_key).where(AdminPermission.user_id == user_id),
        execution_options=tenant_options(schema_name),
    )
    return {key for key in result.scalars().all() if key}
