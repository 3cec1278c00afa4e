from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.domain.models import AuditLog
from edugate.persistence.guards import tenant_options


async def insert_event(
    session: AsyncSession,
    *,
    schema_name: str,
    user_id: str | None,
    institution_id: str | None,
    action: str,
    meta: dict[str, Any],
    ip: str | None,
    user_agent: str | None,
    created_at: datetime,
) -> None:
    # Append-only; no update or delete counterpart exists.
    await session.execute(
        insert(AuditLog).values(
            user_id=user_id,
            institution_id=institution_id,
            action=action,
            meta=meta,
            ip=ip,
            user_agent=user_agent,
            created_at=created_at,
        ),
        execution_options=tenant_options(schema_name),
    )


async def list_user_events(
    session: AsyncSession, *, schema_name: str, user_id: str, limit: int
) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.user_id == user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit),
        execution_options=tenant_options(schema_name),
    )
    return list(result.scalars().all())


async def list_institution_events(
    session: AsyncSession, *, schema_name: str, institution_id: str, limit: int
) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.institution_id == institution_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit),
        execution_options=tenant_options(schema_name),
    )
    return list(result.scalars().all())
