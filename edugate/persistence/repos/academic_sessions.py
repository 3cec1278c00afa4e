from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.domain.models import AcademicSession
from edugate.persistence.guards import tenant_options


async def get_current_session_id(
    session: AsyncSession, *, schema_name: str, institution_id: str
) -> str | None:
    # Trust the is_current flag; pick deterministically if several rows carry it.
    result = await session.execute(
        select(AcademicSession.id)
        .where(
            AcademicSession.institution_id == institution_id,
            AcademicSession.is_current.is_(True),
        )
        .order_by(AcademicSession.id.asc())
        .limit(1),
        execution_options=tenant_options(schema_name),
    )
    return result.scalar_one_or_none()


async def get_session_by_id(
    session: AsyncSession, *, schema_name: str, institution_id: str, session_id: str
) -> AcademicSession | None:
    result = await session.execute(
        select(AcademicSession).where(
            AcademicSession.id == session_id,
            AcademicSession.institution_id == institution_id,
        ),
        execution_options=tenant_options(schema_name),
    )
    return result.scalar_one_or_none()


async def mark_current_session(
    session: AsyncSession, *, schema_name: str, institution_id: str, session_id: str
) -> None:
    # Clear the flag on every other session before setting it on the chosen one.
    options = tenant_options(schema_name)
    await session.execute(
        update(AcademicSession)
        .where(
            AcademicSession.institution_id == institution_id,
            AcademicSession.id != session_id,
            AcademicSession.is_current.is_(True),
        )
        .values(is_current=False),
        execution_options=options,
    )
    await session.execute(
        update(AcademicSession)
        .where(
            AcademicSession.institution_id == institution_id,
            AcademicSession.id == session_id,
        )
        .values(is_current=True),
        execution_options=options,
    )
