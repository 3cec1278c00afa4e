from __future__ import annotations

from collections.abc import Callable
import asyncio
import logging
import re
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.core.errors import InvalidSchemaNameError
from edugate.persistence.repos import academic_sessions as sessions_repo
from edugate.services.audit import AuditContext, AuthAuditEvent, AuthAuditService


logger = logging.getLogger(__name__)

SESSION_CACHE_TTL_S = 5 * 60

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_session_header(value: str | None) -> bool:
    return bool(value) and _UUID_RE.match(value) is not None


class SessionContextCache:
    """Institution id -> current academic session id, with a fixed TTL.

    Staleness up to the TTL is accepted; session-management flows call
    ``invalidate`` synchronously when they change the current session.
    """

    def __init__(
        self,
        *,
        ttl_s: int = SESSION_CACHE_TTL_S,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._ttl_s = ttl_s
        self._time_provider = time_provider or time.monotonic
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, institution_id: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(institution_id)
            if entry is None:
                return None
            session_id, expires_at = entry
            if expires_at <= self._time_provider():
                self._entries.pop(institution_id, None)
                return None
            return session_id

    async def set(self, institution_id: str, session_id: str) -> None:
        if self._ttl_s <= 0:
            return
        async with self._lock:
            self._entries[institution_id] = (session_id, self._time_provider() + self._ttl_s)

    def invalidate(self, institution_id: str) -> None:
        self._entries.pop(institution_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


async def resolve_academic_session_id(
    *,
    header_value: str | None,
    institution_id: str | None,
    schema_name: str | None,
    session: AsyncSession,
    cache: SessionContextCache,
) -> str | None:
    """Resolve the academic session for a request.

    A well-formed ``X-Academic-Session-ID`` header always wins and is never
    cached. Otherwise the cached current session is used, falling back to
    the tenant's ``is_current`` row. Having no session is not an error.
    """
    if is_valid_session_header(header_value):
        return header_value
    if not institution_id or not schema_name:
        return None

    cached = await cache.get(institution_id)
    if cached is not None:
        return cached

    try:
        session_id = await sessions_repo.get_current_session_id(
            session, schema_name=schema_name, institution_id=institution_id
        )
    except (SQLAlchemyError, InvalidSchemaNameError, OSError) as exc:
        logger.error(
            "academic_session_lookup_failed institution_id=%s schema=%s",
            institution_id,
            schema_name,
            exc_info=exc,
        )
        return None

    if session_id is not None:
        await cache.set(institution_id, session_id)
    return session_id


async def set_current_academic_session(
    session: AsyncSession,
    *,
    schema_name: str,
    institution_id: str,
    session_id: str,
    cache: SessionContextCache,
    audit: AuthAuditService | None = None,
    context: AuditContext | None = None,
) -> bool:
    # Flip is_current, then invalidate before any request can re-read the old value.
    target = await sessions_repo.get_session_by_id(
        session, schema_name=schema_name, institution_id=institution_id, session_id=session_id
    )
    if target is None:
        return False
    await sessions_repo.mark_current_session(
        session, schema_name=schema_name, institution_id=institution_id, session_id=session_id
    )
    await session.commit()
    cache.invalidate(institution_id)
    logger.info("academic_session_changed institution_id=%s session_id=%s", institution_id, session_id)
    if audit is not None:
        base = context or AuditContext(institution_id=institution_id, schema_name=schema_name)
        audit.spawn(AuthAuditEvent.ACADEMIC_SESSION_CHANGED, base.with_meta(academicSessionId=session_id))
    return True
