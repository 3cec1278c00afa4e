from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
import asyncio
import json
import logging
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.requests import Request

from edugate.core.config import get_settings
from edugate.core.errors import InvalidSchemaNameError
from edugate.domain.models import AuditLog
from edugate.persistence.guards import validate_schema_name
from edugate.persistence.keyvalue import get_redis
from edugate.persistence.repos import audit as audit_repo


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["password", "token", "secret", "authorization", "otp", "backup_code"]
_REDACTED_VALUE = "[REDACTED]"

RedisProvider = Callable[[], Awaitable[Redis]]


class AuthAuditEvent(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILURE = "LOGIN_FAILURE"
    LOCKOUT_TRIGGERED = "LOCKOUT_TRIGGERED"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    MFA_SUCCESS = "MFA_SUCCESS"
    MFA_FAILURE = "MFA_FAILURE"
    MFA_BACKUP_CODE_USED = "MFA_BACKUP_CODE_USED"
    SESSION_REVOKED = "SESSION_REVOKED"
    SESSION_REVOKED_ALL = "SESSION_REVOKED_ALL"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    NEW_DEVICE_LOGIN = "NEW_DEVICE_LOGIN"
    TOKEN_REFRESH = "TOKEN_REFRESH"
    LOGOUT = "LOGOUT"
    LOGOUT_ALL = "LOGOUT_ALL"
    SSO_LOGIN = "SSO_LOGIN"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"
    IP_BLOCKED = "IP_BLOCKED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    ACADEMIC_SESSION_CHANGED = "ACADEMIC_SESSION_CHANGED"


MFA_EVENTS = frozenset(
    {
        AuthAuditEvent.MFA_ENABLED,
        AuthAuditEvent.MFA_DISABLED,
        AuthAuditEvent.MFA_SUCCESS,
        AuthAuditEvent.MFA_FAILURE,
        AuthAuditEvent.MFA_BACKUP_CODE_USED,
    }
)


@dataclass(frozen=True)
class AuditContext:
    user_id: str | None = None
    institution_id: str | None = None
    email: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    device_id: str | None = None
    schema_name: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def with_meta(self, **extra: Any) -> AuditContext:
        return replace(self, meta={**self.meta, **extra})


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub credential-like fields while preserving structure.
    if isinstance(value, dict):
        return {
            str(key): _REDACTED_VALUE if _is_sensitive_key(str(key)) else sanitize_metadata(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


def audit_context_from_request(
    request: Request | None,
    *,
    user_id: str | None = None,
    institution_id: str | None = None,
    schema_name: str | None = None,
    **meta: Any,
) -> AuditContext:
    # Capture client hints without persisting credentials.
    ip = None
    user_agent = None
    if request is not None:
        ip = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")
    return AuditContext(
        user_id=user_id,
        institution_id=institution_id,
        ip=ip,
        user_agent=user_agent,
        schema_name=schema_name,
        meta=meta,
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuthAuditService:
    """Append-only auth/access audit trail with a bounded Redis fallback.

    Writes go to the tenant's ``audit_logs`` table. A missing or invalid
    schema name never falls back to a shared partition; the event is
    queued in Redis instead. If the durable write fails the envelope is
    queued too, and if Redis also fails the event is logged and lost.
    ``log`` never raises.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker,
        redis_provider: RedisProvider = get_redis,
        fallback_key: str | None = None,
        fallback_max_entries: int | None = None,
        recent_events_limit: int | None = None,
        institution_events_limit: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._redis_provider = redis_provider
        self._fallback_key = fallback_key or settings.audit_fallback_key
        self._fallback_max_entries = fallback_max_entries or settings.audit_fallback_max_entries
        self._recent_events_limit = recent_events_limit or settings.audit_recent_events_limit
        self._institution_events_limit = (
            institution_events_limit or settings.audit_institution_events_limit
        )
        self._clock = clock or _utc_now
        self._pending: set[asyncio.Task[None]] = set()

    async def log(self, event: AuthAuditEvent, context: AuditContext) -> None:
        base = {
            "event": event.value,
            "sessionId": context.session_id,
            "deviceId": context.device_id,
            "email": context.email,
            "schemaName": context.schema_name,
        }
        meta = sanitize_metadata(
            {**{key: value for key, value in base.items() if value is not None}, **context.meta}
        )

        if not (context.schema_name or "").strip():
            await self._write_fallback(event, context, {**meta, "droppedDbWriteReason": "missing_schema_name"})
            return
        try:
            schema_name = validate_schema_name(context.schema_name)
        except InvalidSchemaNameError:
            await self._write_fallback(event, context, {**meta, "droppedDbWriteReason": "invalid_schema_name"})
            return

        try:
            async with self._session_factory() as session, session.begin():
                await audit_repo.insert_event(
                    session,
                    schema_name=schema_name,
                    user_id=context.user_id,
                    institution_id=context.institution_id,
                    action=f"AUTH:{event.value}",
                    meta=meta,
                    ip=context.ip,
                    user_agent=context.user_agent,
                    created_at=self._clock(),
                )
        except Exception as exc:
            logger.error("auth_audit_db_write_failed event=%s schema=%s", event.value, schema_name, exc_info=exc)
            await self._write_fallback(event, context, meta)

    async def _write_fallback(
        self, event: AuthAuditEvent, context: AuditContext, meta: dict[str, Any]
    ) -> None:
        entry = json.dumps(
            {
                "event": event.value,
                "userId": context.user_id,
                "institutionId": context.institution_id,
                "ip": context.ip,
                "meta": meta,
                "timestamp": self._clock().isoformat(),
            },
            default=str,
        )
        try:
            redis = await self._redis_provider()
            # Newest entries at the head; trimming keeps the queue bounded.
            await redis.lpush(self._fallback_key, entry)
            await redis.ltrim(self._fallback_key, 0, self._fallback_max_entries - 1)
        except Exception as exc:
            logger.error(
                "auth_audit_fallback_failed event_lost=AUTH:%s user_id=%s ip=%s",
                event.value,
                context.user_id,
                context.ip,
                exc_info=exc,
            )

    def spawn(self, event: AuthAuditEvent, context: AuditContext) -> asyncio.Task[None]:
        # Fire-and-forget from request handlers; keep a strong reference until done.
        task = asyncio.create_task(self.log(event, context))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        # Wait for in-flight background writes (shutdown, tests).
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def login_success(self, context: AuditContext) -> None:
        await self.log(AuthAuditEvent.LOGIN_SUCCESS, context)

    async def login_failure(
        self, context: AuditContext, reason: str, attempt_count: int | None = None
    ) -> None:
        await self.log(
            AuthAuditEvent.LOGIN_FAILURE,
            context.with_meta(reason=reason, attemptCount=attempt_count),
        )

    async def lockout_triggered(
        self, context: AuditContext, lock_duration_seconds: int, attempt_count: int
    ) -> None:
        await self.log(
            AuthAuditEvent.LOCKOUT_TRIGGERED,
            context.with_meta(lockDurationSeconds=lock_duration_seconds, attemptCount=attempt_count),
        )

    async def mfa_event(
        self, event: AuthAuditEvent, context: AuditContext, detail: str | None = None
    ) -> None:
        if event not in MFA_EVENTS:
            logger.warning("auth_audit_invalid_mfa_event event=%s", event.value)
            return
        await self.log(event, context.with_meta(detail=detail))

    async def session_revoked(
        self, context: AuditContext, reason: str, revoked_session_id: str | None = None
    ) -> None:
        await self.log(
            AuthAuditEvent.SESSION_REVOKED,
            context.with_meta(reason=reason, revokedSessionId=revoked_session_id),
        )

    async def password_changed(self, context: AuditContext) -> None:
        await self.log(AuthAuditEvent.PASSWORD_CHANGED, context)

    async def new_device_login(self, context: AuditContext, device_info: dict[str, Any]) -> None:
        await self.log(AuthAuditEvent.NEW_DEVICE_LOGIN, context.with_meta(deviceInfo=device_info))

    async def get_recent_events(
        self, user_id: str, schema_name: str, limit: int | None = None
    ) -> list[AuditLog]:
        # Best-effort: a broken audit read must not break the dashboard embedding it.
        try:
            async with self._session_factory() as session:
                return await audit_repo.list_user_events(
                    session,
                    schema_name=schema_name,
                    user_id=user_id,
                    limit=limit or self._recent_events_limit,
                )
        except (SQLAlchemyError, InvalidSchemaNameError, OSError) as exc:
            logger.warning("auth_audit_read_failed scope=user user_id=%s", user_id, exc_info=exc)
            return []

    async def get_institution_events(
        self, institution_id: str, schema_name: str, limit: int | None = None
    ) -> list[AuditLog]:
        try:
            async with self._session_factory() as session:
                return await audit_repo.list_institution_events(
                    session,
                    schema_name=schema_name,
                    institution_id=institution_id,
                    limit=limit or self._institution_events_limit,
                )
        except (SQLAlchemyError, InvalidSchemaNameError, OSError) as exc:
            logger.warning(
                "auth_audit_read_failed scope=institution institution_id=%s", institution_id, exc_info=exc
            )
            return []
