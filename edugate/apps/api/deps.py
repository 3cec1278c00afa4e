from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.core.config import get_settings
from edugate.core.errors import InvalidSchemaNameError
from edugate.persistence.guards import validate_schema_name
from edugate.services.academic_sessions import resolve_academic_session_id
from edugate.services.access.caches import AccessCaches
from edugate.services.access.decision import AccessSnapshot, is_permitted
from edugate.services.audit import AuthAuditEvent, AuthAuditService, audit_context_from_request
from edugate.services.navigation.service import NavigationService


class TenantContext(BaseModel):
    # Identity and partition resolved upstream by the tenant guard.
    schema_name: str
    user_id: str
    institution_id: str | None = None


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with request.app.state.session_factory() as session:
        yield session


def get_access_caches(request: Request) -> AccessCaches:
    return request.app.state.access_caches


def get_audit_service(request: Request) -> AuthAuditService:
    return request.app.state.audit


def get_navigation_service(request: Request) -> NavigationService:
    return request.app.state.navigation


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
    )


def _forbidden_error(permission_key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "code": "PERMISSION_DENIED",
            "message": "Permission not granted for this operation",
            "permission": permission_key,
        },
    )


async def get_tenant_context(request: Request) -> TenantContext:
    settings = get_settings()
    user_id = (request.headers.get(settings.user_header) or "").strip()
    raw_schema = request.headers.get(settings.tenant_schema_header)
    if not user_id or not (raw_schema or "").strip():
        raise _auth_error("Tenant context is missing")
    try:
        schema_name = validate_schema_name(raw_schema)
    except InvalidSchemaNameError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "TENANT_SCHEMA_INVALID", "message": str(exc)},
        ) from exc
    institution_id = (request.headers.get(settings.institution_header) or "").strip() or None
    return TenantContext(schema_name=schema_name, user_id=user_id, institution_id=institution_id)


async def attach_academic_session(
    request: Request,
    tenant: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    caches: AccessCaches = Depends(get_access_caches),
) -> str | None:
    # Downstream handlers read request.state.academic_session_id; None is allowed.
    settings = get_settings()
    session_id = await resolve_academic_session_id(
        header_value=request.headers.get(settings.academic_session_header),
        institution_id=tenant.institution_id,
        schema_name=tenant.schema_name,
        session=db,
        cache=caches.sessions,
    )
    request.state.academic_session_id = session_id
    return session_id


def require_permission(permission_key: str):
    # Dependency factory enforcing one permission through the single decision function.
    async def _dependency(
        request: Request,
        tenant: TenantContext = Depends(get_tenant_context),
        db: AsyncSession = Depends(get_db),
        navigation: NavigationService = Depends(get_navigation_service),
        audit: AuthAuditService = Depends(get_audit_service),
    ) -> AccessSnapshot:
        snapshot = await navigation.load_access_snapshot(
            db,
            schema_name=tenant.schema_name,
            user_id=tenant.user_id,
            institution_id=tenant.institution_id,
        )
        if not is_permitted(snapshot, permission_key):
            audit.spawn(
                AuthAuditEvent.PERMISSION_DENIED,
                audit_context_from_request(
                    request,
                    user_id=tenant.user_id,
                    institution_id=tenant.institution_id,
                    schema_name=tenant.schema_name,
                    permission=permission_key,
                    path=request.url.path,
                    method=request.method,
                ),
            )
            raise _forbidden_error(permission_key)
        return snapshot

    return _dependency
