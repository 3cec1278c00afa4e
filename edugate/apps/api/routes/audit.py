from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict

from edugate.apps.api.deps import (
    TenantContext,
    get_audit_service,
    get_tenant_context,
    require_permission,
)
from edugate.apps.api.response import SuccessEnvelope, success_response
from edugate.services.access.decision import AccessSnapshot
from edugate.services.audit import AuthAuditService


AUDIT_VIEW_PERMISSION = "security.audit.view"

router = APIRouter(prefix="/audit", tags=["audit"])


class AuthAuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str | None = None
    institution_id: str | None = None
    action: str
    meta: dict[str, Any] | None = None
    ip: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None


class AuthAuditEventsPage(BaseModel):
    items: list[AuthAuditEventResponse]


@router.get(
    "/auth-events/me",
    response_model=SuccessEnvelope[AuthAuditEventsPage] | AuthAuditEventsPage,
)
async def list_my_auth_events(
    request: Request,
    limit: int = Query(default=50, ge=1, le=200),
    tenant: TenantContext = Depends(get_tenant_context),
    audit: AuthAuditService = Depends(get_audit_service),
) -> dict:
    # Security dashboard widget; read failures come back as an empty list.
    events = await audit.get_recent_events(tenant.user_id, tenant.schema_name, limit=limit)
    page = AuthAuditEventsPage(items=[AuthAuditEventResponse.model_validate(event) for event in events])
    return success_response(request=request, data=page)


@router.get(
    "/auth-events/institution",
    response_model=SuccessEnvelope[AuthAuditEventsPage] | AuthAuditEventsPage,
)
async def list_institution_auth_events(
    request: Request,
    limit: int = Query(default=200, ge=1, le=500),
    tenant: TenantContext = Depends(get_tenant_context),
    snapshot: AccessSnapshot = Depends(require_permission(AUDIT_VIEW_PERMISSION)),
    audit: AuthAuditService = Depends(get_audit_service),
) -> dict:
    # Permission is only licensable through a plan, so institution_id is always set here.
    events = await audit.get_institution_events(snapshot.institution_id, tenant.schema_name, limit=limit)
    page = AuthAuditEventsPage(items=[AuthAuditEventResponse.model_validate(event) for event in events])
    return success_response(request=request, data=page)
