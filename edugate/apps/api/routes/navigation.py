from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from edugate.apps.api.deps import (
    TenantContext,
    attach_academic_session,
    get_db,
    get_navigation_service,
    get_tenant_context,
)
from edugate.apps.api.response import SuccessEnvelope, success_response
from edugate.services.navigation.service import NavigationService


router = APIRouter(
    prefix="/navigation",
    tags=["navigation"],
    dependencies=[Depends(attach_academic_session)],
)


class NavNode(BaseModel):
    key: str
    title: str
    icon: str | None = None
    path: str | None = None
    children: list[NavNode] | None = None


class RoleRef(BaseModel):
    id: str
    name: str


class PermissionsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    permissions: list[str]
    roles: list[RoleRef]
    is_admin: bool = Field(alias="isAdmin")


class NavigationResponse(PermissionsResponse):
    navigation: list[NavNode]


class NavItemsResponse(BaseModel):
    navigation: list[NavNode]


# Unversioned aliases return the raw payload; /v1 wraps it in the envelope.
@router.get(
    "",
    response_model=SuccessEnvelope[NavigationResponse] | NavigationResponse,
    response_model_exclude_none=True,
)
async def get_navigation(
    request: Request,
    tenant: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    navigation: NavigationService = Depends(get_navigation_service),
) -> dict:
    # App bootstrap payload: effective permissions plus the pruned menu.
    payload = await navigation.get_permissions_and_navigation(
        db,
        schema_name=tenant.schema_name,
        user_id=tenant.user_id,
        institution_id=tenant.institution_id,
    )
    return success_response(request=request, data=NavigationResponse.model_validate(payload))


@router.get(
    "/permissions",
    response_model=SuccessEnvelope[PermissionsResponse] | PermissionsResponse,
)
async def get_permissions(
    request: Request,
    tenant: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    navigation: NavigationService = Depends(get_navigation_service),
) -> dict:
    payload = await navigation.get_permissions_payload(
        db,
        schema_name=tenant.schema_name,
        user_id=tenant.user_id,
        institution_id=tenant.institution_id,
    )
    return success_response(request=request, data=PermissionsResponse.model_validate(payload))


@router.get(
    "/nav-items",
    response_model=SuccessEnvelope[NavItemsResponse] | NavItemsResponse,
    response_model_exclude_none=True,
)
async def get_nav_items(
    request: Request,
    tenant: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    navigation: NavigationService = Depends(get_navigation_service),
) -> dict:
    payload = await navigation.get_nav_items_payload(
        db,
        schema_name=tenant.schema_name,
        user_id=tenant.user_id,
        institution_id=tenant.institution_id,
    )
    return success_response(request=request, data=NavItemsResponse.model_validate(payload))
