from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from edugate.apps.api.response import SuccessEnvelope, success_response
from edugate.persistence.db import pool_stats


router = APIRouter(tags=["health"])


class PoolStats(BaseModel):
    size: int | None = None
    checked_out: int | None = None


class HealthResponse(BaseModel):
    status: str
    db_pool: PoolStats | None = None


@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request) -> dict:
    # Liveness only; pool counters help spot connection exhaustion.
    engine = getattr(request.app.state, "engine", None)
    stats = PoolStats(**pool_stats(engine)) if engine is not None else None
    return success_response(request=request, data=HealthResponse(status="ok", db_pool=stats))
