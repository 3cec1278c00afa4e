from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from edugate.apps.api.errors import (
    http_exception_handler,
    module_graph_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from edugate.apps.api.response import API_VERSION
from edugate.apps.api.routes.audit import router as audit_router
from edugate.apps.api.routes.health import router as health_router
from edugate.apps.api.routes.navigation import router as navigation_router
from edugate.core.config import Settings, get_settings
from edugate.core.errors import ModuleGraphCycleError
from edugate.core.logging import configure_logging
from edugate.persistence.db import build_engine, build_session_factory
from edugate.persistence.keyvalue import get_redis
from edugate.services.access.caches import AccessCaches
from edugate.services.audit import AuthAuditService, RedisProvider
from edugate.services.navigation.service import NavigationService


logger = logging.getLogger(__name__)


def create_app(
    *,
    settings: Settings | None = None,
    session_factory: async_sessionmaker | None = None,
    redis_provider: RedisProvider | None = None,
    caches: AccessCaches | None = None,
) -> FastAPI:
    configure_logging()
    settings = settings or get_settings()

    engine: AsyncEngine | None = None
    if session_factory is None:
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
    caches = caches or AccessCaches.from_settings(settings)
    audit = AuthAuditService(
        session_factory=session_factory,
        redis_provider=redis_provider or get_redis,
        fallback_key=settings.audit_fallback_key,
        fallback_max_entries=settings.audit_fallback_max_entries,
        recent_events_limit=settings.audit_recent_events_limit,
        institution_events_limit=settings.audit_institution_events_limit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Flush background audit writes before the pool goes away.
        await audit.drain()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.access_caches = caches
    app.state.audit = audit
    app.state.navigation = NavigationService(caches=caches)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.debug(
            "request_completed path=%s status=%s latency_ms=%.1f",
            request.url.path,
            response.status_code,
            latency_ms,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(ModuleGraphCycleError)
    async def _module_graph_exception_handler(request: Request, exc: ModuleGraphCycleError):
        return await module_graph_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(navigation_router, prefix=f"/{API_VERSION}")
    app.include_router(audit_router, prefix=f"/{API_VERSION}")

    # Retain unversioned routes as compatibility aliases.
    app.include_router(health_router, include_in_schema=False)
    app.include_router(navigation_router, include_in_schema=False)
    app.include_router(audit_router, include_in_schema=False)

    return app


app = create_app()
