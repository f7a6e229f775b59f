"""
consent_gateway.api.app

FastAPI app factory for the Consent Gateway service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/exception handlers.
- Construct the admission components once (token store, rate limiter, origin guard).
- Initialize and dispose shared infrastructure (DB engine/session factory).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from consent_gateway import __version__
from consent_gateway.api.responses import (
    admission_error_handler,
    preflight_handler,
    request_validation_handler,
)
from consent_gateway.api.routers.admin import router as admin_router
from consent_gateway.api.routers.health import router as health_router
from consent_gateway.api.routers.sites import router as sites_router
from consent_gateway.auth.middleware import AuthMiddleware, PreflightResponse
from consent_gateway.auth.origin import OriginGuard
from consent_gateway.auth.ratelimit import build_rate_limiter
from consent_gateway.auth.tokens import TokenStore
from consent_gateway.db.init_db import init_db
from consent_gateway.db.session import create_engine, create_sessionmaker
from consent_gateway.errors import AdmissionError
from consent_gateway.observability.logging import configure_logging, get_logger
from consent_gateway.observability.middleware import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)
from consent_gateway.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    if not settings.admin_api_token:
        log.warning("admin_token_unset", detail="admin endpoints will reject every request")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod should use Alembic migrations.
            await init_db(app.state.engine)
        yield
        # Dispose the engine to close pools/FDs gracefully.
        await app.state.engine.dispose()
        log.info("shutdown")

    app = FastAPI(
        title="Consent Gateway",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Built eagerly so the admission pipeline exists before the first request.
    engine = create_engine(settings)
    sessionmaker = create_sessionmaker(engine)
    rate_limiter = build_rate_limiter(settings.rate_limit_specs())
    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = sessionmaker
    app.state.auth = AuthMiddleware(
        token_store=TokenStore(
            session_factory=sessionmaker, admin_token=settings.admin_api_token
        ),
        rate_limiter=rate_limiter,
        origin_guard=OriginGuard(),
        trust_proxy_headers=settings.trust_proxy_headers,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(AdmissionError, admission_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PreflightResponse, preflight_handler)

    app.include_router(health_router, tags=["health"])
    app.include_router(sites_router)
    app.include_router(admin_router)

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; admission lives in `auth`, business rules in `services`.
