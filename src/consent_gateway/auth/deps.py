"""
consent_gateway.auth.deps

FastAPI dependency functions for admission.

Responsibilities:
- Turn a `RouteOptions` table into a reusable route dependency.
- Look up the process-wide `AuthMiddleware` on app.state.
"""

from __future__ import annotations

from collections.abc import Iterable

from fastapi import Request

from consent_gateway.auth.middleware import AuthMiddleware, RequestContext, RouteOptions
from consent_gateway.auth.origin import WILDCARD


def auth_from_app(request: Request) -> AuthMiddleware:
    # Built once in `api.app.create_app`.
    return request.app.state.auth  # type: ignore[attr-defined]


def admission(
    *,
    allowed_methods: Iterable[str],
    require_auth: bool = False,
    require_admin: bool = False,
    rate_limit_type: str = "api",
    cors_origins: str = WILDCARD,
):
    options = RouteOptions.build(
        allowed_methods=allowed_methods,
        require_auth=require_auth,
        require_admin=require_admin,
        rate_limit_type=rate_limit_type,
        cors_origins=cors_origins,
    )

    async def _dep(request: Request) -> RequestContext:
        context = await auth_from_app(request).admit(request, options)
        # Read back by the error handler to log failures with the principal class.
        request.state.admission = context
        return context

    return _dep


# --- Module Notes -----------------------------------------------------------
# Routes mount the dependency on every HTTP verb so the pipeline (not the router)
# owns the 405 decision and its `Allow` header.
