"""
consent_gateway.api.routers.admin

Admin-only endpoints.

Responsibilities:
- Confirm that a caller holds the admin secret and report who they claim to be.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from consent_gateway.api.responses import json_response
from consent_gateway.auth.deps import admission
from consent_gateway.auth.middleware import ALL_METHODS, RequestContext
from consent_gateway.auth.models import AdminPrincipal

router = APIRouter(prefix="/api/admin", tags=["admin"])

admin_admission = admission(
    allowed_methods=["GET"],
    require_admin=True,
    rate_limit_type="admin",
    cors_origins="*",
)


@router.api_route("/auth", methods=list(ALL_METHODS))
async def admin_auth_status(
    context: RequestContext = Depends(admin_admission),
) -> JSONResponse:
    # The pipeline guarantees an AdminPrincipal on require_admin routes.
    principal = context.principal
    assert isinstance(principal, AdminPrincipal)
    return json_response(
        {
            "authenticated": True,
            "user": principal.user,
            "permissions": ["admin"],
            "message": "Admin authentication successful",
        },
        context=context,
    )


# --- Module Notes -----------------------------------------------------------
# `X-Admin-User` is informational only (sanitized, never trusted for authorization).
