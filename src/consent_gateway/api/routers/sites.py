"""
consent_gateway.api.routers.sites

Site registration and verification endpoints used by the WordPress plugin.

Responsibilities:
- Register a site (create / update / return existing) and hand back its credentials.
- Let a plugin verify that its stored site id and token are still valid.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from consent_gateway.api.deps import db_session, settings_dep
from consent_gateway.api.responses import json_response, validation_error
from consent_gateway.auth.deps import admission
from consent_gateway.auth.middleware import ALL_METHODS, RequestContext
from consent_gateway.auth.models import SitePrincipal
from consent_gateway.auth.sanitize import sanitize_json, sanitize_url
from consent_gateway.db.repositories.sites import SiteRepo
from consent_gateway.db.session import STORE_ERRORS
from consent_gateway.errors import AdmissionError, ErrorKind
from consent_gateway.services.registration import (
    RegistrationOutcome,
    RegistrationPayload,
    RegistrationReconciler,
)
from consent_gateway.settings import Settings

router = APIRouter(prefix="/api/sites", tags=["sites"])

register_admission = admission(
    allowed_methods=["POST"],
    rate_limit_type="registration",
    cors_origins="*",
)
verify_admission = admission(
    allowed_methods=["GET"],
    require_auth=True,
    rate_limit_type="api",
    cors_origins="*",
)


class DetectedForm(BaseModel):
    type: str = Field(min_length=1, max_length=64)
    count: int = Field(ge=0)
    plugin_name: str | None = Field(default=None, max_length=128)


class SiteRegistrationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    domain: str = Field(min_length=1, max_length=255)
    wp_version: str | None = Field(default=None, max_length=32)
    plugin_version: str | None = Field(default=None, max_length=32)
    installed_plugins: list[str] = Field(default_factory=list, max_length=500)
    detected_forms: list[DetectedForm] = Field(default_factory=list, max_length=200)
    # Present only when the plugin already holds credentials (update mode).
    site_id: str | None = Field(default=None, pattern=r"^[0-9a-f]{32}$")

    @field_validator("domain")
    @classmethod
    def _canonical_domain(cls, v: str) -> str:
        return sanitize_url(v)

    def to_payload(self) -> RegistrationPayload:
        return RegistrationPayload(
            domain=self.domain,
            wp_version=self.wp_version,
            plugin_version=self.plugin_version,
            installed_plugins=list(self.installed_plugins),
            detected_forms=[f.model_dump(exclude_none=True) for f in self.detected_forms],
            site_id=self.site_id,
        )


@router.api_route("/register", methods=list(ALL_METHODS))
async def register_site(
    request: Request,
    context: RequestContext = Depends(register_admission),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    # Admission runs first; the body is only read once the request is admitted.
    try:
        raw = json.loads(await request.body() or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as e:
        # RecursionError: nesting too deep for the decoder.
        raise AdmissionError(
            ErrorKind.validation_failed,
            "Request body must be valid JSON",
            headers=context.response_headers,
        ) from e

    try:
        body = SiteRegistrationRequest.model_validate(sanitize_json(raw))
    except ValidationError as e:
        raise validation_error(e, context=context) from e

    try:
        result = await RegistrationReconciler(session=session).reconcile(
            body.to_payload(), caller_token=context.bearer_token
        )
    except AdmissionError as e:
        e.headers = {**context.response_headers, **e.headers}
        raise

    return json_response(
        {
            "site_id": result.site_id,
            "api_token": result.api_token,
            "widget_url": settings.widget_url,
            "success": True,
            result.outcome.value: True,
        },
        context=context,
        status_code=201 if result.outcome == RegistrationOutcome.created else 200,
    )


@router.api_route("/verify/{site_id}", methods=list(ALL_METHODS))
async def verify_site(
    site_id: str,
    context: RequestContext = Depends(verify_admission),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    try:
        site = await SiteRepo(session).get_live(site_id)
    except STORE_ERRORS as e:
        raise AdmissionError(
            ErrorKind.store_unavailable,
            "Site verification is temporarily unavailable",
            headers=context.response_headers,
        ) from e

    if site is None:
        raise AdmissionError(
            ErrorKind.site_not_found, "Site not found", headers=context.response_headers
        )

    # Tokens are unique per site, so "token belongs to this site" == "principal is this site".
    principal = context.principal
    if not isinstance(principal, SitePrincipal) or principal.site_id != site.id:
        raise AdmissionError(
            ErrorKind.unauthorized,
            "Invalid token for this site",
            headers={**context.response_headers, "WWW-Authenticate": "Bearer"},
        )

    return json_response(
        {
            "success": True,
            "site_id": site.id,
            "widget_url": settings.widget_url,
            "status": site.status.value,
            "domain": site.domain,
            "last_updated": site.updated_at.isoformat(),
        },
        context=context,
    )


# --- Module Notes -----------------------------------------------------------
# Registration is public (no token required) but a supplied token is still
# checked by the reconciler when the payload addresses an existing site id.
