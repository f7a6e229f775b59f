"""
consent_gateway.auth.tokens

Bearer token resolution and credential generation.

Responsibilities:
- Resolve a bearer token into an `AdminPrincipal` or `SitePrincipal`.
- Compare the admin secret in constant time.
- Generate site ids and site API tokens.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_gateway.auth.models import AdminPrincipal, Principal, SitePrincipal
from consent_gateway.auth.sanitize import sanitize_string
from consent_gateway.db.repositories.sites import SiteRepo
from consent_gateway.db.session import STORE_ERRORS
from consent_gateway.errors import AdmissionError, ErrorKind
from consent_gateway.observability.logging import get_logger

log = get_logger(__name__)

SITE_ID_BYTES = 16
API_TOKEN_BYTES = 32
MIN_SITE_TOKEN_LENGTH = 32


def generate_site_id() -> str:
    return secrets.token_hex(SITE_ID_BYTES)


def generate_api_token() -> str:
    return secrets.token_hex(API_TOKEN_BYTES)


def constant_time_equals(candidate: str, expected: str) -> bool:
    # Hash first so neither content nor length of the secret leaks through timing.
    a = hashlib.sha256(candidate.encode("utf-8")).digest()
    b = hashlib.sha256(expected.encode("utf-8")).digest()
    return hmac.compare_digest(a, b)


class TokenStore:
    """
    Read-only resolver: admin secret first, then the `sites` relation.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        admin_token: str,
    ) -> None:
        self._session_factory = session_factory
        # Fixed at construction; the admin secret is immutable for the process lifetime.
        self._admin_token = admin_token

    def is_admin_token(self, token: str) -> bool:
        return bool(self._admin_token) and constant_time_equals(token, self._admin_token)

    async def resolve(self, token: str | None, *, admin_user: str | None = None) -> Principal:
        if not token:
            raise AdmissionError(ErrorKind.missing_token, "API token is required")

        if self.is_admin_token(token):
            user = sanitize_string(admin_user, max_length=128) if admin_user else ""
            return AdminPrincipal(user=user or "admin")

        if len(token) < MIN_SITE_TOKEN_LENGTH:
            raise AdmissionError(ErrorKind.invalid_token, "Invalid or inactive token")

        try:
            async with self._session_factory() as session:
                site = await SiteRepo(session).get_active_by_token(token)
        except STORE_ERRORS as e:
            # Single attempt; the store client owns the timeout.
            log.error("token_store_unavailable", error_type=type(e).__name__)
            raise AdmissionError(
                ErrorKind.store_unavailable, "Token validation is temporarily unavailable"
            ) from e

        if site is None:
            raise AdmissionError(ErrorKind.invalid_token, "Invalid or inactive token")
        return SitePrincipal(site_id=site.id, domain=site.domain, status=site.status.value)


# --- Module Notes -----------------------------------------------------------
# Raw tokens are never logged here or by callers; log the principal class instead.
