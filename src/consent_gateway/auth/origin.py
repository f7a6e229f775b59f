"""
consent_gateway.auth.origin

Origin/referrer enforcement for cross-site requests.

Responsibilities:
- Decide whether a request's Origin/Referer matches a route's allowed domain.
- Build the CORS response headers attached to admitted and rejected responses.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from consent_gateway.auth.sanitize import sanitize_domain

WILDCARD = "*"

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With, X-Admin-User"
CORS_MAX_AGE = "86400"


class MalformedOrigin(ValueError):
    pass


def _hostname(value: str) -> str:
    try:
        host = urlsplit(value.strip()).hostname
    except ValueError as e:
        raise MalformedOrigin(value) from e
    if not host:
        raise MalformedOrigin(value)
    return host.rstrip(".")


def _allowed_hostname(allowed: str) -> str:
    # The allow-list entry may be a full URL or a bare hostname.
    if "://" in allowed:
        return _hostname(allowed)
    host = sanitize_domain(allowed)
    if not host:
        raise MalformedOrigin(allowed)
    return host


class OriginGuard:
    """
    Stateless allow-list check.

    A request with neither Origin nor Referer is admitted: server-to-server
    calls from the WordPress plugin carry no browser origin, and token
    possession is the real authorization boundary for those routes.
    """

    def is_allowed(self, origin: str | None, referer: str | None, allowed: str) -> bool:
        if not origin and not referer:
            return True
        if allowed == WILDCARD:
            return True
        try:
            expected = _allowed_hostname(allowed)
            candidates = [_hostname(v) for v in (origin, referer) if v]
        except MalformedOrigin:
            return False
        return expected in candidates

    def cors_headers(self, allowed: str, origin: str | None) -> dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Access-Control-Max-Age": CORS_MAX_AGE,
        }
        if allowed == WILDCARD:
            headers["Access-Control-Allow-Origin"] = WILDCARD
        elif origin and self.is_allowed(origin, None, allowed):
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Credentials"] = "true"
            headers["Vary"] = "Origin"
        return headers


# --- Module Notes -----------------------------------------------------------
# Malformed headers fail closed; a literal `Origin: null` counts as malformed.
