"""
consent_gateway.errors

Error taxonomy for the admission and registration layer.

Responsibilities:
- Enumerate every failure kind the layer can produce.
- Map each kind to a stable HTTP status and a machine-readable numeric code.
- Carry response headers (Allow, Retry-After, WWW-Authenticate...) with the error.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(enum.StrEnum):
    missing_token = "MISSING_TOKEN"
    invalid_token = "INVALID_TOKEN"
    store_unavailable = "STORE_UNAVAILABLE"
    rate_limit_exceeded = "RATE_LIMIT_EXCEEDED"
    origin_forbidden = "ORIGIN_FORBIDDEN"
    method_not_allowed = "METHOD_NOT_ALLOWED"
    validation_failed = "VALIDATION_FAILED"
    unauthorized = "UNAUTHORIZED"
    site_not_found = "SITE_NOT_FOUND"
    # Raised by a racing insert and recovered inside the reconciler.
    domain_conflict = "DOMAIN_CONFLICT"


# kind -> (http status, numeric code, short error label)
_ERROR_TABLE: dict[ErrorKind, tuple[int, int, str]] = {
    ErrorKind.missing_token: (401, 1001, "Unauthorized"),
    ErrorKind.invalid_token: (401, 1002, "Unauthorized"),
    ErrorKind.rate_limit_exceeded: (429, 1003, "Rate limit exceeded"),
    ErrorKind.validation_failed: (400, 1006, "Validation Error"),
    ErrorKind.store_unavailable: (503, 1007, "Service Unavailable"),
    ErrorKind.unauthorized: (401, 1008, "Unauthorized"),
    ErrorKind.method_not_allowed: (405, 1009, "Method not allowed"),
    ErrorKind.origin_forbidden: (403, 1010, "Forbidden"),
    ErrorKind.site_not_found: (404, 1011, "Not Found"),
    ErrorKind.domain_conflict: (409, 1012, "Conflict"),
}


class AdmissionError(Exception):
    """
    Structured failure raised by the admission pipeline, the token store and the
    registration reconciler. Rendered into a JSON envelope by the API layer.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        headers: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.headers = dict(headers or {})
        self.details = details

    @property
    def http_status(self) -> int:
        return _ERROR_TABLE[self.kind][0]

    @property
    def code(self) -> int:
        return _ERROR_TABLE[self.kind][1]

    @property
    def label(self) -> str:
        return _ERROR_TABLE[self.kind][2]

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.label,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"AdmissionError({self.kind.value}, {self.message!r})"


# --- Module Notes -----------------------------------------------------------
# Codes are part of the public API contract with the WordPress plugin; never renumber.
