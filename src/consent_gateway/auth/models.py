"""
consent_gateway.auth.models

Auth domain models.

Responsibilities:
- Define the authenticated identity types injected into route handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True, slots=True)
class AdminPrincipal:
    """
    Caller presented the process-wide admin secret.
    """

    user: str = "admin"
    kind: Literal["admin"] = "admin"


@dataclass(frozen=True, slots=True)
class SitePrincipal:
    """
    Caller presented the API token of an active, non-deleted site.
    """

    site_id: str
    domain: str
    status: str
    kind: Literal["site"] = "site"


Principal = AdminPrincipal | SitePrincipal


# --- Module Notes -----------------------------------------------------------
# Principals are produced fresh per request and never persisted by this layer.
