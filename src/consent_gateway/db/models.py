"""
consent_gateway.db.models

Persistence schema for registered sites.

Responsibilities:
- Define the `Site` entity: a registered customer domain, its API token and
  the WordPress metadata reported at registration.
- Enforce "at most one live site per host[:port]" with a partial unique index on `domain_key`.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Enum, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from consent_gateway.db.base import Base


def utcnow() -> datetime:
    # Persist naive UTC timestamps; the API layer renders them as ISO strings.
    return datetime.now(UTC).replace(tzinfo=None)


class SiteStatus(enum.StrEnum):
    # Stored values are part of the API contract (verification endpoint returns them).
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


class Site(Base):
    __tablename__ = "sites"

    # 16 random bytes, hex encoded.
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    # Canonical URL as registered, e.g. "https://shop.example".
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    # Scheme-free "host[:port]"; the identity registrations dedupe on.
    domain_key: Mapped[str] = mapped_column(String(255), nullable=False)
    # 32 random bytes, hex encoded; never regenerated in place.
    api_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    status: Mapped[SiteStatus] = mapped_column(
        Enum(SiteStatus), nullable=False, default=SiteStatus.active
    )

    wp_version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    plugin_version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    installed_plugins: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    detected_forms: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)
    # Soft-delete marker; rows are never hard-deleted by this service.
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True, index=True)

    __table_args__ = (
        Index(
            "uq_sites_domain_live",
            "domain_key",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )


# --- Module Notes -----------------------------------------------------------
# The partial unique index is the authoritative guard against duplicate
# registrations racing on the same domain (see services.registration).
