"""
consent_gateway.db.repositories.sites

Repository for `Site` entities.

Responsibilities:
- Look up live (non-deleted) sites by id, domain and API token.
- Keep the scheme-free `domain_key` in step with `domain` on every write.
- Insert new sites and update registration metadata in place.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from consent_gateway.auth.sanitize import host_key
from consent_gateway.db.models import Site, SiteStatus, utcnow


class SiteRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_live(self, site_id: str) -> Site | None:
        stmt = select(Site).where(Site.id == site_id, Site.deleted_at.is_(None))
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_by_domain(self, domain: str) -> Site | None:
        # Matches on host[:port], so http:// and https:// forms of a site are one site.
        # The partial unique index guarantees at most one live row per key.
        stmt = select(Site).where(
            Site.domain_key == host_key(domain), Site.deleted_at.is_(None)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_active_by_token(self, api_token: str) -> Site | None:
        stmt = select(Site).where(
            Site.api_token == api_token,
            Site.status == SiteStatus.active,
            Site.deleted_at.is_(None),
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def create(
        self,
        *,
        site_id: str,
        domain: str,
        api_token: str,
        wp_version: str | None,
        plugin_version: str | None,
        installed_plugins: list[str],
        detected_forms: list[dict[str, Any]],
    ) -> Site:
        # flush() surfaces unique violations (IntegrityError) to the caller immediately.
        site = Site(
            id=site_id,
            domain=domain,
            domain_key=host_key(domain),
            api_token=api_token,
            status=SiteStatus.active,
            wp_version=wp_version,
            plugin_version=plugin_version,
            installed_plugins=installed_plugins,
            detected_forms=detected_forms,
        )
        self._session.add(site)
        await self._session.flush()
        return site

    async def update_metadata(
        self,
        site: Site,
        *,
        domain: str,
        wp_version: str | None,
        plugin_version: str | None,
        installed_plugins: list[str],
        detected_forms: list[dict[str, Any]],
    ) -> Site:
        # Last writer wins; there is no optimistic locking on sites.
        site.domain = domain
        site.domain_key = host_key(domain)
        site.wp_version = wp_version
        site.plugin_version = plugin_version
        site.installed_plugins = installed_plugins
        site.detected_forms = detected_forms
        site.updated_at = utcnow()
        await self._session.flush()
        return site


# --- Module Notes -----------------------------------------------------------
# Used by auth.tokens.TokenStore (read-only) and services.registration (read/write).
# Soft deletion (setting `deleted_at`) belongs to the operator tooling that owns
# the store; this repo only filters on it.
