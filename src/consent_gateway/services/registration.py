"""
consent_gateway.services.registration

Idempotent site-registration reconciliation (transaction owner).

Responsibilities:
- Decide create vs update vs return-existing for a registration payload.
- Refuse updates whose bearer token does not belong to the addressed site.
- Recover from concurrent first registrations of the same domain without
  minting a second site or token.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from consent_gateway.auth.sanitize import sanitize_url
from consent_gateway.auth.tokens import (
    constant_time_equals,
    generate_api_token,
    generate_site_id,
)
from consent_gateway.db.models import Site
from consent_gateway.db.repositories.sites import SiteRepo
from consent_gateway.db.session import STORE_ERRORS
from consent_gateway.errors import AdmissionError, ErrorKind
from consent_gateway.observability.logging import get_logger

log = get_logger(__name__)


class RegistrationOutcome(enum.StrEnum):
    created = "created"
    updated = "updated"
    existing = "existing"


@dataclass(frozen=True, slots=True)
class RegistrationPayload:
    domain: str
    wp_version: str | None = None
    plugin_version: str | None = None
    installed_plugins: list[str] = field(default_factory=list)
    detected_forms: list[dict[str, Any]] = field(default_factory=list)
    site_id: str | None = None


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    site_id: str
    api_token: str = field(repr=False)
    outcome: RegistrationOutcome

    @classmethod
    def of(cls, site: Site, outcome: RegistrationOutcome) -> RegistrationResult:
        return cls(site_id=site.id, api_token=site.api_token, outcome=outcome)


class RegistrationReconciler:
    """
    Precedence (kept strict to avoid duplicate-site drift):

    1. An explicit, live `site_id` updates that site in place, unless a bearer
       token was supplied that is not the site's own token.
    2. Otherwise the normalized domain is looked up among live sites; a hit is
       returned unchanged.
    3. Otherwise a new site is inserted. If a concurrent registration wins the
       insert, the unique index rejects ours and the winner is returned instead.
    """

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._sites = SiteRepo(session)

    async def reconcile(
        self, payload: RegistrationPayload, *, caller_token: str | None = None
    ) -> RegistrationResult:
        try:
            domain = sanitize_url(payload.domain)
        except ValueError as e:
            raise AdmissionError(ErrorKind.validation_failed, f"Invalid domain: {e}") from e

        try:
            return await self._reconcile(payload, domain=domain, caller_token=caller_token)
        except AdmissionError:
            await self._safe_rollback()
            raise
        except STORE_ERRORS as e:
            await self._safe_rollback()
            log.error("registration_store_unavailable", error_type=type(e).__name__)
            raise AdmissionError(
                ErrorKind.store_unavailable, "Site registration is temporarily unavailable"
            ) from e

    async def _reconcile(
        self, payload: RegistrationPayload, *, domain: str, caller_token: str | None
    ) -> RegistrationResult:
        if payload.site_id:
            site = await self._sites.get_live(payload.site_id)
            if site is not None:
                return await self._update(site, payload, domain=domain, caller_token=caller_token)

        existing = await self._sites.get_by_domain(domain)
        if existing is not None:
            log.info("registration_existing", site_id=existing.id, domain=domain)
            return RegistrationResult.of(existing, RegistrationOutcome.existing)

        return await self._create(payload, domain=domain)

    async def _update(
        self,
        site: Site,
        payload: RegistrationPayload,
        *,
        domain: str,
        caller_token: str | None,
    ) -> RegistrationResult:
        if caller_token is not None and not constant_time_equals(caller_token, site.api_token):
            raise AdmissionError(ErrorKind.unauthorized, "Invalid token for this site")

        try:
            await self._sites.update_metadata(
                site,
                domain=domain,
                wp_version=payload.wp_version,
                plugin_version=payload.plugin_version,
                installed_plugins=list(payload.installed_plugins),
                detected_forms=list(payload.detected_forms),
            )
            await self._session.commit()
        except IntegrityError as e:
            # The new domain already belongs to another live site.
            raise AdmissionError(
                ErrorKind.domain_conflict, "Domain is already registered to another site"
            ) from e

        log.info("registration_updated", site_id=site.id, domain=domain)
        return RegistrationResult.of(site, RegistrationOutcome.updated)

    async def _create(self, payload: RegistrationPayload, *, domain: str) -> RegistrationResult:
        try:
            site = await self._sites.create(
                site_id=generate_site_id(),
                domain=domain,
                api_token=generate_api_token(),
                wp_version=payload.wp_version,
                plugin_version=payload.plugin_version,
                installed_plugins=list(payload.installed_plugins),
                detected_forms=list(payload.detected_forms),
            )
            await self._session.commit()
        except IntegrityError:
            # Lost the insert race: fall back to the row the winner created.
            await self._session.rollback()
            log.info(
                "registration_conflict_recovered",
                kind=ErrorKind.domain_conflict.value,
                domain=domain,
            )
            winner = await self._sites.get_by_domain(domain)
            if winner is None:
                raise AdmissionError(
                    ErrorKind.store_unavailable, "Site registration could not be completed"
                ) from None
            return RegistrationResult.of(winner, RegistrationOutcome.existing)

        log.info("registration_created", site_id=site.id, domain=domain)
        return RegistrationResult.of(site, RegistrationOutcome.created)

    async def _safe_rollback(self) -> None:
        try:
            await self._session.rollback()
        except SQLAlchemyError:
            log.warning("registration_rollback_failed")


# --- Module Notes -----------------------------------------------------------
# No distributed lock is taken: the partial unique index on live domains is the
# only arbiter between racing registrations.
