from __future__ import annotations

import re

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_gateway.auth.models import AdminPrincipal, SitePrincipal
from consent_gateway.auth.tokens import (
    TokenStore,
    constant_time_equals,
    generate_api_token,
    generate_site_id,
)
from consent_gateway.db.models import SiteStatus
from consent_gateway.db.repositories.sites import SiteRepo
from consent_gateway.errors import AdmissionError, ErrorKind

from .conftest import ADMIN_TOKEN, seed_site

SITE_TOKEN = "a" * 64
SITE_ID = "1" * 32


@pytest.fixture
def store(sessionmaker: async_sessionmaker[AsyncSession]) -> TokenStore:
    return TokenStore(session_factory=sessionmaker, admin_token=ADMIN_TOKEN)


def test_generated_credentials_have_expected_shape() -> None:
    assert re.fullmatch(r"[0-9a-f]{32}", generate_site_id())
    assert re.fullmatch(r"[0-9a-f]{64}", generate_api_token())
    assert generate_api_token() != generate_api_token()


def test_constant_time_equals() -> None:
    assert constant_time_equals("secret", "secret")
    assert not constant_time_equals("secret", "secret2")
    assert not constant_time_equals("", "secret")


@pytest.mark.asyncio
async def test_admin_token_resolves_to_admin(store: TokenStore) -> None:
    principal = await store.resolve(ADMIN_TOKEN)
    assert principal == AdminPrincipal(user="admin")

    principal = await store.resolve(ADMIN_TOKEN, admin_user="<alice>")
    assert principal == AdminPrincipal(user="alice")


@pytest.mark.asyncio
async def test_active_site_token_resolves_to_site(
    store: TokenStore, sessionmaker: async_sessionmaker[AsyncSession]
) -> None:
    await seed_site(sessionmaker, site_id=SITE_ID, domain="https://shop.example.com", api_token=SITE_TOKEN)

    principal = await store.resolve(SITE_TOKEN)
    assert principal == SitePrincipal(
        site_id=SITE_ID, domain="https://shop.example.com", status="active"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "deleted"),
    [(SiteStatus.inactive, False), (SiteStatus.suspended, False), (SiteStatus.active, True)],
)
async def test_inactive_or_deleted_site_is_invalid(
    store: TokenStore,
    sessionmaker: async_sessionmaker[AsyncSession],
    status: SiteStatus,
    deleted: bool,
) -> None:
    await seed_site(
        sessionmaker,
        site_id=SITE_ID,
        domain="https://shop.example.com",
        api_token=SITE_TOKEN,
        status=status,
        deleted=deleted,
    )
    with pytest.raises(AdmissionError) as ei:
        await store.resolve(SITE_TOKEN)
    assert ei.value.kind == ErrorKind.invalid_token


@pytest.mark.asyncio
@pytest.mark.parametrize(("token", "kind"), [(None, ErrorKind.missing_token), ("", ErrorKind.missing_token)])
async def test_missing_token(store: TokenStore, token: str | None, kind: ErrorKind) -> None:
    with pytest.raises(AdmissionError) as ei:
        await store.resolve(token)
    assert ei.value.kind == kind
    assert ei.value.http_status == 401


@pytest.mark.asyncio
async def test_short_token_is_rejected_without_store_lookup(
    store: TokenStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def _boom(self, api_token: str):
        raise AssertionError("store must not be consulted")

    monkeypatch.setattr(SiteRepo, "get_active_by_token", _boom)
    with pytest.raises(AdmissionError) as ei:
        await store.resolve("short")
    assert ei.value.kind == ErrorKind.invalid_token


@pytest.mark.asyncio
async def test_unknown_token_is_invalid(store: TokenStore) -> None:
    with pytest.raises(AdmissionError) as ei:
        await store.resolve("f" * 64)
    assert ei.value.kind == ErrorKind.invalid_token
    assert ei.value.code == 1002


@pytest.mark.asyncio
async def test_store_failure_is_unavailable_not_invalid(
    store: TokenStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = []

    async def _locked(self, api_token: str):
        calls.append(api_token)
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(SiteRepo, "get_active_by_token", _locked)
    with pytest.raises(AdmissionError) as ei:
        await store.resolve(SITE_TOKEN)
    assert ei.value.kind == ErrorKind.store_unavailable
    assert ei.value.http_status == 503
    # No retry.
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_empty_admin_secret_disables_admin(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> None:
    store = TokenStore(session_factory=sessionmaker, admin_token="")
    assert not store.is_admin_token("")
    with pytest.raises(AdmissionError) as ei:
        await store.resolve(ADMIN_TOKEN)
    assert ei.value.kind == ErrorKind.invalid_token
