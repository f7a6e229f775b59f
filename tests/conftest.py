"""
tests.conftest

Shared fixtures: an isolated SQLite file per test, the app wired to it, and
an httpx client speaking ASGI to that app.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_gateway.api.app import create_app
from consent_gateway.db.init_db import init_db
from consent_gateway.db.models import Site, SiteStatus, utcnow
from consent_gateway.db.repositories.sites import SiteRepo
from consent_gateway.db.session import create_engine, create_sessionmaker
from consent_gateway.settings import Settings

ADMIN_TOKEN = "test-admin-secret-0123456789abcdef"


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "env": "test",
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}",
        "admin_api_token": ADMIN_TOKEN,
        "api_base_url": "https://api.example.test",
        "rate_limit_registration": "100/3600",
        **overrides,
    }
    return Settings(**values)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def app(settings: Settings) -> AsyncIterator[FastAPI]:
    application = create_app(settings=settings)
    # httpx ASGITransport does not manage lifespan automatically; do it explicitly.
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def sessionmaker(settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    # Standalone store for service-level tests that do not need the HTTP app.
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield create_sessionmaker(engine)
    finally:
        await engine.dispose()


async def seed_site(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    site_id: str,
    domain: str,
    api_token: str,
    status: SiteStatus = SiteStatus.active,
    deleted: bool = False,
) -> Site:
    async with sessionmaker() as session:
        repo = SiteRepo(session)
        site = await repo.create(
            site_id=site_id,
            domain=domain,
            api_token=api_token,
            wp_version="6.4.2",
            plugin_version="1.0.0",
            installed_plugins=["contact-form-7"],
            detected_forms=[{"type": "contact", "count": 1}],
        )
        site.status = status
        if deleted:
            site.deleted_at = utcnow()
        await session.commit()
        return site
