"""
consent_gateway.db.session

Async SQLAlchemy engine + session factory helpers.

Responsibilities:
- Create the async engine from settings, with a bounded driver timeout.
- Create the async sessionmaker with safe defaults.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from consent_gateway.settings import Settings

# Everything the request path treats as "store unavailable".
STORE_ERRORS = (SQLAlchemyError, TimeoutError, OSError)

# Drivers whose connect() accepts a `timeout` in seconds.
_TIMEOUT_DRIVERS = frozenset({"aiosqlite", "asyncpg"})


def _connect_args(settings: Settings) -> dict[str, Any]:
    driver = make_url(settings.database_url).get_driver_name()
    if driver in _TIMEOUT_DRIVERS:
        return {"timeout": settings.store_timeout_seconds}
    return {}


def create_engine(settings: Settings) -> AsyncEngine:
    # pool_pre_ping helps detect stale connections in long-lived processes.
    return create_async_engine(
        settings.database_url,
        pool_pre_ping=True,
        connect_args=_connect_args(settings),
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False avoids surprising lazy loads after commits.
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


# --- Module Notes -----------------------------------------------------------
# Store timeouts surface to callers as STORE_UNAVAILABLE; nothing in the request
# path retries a failed store call.
