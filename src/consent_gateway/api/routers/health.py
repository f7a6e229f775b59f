"""
consent_gateway.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness probe (`/healthz`).
- Provide readiness probe (`/readyz`) with DB connectivity validation.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from consent_gateway.api.deps import db_session
from consent_gateway.db.session import STORE_ERRORS
from consent_gateway.errors import AdmissionError, ErrorKind

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    # Liveness: process is up and serving HTTP.
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(session: AsyncSession = Depends(db_session)) -> dict[str, str]:
    # Readiness: verify the site store is reachable.
    try:
        await session.execute(text("SELECT 1"))
    except STORE_ERRORS as e:
        raise AdmissionError(ErrorKind.store_unavailable, "Database not ready") from e
    return {"status": "ready"}


# --- Module Notes -----------------------------------------------------------
# Probes sit outside the admission pipeline: no token, no rate limit.
