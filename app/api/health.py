"""Health and readiness endpoints.

  /health (liveness): answers whenever the process can respond.  The body
  reports which store is serving requests and whether it is reachable:
      memory    no DATABASE_URL, the in-memory store is in use
      ok        the database answered SELECT 1
      degraded  the database is configured but unreachable
  Always 200; a degraded store is not a reason to restart the process.

  /ready (readiness): 503 while the configured database is unreachable so
  the load balancer stops routing here until it recovers.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.core.config import SETTINGS
from app.db import engine as db_engine

router = APIRouter(tags=["health"])


async def _store_status() -> str:
    if db_engine.engine is None:
        return "memory"
    return "ok" if await db_engine.check_database() else "degraded"


@router.get("/health")
async def health() -> dict:
    store = await _store_status()
    return {
        "status": "degraded" if store == "degraded" else "ok",
        "env": SETTINGS.app_env,
        "checks": {"store": store},
    }


@router.get("/ready")
async def ready() -> Response:
    if await _store_status() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
