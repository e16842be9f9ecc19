"""
api/routes/v1/health.py -- Liveness and readiness checks.

No authentication and no rate limit: load balancers and orchestrators must
never be throttled or challenged.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import HealthResponse

VERSION = "1.0.0"

router = APIRouter()


def _database_status(request: Request) -> str:
    store = getattr(request.app.state, "store", None)
    return "ok" if store is not None and store.ping() else "error"


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    """Return service status and per-component health."""
    return HealthResponse(version=VERSION, components={"app": "ok", "database": _database_status(request)})


@router.get("/health/liveness")
def liveness() -> dict:
    return {"status": "alive"}


@router.get("/health/readiness")
def readiness(request: Request) -> JSONResponse:
    """503 until the credential store answers."""
    database = _database_status(request)
    if database != "ok":
        return JSONResponse(status_code=503, content={"status": "not ready", "dependencies": {"database": database}})
    return JSONResponse(status_code=200, content={"status": "ready", "dependencies": {"database": database}})
