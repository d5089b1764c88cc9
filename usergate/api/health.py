"""
Health, liveness and readiness probes.

    GET /api/health    - detailed status; 503 when the database is down
    GET /api/healthz   - liveness only, no dependencies checked
    GET /api/ready     - readiness; 503 when the database cannot answer
"""

from __future__ import annotations

import logging
import os
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from usergate import __version__
from usergate.api.deps import get_db, get_settings
from usergate.config import Settings
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

_STARTED_AT = time.monotonic()


async def _database_up(db: DatabaseConnector) -> tuple[bool, float]:
    """(is_up, response time in ms)"""
    start = time.perf_counter()
    try:
        await db.query("SELECT 1 AS health_check")
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return False, 0.0
    return True, (time.perf_counter() - start) * 1000


@router.get("/health")
async def health(
    db: DatabaseConnector = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    start = time.perf_counter()
    checks: dict = {}
    
    up, elapsed_ms = await _database_up(db)
    if up:
        checks["database"] = {"status": "up", "type": db.type, "responseTime": f"{elapsed_ms:.0f}ms"}
    else:
        checks["database"] = {"status": "down", "type": db.type}
    
    checks["application"] = {
        "status": "up",
        "name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
    }
    checks["system"] = {"pid": os.getpid()}
    
    status = "healthy" if up else "unhealthy"
    body = {
        "status": status,
        "timestamp": utc_now().isoformat(),
        "responseTime": f"{(time.perf_counter() - start) * 1000:.0f}ms",
        "checks": checks,
    }
    return JSONResponse(body, status_code=200 if up else 503)


@router.get("/healthz")
async def healthz():
    return {"status": "ok", "timestamp": utc_now().isoformat()}


@router.get("/ready")
async def ready(db: DatabaseConnector = Depends(get_db)):
    up, _ = await _database_up(db)
    if up:
        return {"status": "ready", "timestamp": utc_now().isoformat()}
    return JSONResponse(
        {"status": "not_ready", "reason": "Database unavailable", "timestamp": utc_now().isoformat()},
        status_code=503,
    )
