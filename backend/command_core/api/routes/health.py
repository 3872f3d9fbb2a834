"""Health & Readiness Probes - liveness and readiness endpoints.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the database is unreachable or any
      circuit breaker is open (readiness)

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from command_core.core.domain_types import BreakerState
from command_core.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "command-core-api",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe - database connectivity and breaker states."""
    manager = database.db_manager
    db_ok = await manager.health_check() if manager else False
    bus = getattr(request.app.state, "command_bus", None)
    breakers = bus.recovery.breakers_snapshot() if bus else []
    open_breakers = [
        b["key"] for b in breakers if b["state"] == BreakerState.OPEN.value
    ]
    if not db_ok or open_breakers:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "database_unavailable" if not db_ok else "circuit_open",
                "open_circuits": open_breakers,
            },
        )
    return {
        "status": "ready",
        "checks": {"database": "healthy", "circuits": breakers},
    }
