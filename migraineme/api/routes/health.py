"""Health check endpoints for monitoring service status."""

import asyncio
import time
from enum import Enum
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from migraineme import __version__
from migraineme.api.deps import get_supabase_client
from migraineme.database import get_db
from migraineme.services.supabase import SupabaseClient

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    """Health status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class DependencyHealth(BaseModel):
    """Health status of a single dependency."""
    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Full health check response."""
    status: HealthStatus
    version: str
    dependencies: Dict[str, DependencyHealth]


async def check_database(db: Session) -> DependencyHealth:
    """Check the local store."""
    try:
        start = time.perf_counter()
        db.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(status=HealthStatus.HEALTHY, latency_ms=round(latency, 2))
    except Exception as e:
        return DependencyHealth(status=HealthStatus.UNHEALTHY, message=str(e))


async def check_supabase(client: SupabaseClient) -> DependencyHealth:
    """Check the Supabase REST gateway."""
    start = time.perf_counter()
    is_healthy = await client.health_check()
    latency = (time.perf_counter() - start) * 1000
    if is_healthy:
        return DependencyHealth(status=HealthStatus.HEALTHY, latency_ms=round(latency, 2))
    # Local data and queued work still function while the backend is away
    return DependencyHealth(status=HealthStatus.DEGRADED, message="Supabase not responding")


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: Session = Depends(get_db),
    client: SupabaseClient = Depends(get_supabase_client),
) -> HealthResponse:
    """
    Health check with dependency status.

    - database: local SQLite/SQLAlchemy store
    - supabase: hosted backend REST gateway
    """
    db_health, supabase_health = await asyncio.gather(check_database(db), check_supabase(client))
    dependencies = {"database": db_health, "supabase": supabase_health}

    if db_health.status == HealthStatus.UNHEALTHY:
        overall = HealthStatus.UNHEALTHY
    elif supabase_health.status != HealthStatus.HEALTHY:
        overall = HealthStatus.DEGRADED
    else:
        overall = HealthStatus.HEALTHY

    return HealthResponse(status=overall, version=__version__, dependencies=dependencies)


@router.get("/health/live")
async def liveness():
    """Liveness check: 200 whenever the app responds."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(db: Session = Depends(get_db)):
    """
    Readiness check.

    Returns 503 when the local store is unreachable.
    """
    db_health = await check_database(db)

    if db_health.status == HealthStatus.UNHEALTHY:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": db_health.message},
        )

    return {"status": "ready"}
