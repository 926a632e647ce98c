from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

import crm
from crm.core.config import settings
from crm.db.session import get_session, health_check as database_health_check
from crm.services.redis import health_check as redis_health_check

router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    checks: Dict[str, Dict[str, str]]


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(session: AsyncSession = Depends(get_session)):
    """Liveness plus a database round trip."""
    checks = {"database": await database_health_check(session)}
    if settings.rate_limit_backend == "redis":
        checks["redis"] = await redis_health_check()
    healthy = all(check["status"] == "healthy" for check in checks.values())

    body = HealthCheckResponse(
        status="healthy" if healthy else "unhealthy",
        service="buyer-crm",
        environment=settings.environment,
        version=crm.__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=checks,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
