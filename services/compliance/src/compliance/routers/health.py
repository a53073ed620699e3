"""
Health check API router for the VoxGuard compliance service.

Reports the record store, Redis intake, and the loaded rule snapshot.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from vg_common.db import SqlRecordStore, check_database_health

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    services: dict[str, str]
    rules_loaded: int
    quarantined_rules: int


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    services: dict[str, str] = {}

    store = getattr(request.app.state, "store", None)
    if store is None:
        services["store"] = "not_configured"
    elif isinstance(store, SqlRecordStore):
        services["store"] = "healthy" if await check_database_health() else "unhealthy"
    else:
        services["store"] = "healthy"

    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        services["redis"] = "not_configured"
    else:
        services["redis"] = "healthy" if await redis.health_check() else "unhealthy"

    loader = getattr(request.app.state, "rule_loader", None)
    snapshot = loader.snapshot if loader is not None else ()
    quarantined = loader.quarantined if loader is not None else {}

    overall = "healthy" if all(
        v in ("healthy", "not_configured") for v in services.values()
    ) else "degraded"

    return HealthResponse(
        status=overall,
        services=services,
        rules_loaded=len(snapshot),
        quarantined_rules=len(quarantined),
    )
