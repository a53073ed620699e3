"""
Compliance service entry point for VoxGuard.

Builds the record store, loads the rule snapshot, wires the session
aggregator, batch reconciler, and Redis stream intake, and exposes the
HTTP API, health, and metrics endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from vg_common.config import get_settings
from vg_common.db import build_record_store, dispose_engine
from vg_common.logging import configure_logging
from vg_common.messaging import RedisClient

from compliance.audio_store import HttpAudioStore
from compliance.batch_client import HttpBatchTranscriber
from compliance.intake import StreamIntake
from compliance.reconciliation import BatchReconciler
from compliance.routers import alerts, evaluate, health, rules, sessions
from compliance.rule_loader import RuleLoader
from compliance.session_aggregator import SessionAggregator, SessionLocks

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle for the compliance service."""
    settings = get_settings()
    configure_logging("compliance")
    logger.info("compliance_service_starting", store_backend=settings.store_backend)

    store = build_record_store(settings)
    rule_loader = RuleLoader(store)
    await rule_loader.refresh()

    locks = SessionLocks()
    aggregator = SessionAggregator(store, rule_loader, locks=locks)
    transcriber = HttpBatchTranscriber()
    audio_store = HttpAudioStore()
    reconciler = BatchReconciler(store, rule_loader, transcriber, audio_store, locks=locks)

    redis: RedisClient | None = None
    intake: StreamIntake | None = None
    if settings.intake_enabled:
        redis = RedisClient()
        await redis.connect()
        intake = StreamIntake(redis, aggregator)

    app.state.store = store
    app.state.rule_loader = rule_loader
    app.state.aggregator = aggregator
    app.state.reconciler = reconciler
    app.state.redis = redis
    app.state.intake = intake

    logger.info(
        "compliance_service_ready",
        rules_loaded=len(rule_loader.snapshot),
        intake_enabled=intake is not None,
    )
    yield

    # Shutdown
    logger.info("compliance_service_stopping")
    if intake is not None:
        await intake.stop_all()
    if redis is not None:
        await redis.close()
    await transcriber.close()
    await audio_store.close()
    await store.close()
    await dispose_engine()
    logger.info("compliance_service_stopped")


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="VoxGuard Compliance Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health.router)
    app.include_router(evaluate.router)
    app.include_router(sessions.router)
    app.include_router(rules.router)
    app.include_router(alerts.router)
    app.mount("/metrics", make_asgi_app())
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "compliance.main:app",
        host=settings.service_host,
        port=settings.service_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
