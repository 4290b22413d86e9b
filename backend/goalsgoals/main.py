"""
backend/goalsgoals/main.py

Purpose:
    FastAPI application bootstrap: builds the document store selected by
    STORAGE_BACKEND, constructs the quota tracker and claim registry once per
    process, wires routers and error handlers, and schedules the claim sweep.

Dependencies:
    - goalsgoals.storage
    - goalsgoals.services.quota_service
    - goalsgoals.services.claim_service
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from goalsgoals.config import settings
from goalsgoals.errors import GoalsError
from goalsgoals.middleware.errors import goals_error_handler
from goalsgoals.middleware.logging import StructuredLoggingMiddleware, setup_logging
from goalsgoals.providers.api_football import ApiFootballProvider
from goalsgoals.services.claim_service import ClaimRegistry
from goalsgoals.services.fixture_service import FixtureRepository
from goalsgoals.services.quota_service import QuotaTracker
from goalsgoals.storage import open_document_store
from goalsgoals.workers.claim_sweeper import JOB_ID as CLAIM_SWEEPER_JOB_ID
from goalsgoals.workers.claim_sweeper import sweep_finished_claims

logger = logging.getLogger("goalsgoals")
scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    store = await open_document_store(settings)
    logger.info("Storage backend: %s", settings.STORAGE_BACKEND)

    tracker = QuotaTracker.from_settings(store, settings)
    await tracker.initialize()
    fixtures = FixtureRepository(store)
    registry = ClaimRegistry(store, fixtures)
    await registry.initialize()
    provider = ApiFootballProvider.from_settings(tracker, settings)

    app.state.store = store
    app.state.quota_tracker = tracker
    app.state.fixture_repository = fixtures
    app.state.claim_registry = registry
    app.state.api_football = provider

    if settings.CLAIM_SWEEP_ENABLED:
        scheduler.add_job(
            sweep_finished_claims,
            "interval",
            args=[registry],
            id=CLAIM_SWEEPER_JOB_ID,
            replace_existing=True,
            minutes=settings.CLAIM_SWEEP_INTERVAL_MINUTES,
        )
        scheduler.start()
        logger.info("Claim sweep scheduled every %d min", settings.CLAIM_SWEEP_INTERVAL_MINUTES)

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await provider.aclose()
    await store.close()


app = FastAPI(
    title="GoalsGoalsGoals",
    description="Fixture selections and provider call budget",
    version="0.1.0",
    lifespan=lifespan,
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from goalsgoals.routers.admin import router as admin_router
from goalsgoals.routers.fixtures import router as fixtures_router
from goalsgoals.routers.matches import router as matches_router
from goalsgoals.routers.rate_limit import router as rate_limit_router

app.include_router(rate_limit_router)
app.include_router(matches_router)
app.include_router(fixtures_router)
app.include_router(admin_router)

app.add_exception_handler(GoalsError, goals_error_handler)


@app.get("/health")
async def health():
    return {"status": "ok", "storage": settings.STORAGE_BACKEND}
