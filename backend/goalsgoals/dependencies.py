"""FastAPI dependencies resolving the components built at startup (app.state)."""

from fastapi import Request

from goalsgoals.providers.api_football import ApiFootballProvider
from goalsgoals.services.claim_service import ClaimRegistry
from goalsgoals.services.fixture_service import FixtureRepository
from goalsgoals.services.quota_service import QuotaTracker


def get_quota_tracker(request: Request) -> QuotaTracker:
    return request.app.state.quota_tracker


def get_claim_registry(request: Request) -> ClaimRegistry:
    return request.app.state.claim_registry


def get_fixture_repository(request: Request) -> FixtureRepository:
    return request.app.state.fixture_repository


def get_api_football(request: Request) -> ApiFootballProvider:
    return request.app.state.api_football
