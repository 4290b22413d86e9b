import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from goalsgoals.config import settings
from goalsgoals.dependencies import get_api_football, get_fixture_repository
from goalsgoals.errors import ProviderError
from goalsgoals.models.fixture import SyncResult
from goalsgoals.providers.api_football import ApiFootballProvider
from goalsgoals.services.auth_service import get_admin_username
from goalsgoals.services.fixture_service import FixtureRepository
from goalsgoals.services.fixture_sync_service import sync_fixtures

logger = logging.getLogger("goalsgoals.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


class SyncFixturesRequest(BaseModel):
    season: int = 2025
    date_range: int = Field(default=20, ge=0, le=365)


@router.post("/sync-fixtures", response_model=SyncResult)
async def sync_fixtures_endpoint(
    body: SyncFixturesRequest,
    admin: str = Depends(get_admin_username),
    provider: ApiFootballProvider = Depends(get_api_football),
    fixtures: FixtureRepository = Depends(get_fixture_repository),
):
    """Import fixtures from API-Football. Spends one weekly call per league."""
    if not provider.configured:
        raise ProviderError("API_FOOTBALL_KEY not configured")
    logger.info("Fixture sync requested by %s (season %d)", admin, body.season)
    return await sync_fixtures(
        provider,
        fixtures,
        settings.league_ids,
        season=body.season,
        date_range_days=body.date_range,
        user=admin,
    )
