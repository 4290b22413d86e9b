from typing import Optional

from fastapi import APIRouter, Depends, Query

from goalsgoals.dependencies import get_fixture_repository
from goalsgoals.models.fixture import FixtureListResponse
from goalsgoals.services.fixture_service import FixtureRepository

router = APIRouter(prefix="/api/football", tags=["football"])


@router.get("/fixtures", response_model=FixtureListResponse)
async def list_fixtures(
    league: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    date_from: Optional[str] = Query(default=None, alias="from", pattern=r"^\d{4}-\d{2}-\d{2}$"),
    date_to: Optional[str] = Query(default=None, alias="to", pattern=r"^\d{4}-\d{2}-\d{2}$"),
    limit: int = Query(default=500, ge=1, le=2000),
    fixtures: FixtureRepository = Depends(get_fixture_repository),
):
    """Stored fixtures only; never calls the provider."""
    rows = await fixtures.list_fixtures(
        league_id=league, status=status, date_from=date_from, date_to=date_to, limit=limit,
    )
    return FixtureListResponse(count=len(rows), fixtures=rows)
