from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from goalsgoals.utils import parse_utc


class FixtureTeams(BaseModel):
    home: str
    away: str


class FixtureLeague(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    country: Optional[str] = None
    round: Optional[str] = None
    season: Optional[int] = None


class FixtureSnapshot(BaseModel):
    """Read-only view of a stored provider fixture."""
    fixture_id: int
    status_code: str  # "NS", "1H", "HT", "FT", ...
    status_long: str = ""
    kickoff: Optional[datetime] = None
    teams: FixtureTeams
    league: FixtureLeague
    goals_home: Optional[int] = None
    goals_away: Optional[int] = None

    @classmethod
    def from_provider(cls, raw: Dict[str, Any]) -> "FixtureSnapshot":
        """Build from the API-Football fixture shape kept in the fixtures collection."""
        fixture = raw.get("fixture") or {}
        status = fixture.get("status") or {}
        teams = raw.get("teams") or {}
        league = raw.get("league") or {}
        goals = raw.get("goals") or {}
        kickoff = fixture.get("date")
        return cls(
            fixture_id=int(fixture["id"]),
            status_code=str(status.get("short") or ""),
            status_long=str(status.get("long") or ""),
            kickoff=parse_utc(kickoff) if kickoff else None,
            teams=FixtureTeams(
                home=(teams.get("home") or {}).get("name") or "",
                away=(teams.get("away") or {}).get("name") or "",
            ),
            league=FixtureLeague(
                id=league.get("id"),
                name=league.get("name"),
                country=league.get("country"),
                round=league.get("round"),
                season=league.get("season"),
            ),
            goals_home=goals.get("home"),
            goals_away=goals.get("away"),
        )


class FixtureListResponse(BaseModel):
    success: bool = True
    count: int
    fixtures: List[Dict[str, Any]]


class SyncResult(BaseModel):
    success: bool = True
    total_fixtures: int = 0
    new_fixtures: int = 0
    updated_fixtures: int = 0
    leagues_synced: int = 0
    api_calls_used: int = 0
    duration: float = 0.0
    details: List[str] = Field(default_factory=list)
    error: Optional[str] = None
