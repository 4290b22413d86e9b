from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Claim(BaseModel):
    """Active match selection. Keyed uniquely by fixture_id."""
    fixture_id: int
    username: str
    claimed_at: datetime
    home_team: str
    away_team: str
    date: Optional[datetime] = None  # Kickoff
    league_id: Optional[int] = None
    league_name: Optional[str] = None
    round: Optional[str] = None
    season: Optional[int] = None
    status: str = "NS"  # Fixture status code at claim time


class FinalScore(BaseModel):
    home: Optional[int] = None
    away: Optional[int] = None


class ClaimHistoryEntry(Claim):
    """Archived claim. Append-only."""
    archived_at: datetime
    final_score: FinalScore
    match_status: str


class ClaimResult(BaseModel):
    claim: Claim
    replaced_prior: Optional[Claim] = None

    @property
    def replaced(self) -> bool:
        return self.replaced_prior is not None

    @property
    def message(self) -> str:
        if self.replaced_prior is None:
            return "Match selected successfully"
        prior = self.replaced_prior
        return (
            f"Match selection updated. Previous selection "
            f"({prior.home_team} vs {prior.away_team}) removed."
        )


class SweepResult(BaseModel):
    archived_count: int = 0
    checked_count: int = 0
    missing_fixture_ids: List[int] = Field(default_factory=list)


class ClaimResponse(BaseModel):
    """Returned by the select endpoint."""
    success: bool = True
    message: str
    replaced: bool
    selection: Claim
    replaced_prior: Optional[Claim] = None


class ClaimListResponse(BaseModel):
    success: bool = True
    selections: List[Claim]


class ClaimHistoryResponse(BaseModel):
    success: bool = True
    count: int
    history: List[ClaimHistoryEntry]


class SweepResponse(BaseModel):
    success: bool = True
    archived: int
    checked: int
    missing_fixture_ids: List[int]
    message: str
