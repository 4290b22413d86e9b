from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from goalsgoals.utils import ensure_utc


class CallRecord(BaseModel):
    """One permitted outbound provider call. Never mutated, only pruned."""
    model_config = ConfigDict(frozen=True)

    endpoint: str
    timestamp: datetime
    user: str = "system"
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("user", mode="before")
    @classmethod
    def _default_user(cls, value: Any) -> str:
        return value or "system"


class QuotaState(BaseModel):
    """The singleton tracker document.

    Documents written by the earlier JavaScript server use camelCase
    (weeklyCount, lastReset); both spellings are read, snake_case is written.
    """
    calls: List[CallRecord] = Field(default_factory=list)
    weekly_count: int = Field(default=0, validation_alias=AliasChoices("weekly_count", "weeklyCount"))
    last_reset: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("last_reset", "lastReset"),
    )


class RecentCall(BaseModel):
    endpoint: str
    timestamp: datetime
    user: str


class QuotaStatus(BaseModel):
    count: int
    remaining: int
    soft_limit: int
    hard_limit: int
    is_blocked: bool
    is_near_limit: bool
    week_starting: datetime
    oldest_call_expiry: Optional[datetime] = None  # When the window next admits a call
    recent_calls: List[RecentCall] = Field(default_factory=list)


class WeekPeriod(BaseModel):
    start: datetime
    end: datetime


class QuotaAnalytics(BaseModel):
    total_calls: int
    by_endpoint: Dict[str, int]
    by_day: Dict[str, int]  # UTC date (YYYY-MM-DD) -> calls
    by_user: Dict[str, int]
    week_period: WeekPeriod
