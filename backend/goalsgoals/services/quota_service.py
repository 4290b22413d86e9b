"""
backend/goalsgoals/services/quota_service.py

Purpose:
    Rolling weekly budget for outbound calls to the football data provider.
    The tracker keeps every permitted call in a single document and prunes
    anything older than the window on each access, so weekly_count always
    equals the number of in-window calls. Admission uses the soft limit;
    the hard limit is the provider's own ceiling and only reported.

    Every state change (prune, record, reset) is one atomic read-modify-write
    through DocumentStore.update_document, so concurrent records never drop
    each other. Check and record are still separate steps with no lock
    between them: concurrent callers can both pass the check and overshoot
    the soft limit by at most the number of in-flight requests; the soft/hard
    gap absorbs it.

Dependencies:
    - goalsgoals.storage
    - goalsgoals.models.quota
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from goalsgoals.config import Settings
from goalsgoals.errors import QuotaExceeded, StorageError, ValidationError
from goalsgoals.models.quota import (
    CallRecord,
    QuotaAnalytics,
    QuotaState,
    QuotaStatus,
    RecentCall,
    WeekPeriod,
)
from goalsgoals.storage import DocumentStore
from goalsgoals.utils import utcnow

logger = logging.getLogger("goalsgoals.quota")

API_CALLS_DOCUMENT = "api_calls"


def limit_message(status: QuotaStatus) -> str:
    message = (
        f"You have reached the weekly limit of {status.soft_limit} API calls. "
        "The limit will reset when the oldest call expires."
    )
    if status.oldest_call_expiry is not None:
        message += f" Next available: {status.oldest_call_expiry.isoformat()}"
    return message


def quota_exceeded(status: QuotaStatus) -> QuotaExceeded:
    expiry = status.oldest_call_expiry.isoformat() if status.oldest_call_expiry else None
    return QuotaExceeded(
        limit_message(status),
        count=status.count,
        limit=status.soft_limit,
        oldest_call_expiry=expiry,
    )


class QuotaTracker:
    """Weekly call budget backed by one document in the DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        soft_limit: int = 75,
        hard_limit: int = 100,
        window: timedelta = timedelta(days=7),
        near_limit_ratio: float = 0.9,
        recent_calls: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if soft_limit <= 0:
            raise ValueError("soft_limit must be positive")
        if hard_limit < soft_limit:
            raise ValueError("hard_limit must be >= soft_limit")
        self._store = store
        self.soft_limit = soft_limit
        self.hard_limit = hard_limit
        self.window = window
        self.near_limit_ratio = near_limit_ratio
        self.recent_calls = recent_calls
        self._clock = clock

    @classmethod
    def from_settings(cls, store: DocumentStore, config: Settings) -> "QuotaTracker":
        return cls(
            store,
            soft_limit=config.QUOTA_SOFT_LIMIT,
            hard_limit=config.QUOTA_HARD_LIMIT,
            window=timedelta(days=config.QUOTA_WINDOW_DAYS),
            near_limit_ratio=config.QUOTA_NEAR_LIMIT_RATIO,
            recent_calls=config.QUOTA_RECENT_CALLS,
        )

    async def initialize(self) -> None:
        state = await self.prune()
        logger.info(
            "Quota tracker using %s: %d/%d calls in window",
            type(self._store).__name__, state.weekly_count, self.soft_limit,
        )

    # ---------- storage ----------

    @staticmethod
    def _default(now: datetime) -> dict[str, Any]:
        return {"calls": [], "weekly_count": 0, "last_reset": now}

    @staticmethod
    def _parse(raw: dict[str, Any]) -> QuotaState:
        try:
            return QuotaState.model_validate(raw)
        except PydanticValidationError as exc:
            raise StorageError(f"Corrupt quota tracker document: {exc}") from exc

    async def _update(
        self,
        now: datetime,
        change: Optional[Callable[[QuotaState], None]] = None,
    ) -> QuotaState:
        """Prune, then apply ``change``, as one atomic write of the tracker document."""
        cutoff = now - self.window

        def mutate(raw: dict[str, Any]) -> Optional[dict[str, Any]]:
            state = self._parse(raw)
            active = [call for call in state.calls if call.timestamp >= cutoff]
            changed = len(active) != len(state.calls) or state.weekly_count != len(active)
            state.calls = active
            if change is not None:
                change(state)
                changed = True
            state.weekly_count = len(state.calls)
            return state.model_dump() if changed else None

        stored = await self._store.update_document(API_CALLS_DOCUMENT, self._default(now), mutate)
        return self._parse(stored)

    # ---------- state transitions ----------

    async def prune(self, now: Optional[datetime] = None) -> QuotaState:
        """Drop calls older than the window and persist if anything changed."""
        return await self._update(now or self._clock())

    async def can_make_call(self) -> bool:
        state = await self.prune()
        return state.weekly_count < self.soft_limit

    async def ensure_can_make_call(self) -> QuotaStatus:
        """Raise QuotaExceeded when blocked, otherwise return the current status."""
        status = await self.get_status()
        if status.is_blocked:
            raise quota_exceeded(status)
        return status

    async def record_call(
        self,
        endpoint: str,
        user: str = "system",
        metadata: Optional[dict[str, Any]] = None,
    ) -> CallRecord:
        if not endpoint or not str(endpoint).strip():
            raise ValidationError("endpoint is required")
        now = self._clock()
        call = CallRecord(
            endpoint=str(endpoint),
            timestamp=now,
            user=user or "system",
            metadata=dict(metadata or {}),
        )
        state = await self._update(now, lambda current: current.calls.append(call))
        logger.info(
            "API call recorded: %s (Total this week: %d/%d)",
            call.endpoint, state.weekly_count, self.soft_limit,
        )
        return call

    async def reset(self) -> QuotaState:
        now = self._clock()
        fresh = QuotaState(calls=[], weekly_count=0, last_reset=now)
        await self._store.update_document(
            API_CALLS_DOCUMENT, self._default(now), lambda _raw: fresh.model_dump(),
        )
        logger.warning("API call tracking reset")
        return fresh

    # ---------- queries ----------

    async def get_status(self) -> QuotaStatus:
        now = self._clock()
        state = await self.prune(now)
        calls = state.calls
        count = len(calls)

        oldest_call_expiry = None
        if calls:
            # min() keeps the first of equal timestamps: insertion order breaks ties.
            oldest = min(calls, key=lambda call: call.timestamp)
            oldest_call_expiry = oldest.timestamp + self.window

        recent = calls[-self.recent_calls:] if self.recent_calls > 0 else []
        return QuotaStatus(
            count=count,
            remaining=max(0, self.soft_limit - count),
            soft_limit=self.soft_limit,
            hard_limit=self.hard_limit,
            is_blocked=count >= self.soft_limit,
            is_near_limit=count >= self.soft_limit * self.near_limit_ratio,
            week_starting=now - self.window,
            oldest_call_expiry=oldest_call_expiry,
            recent_calls=[
                RecentCall(endpoint=call.endpoint, timestamp=call.timestamp, user=call.user)
                for call in recent
            ],
        )

    async def get_analytics(self) -> QuotaAnalytics:
        now = self._clock()
        state = await self.prune(now)
        by_endpoint: Counter[str] = Counter()
        by_day: Counter[str] = Counter()
        by_user: Counter[str] = Counter()
        for call in state.calls:
            by_endpoint[call.endpoint] += 1
            by_day[call.timestamp.astimezone(timezone.utc).date().isoformat()] += 1
            by_user[call.user or "system"] += 1
        return QuotaAnalytics(
            total_calls=len(state.calls),
            by_endpoint=dict(by_endpoint),
            by_day=dict(sorted(by_day.items())),
            by_user=dict(by_user),
            week_period=WeekPeriod(start=now - self.window, end=now),
        )
