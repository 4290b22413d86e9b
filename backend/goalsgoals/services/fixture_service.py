"""
backend/goalsgoals/services/fixture_service.py

Purpose:
    Fixture snapshots stored in the provider's own document shape
    (API-Football: fixture / league / teams / goals). The claim registry
    reads them as ground truth for "can this fixture be claimed" and
    "has it finished"; the sync service writes them.

Dependencies:
    - goalsgoals.storage
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from goalsgoals.models.fixture import FixtureSnapshot
from goalsgoals.storage import DocumentStore

logger = logging.getLogger("goalsgoals.fixtures")

FIXTURES_COLLECTION = "fixtures"

NOT_STARTED_STATUSES = frozenset({"NS", "TBD"})
FINISHED_STATUSES = frozenset({"FT", "AET", "PEN"})


def is_not_started(status_code: str) -> bool:
    return (status_code or "").upper() in NOT_STARTED_STATUSES


def is_finished(status_code: str) -> bool:
    return (status_code or "").upper() in FINISHED_STATUSES


class FixtureRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get_fixture(self, fixture_id: int) -> Optional[FixtureSnapshot]:
        raw = await self._store.find_one(FIXTURES_COLLECTION, {"fixture.id": fixture_id})
        if raw is None:
            return None
        return FixtureSnapshot.from_provider(raw)

    async def get_fixtures(self, fixture_ids: Iterable[int]) -> dict[int, FixtureSnapshot]:
        ids = sorted(set(fixture_ids))
        if not ids:
            return {}
        rows = await self._store.find(FIXTURES_COLLECTION, {"fixture.id": {"$in": ids}})
        snapshots = (FixtureSnapshot.from_provider(row) for row in rows)
        return {snap.fixture_id: snap for snap in snapshots}

    async def list_fixtures(
        self,
        *,
        league_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Raw fixtures ordered by kickoff. Dates are ISO strings (YYYY-MM-DD)."""
        query: dict[str, Any] = {}
        if league_id is not None:
            query["league.id"] = league_id
        if status:
            query["fixture.status.short"] = status
        date_range: dict[str, str] = {}
        if date_from:
            date_range["$gte"] = date_from
        if date_to:
            # Inclusive end day: anything before the next day's midnight.
            date_range["$lte"] = f"{date_to}T23:59:59.999"
        if date_range:
            query["fixture.date"] = date_range
        return await self._store.find(
            FIXTURES_COLLECTION, query, sort=[("fixture.date", 1)], limit=limit,
        )

    async def save_fixtures(self, fixtures: Iterable[dict[str, Any]]) -> tuple[int, int]:
        """Upsert provider fixtures by fixture.id. Returns (new, updated)."""
        new_count = 0
        updated_count = 0
        for raw in fixtures:
            fixture_id = (raw.get("fixture") or {}).get("id")
            if fixture_id is None:
                logger.warning("Skipping provider fixture without id")
                continue
            key = {"fixture.id": fixture_id}
            existing = await self._store.find_one(FIXTURES_COLLECTION, key)
            await self._store.upsert(FIXTURES_COLLECTION, key, raw)
            if existing is None:
                new_count += 1
            else:
                updated_count += 1
        return new_count, updated_count
