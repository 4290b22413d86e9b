"""
backend/goalsgoals/services/claim_service.py

Purpose:
    Match selections ("claims"): at most one claimant per fixture and at most
    one open claim per user. Re-selecting a different fixture swaps the
    user's claim; a sweep moves claims on finished fixtures into the
    append-only history.

    There are no cross-document transactions. A swap deletes the prior claim
    before installing the new one, so a crash in between leaves the user
    with zero claims, never two. Concurrent claims on the same fixture are
    last-write-wins; the loser sees AlreadyClaimed on the next attempt.
    Concurrent claims by one user on different fixtures can both install,
    since neither sees the other when retiring; the user's next claim
    retires the extra one.

Dependencies:
    - goalsgoals.storage
    - goalsgoals.services.fixture_service
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from goalsgoals.errors import (
    AlreadyClaimed,
    ClaimNotFound,
    FixtureNotClaimable,
    FixtureNotFound,
    NotOwner,
    StorageError,
    ValidationError,
)
from goalsgoals.models.claim import Claim, ClaimHistoryEntry, ClaimResult, FinalScore, SweepResult
from goalsgoals.models.fixture import FixtureSnapshot
from goalsgoals.services.fixture_service import FixtureRepository, is_finished, is_not_started
from goalsgoals.storage import DocumentStore
from goalsgoals.utils import utcnow

logger = logging.getLogger("goalsgoals.claims")

ACTIVE_CLAIMS_COLLECTION = "match_selections"
CLAIM_HISTORY_COLLECTION = "match_selection_history"


def validate_fixture_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("fixture_id must be a positive integer")
    try:
        fixture_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError("fixture_id must be a positive integer")
    if fixture_id <= 0 or (isinstance(value, float) and value != fixture_id):
        raise ValidationError("fixture_id must be a positive integer")
    return fixture_id


def validate_username(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("username is required")
    return value.strip()


def _parse_claim(raw: dict) -> Claim:
    try:
        return Claim.model_validate(raw)
    except PydanticValidationError as exc:
        raise StorageError(f"Corrupt claim record: {exc}") from exc


def _claim_from_fixture(
    fixture: FixtureSnapshot, username: str, claimed_at: datetime,
) -> Claim:
    return Claim(
        fixture_id=fixture.fixture_id,
        username=username,
        claimed_at=claimed_at,
        home_team=fixture.teams.home,
        away_team=fixture.teams.away,
        date=fixture.kickoff,
        league_id=fixture.league.id,
        league_name=fixture.league.name,
        round=fixture.league.round,
        season=fixture.league.season,
        status=fixture.status_code,
    )


class ClaimRegistry:
    def __init__(
        self,
        store: DocumentStore,
        fixtures: FixtureRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._fixtures = fixtures
        self._clock = clock

    async def initialize(self) -> None:
        active = await self._store.find(ACTIVE_CLAIMS_COLLECTION)
        logger.info("Claim registry using %s: %d active claims", type(self._store).__name__, len(active))

    async def _find_claim(self, fixture_id: int) -> Optional[Claim]:
        raw = await self._store.find_one(ACTIVE_CLAIMS_COLLECTION, {"fixture_id": fixture_id})
        return _parse_claim(raw) if raw is not None else None

    async def claim(self, fixture_id: Any, username: Any) -> ClaimResult:
        """Reserve a not-started fixture for ``username``.

        Same user, same fixture: the claim is refreshed in place and keeps its
        original claimed_at. Same user, other fixture: the user's open claim
        is removed first and reported as ``replaced_prior``.
        """
        fixture_id = validate_fixture_id(fixture_id)
        username = validate_username(username)

        fixture = await self._fixtures.get_fixture(fixture_id)
        if fixture is None:
            raise FixtureNotFound(fixture_id)
        if not is_not_started(fixture.status_code):
            raise FixtureNotClaimable(fixture_id, fixture.status_code)

        existing = await self._find_claim(fixture_id)
        if existing is not None and existing.username != username:
            raise AlreadyClaimed(fixture_id, existing.username)

        replaced_prior = await self._retire_other_claims(username, fixture_id)

        claimed_at = existing.claimed_at if existing is not None else self._clock()
        claim = _claim_from_fixture(fixture, username, claimed_at)
        await self._store.upsert(
            ACTIVE_CLAIMS_COLLECTION, {"fixture_id": fixture_id}, claim.model_dump(),
        )

        if replaced_prior is not None:
            logger.info(
                "Claim swapped: user=%s fixture=%d -> %d",
                username, replaced_prior.fixture_id, fixture_id,
            )
        elif existing is None:
            logger.info("Claim created: user=%s fixture=%d", username, fixture_id)
        return ClaimResult(claim=claim, replaced_prior=replaced_prior)

    async def _retire_other_claims(self, username: str, keep_fixture_id: int) -> Optional[Claim]:
        """Remove the user's open claims on other fixtures; return the first one removed.

        Claims whose fixture already finished stay for the sweep to archive.
        """
        rows = await self._store.find(
            ACTIVE_CLAIMS_COLLECTION,
            {"username": username, "fixture_id": {"$ne": keep_fixture_id}},
            sort=[("claimed_at", 1)],
        )
        if not rows:
            return None
        others = [_parse_claim(row) for row in rows]
        snapshots = await self._fixtures.get_fixtures(c.fixture_id for c in others)

        replaced: Optional[Claim] = None
        for other in others:
            snapshot = snapshots.get(other.fixture_id)
            if snapshot is not None and is_finished(snapshot.status_code):
                continue
            await self._store.delete_many(
                ACTIVE_CLAIMS_COLLECTION,
                {"fixture_id": other.fixture_id, "username": username},
            )
            if replaced is None:
                replaced = other
        return replaced

    async def release(self, fixture_id: Any, username: Any) -> None:
        fixture_id = validate_fixture_id(fixture_id)
        username = validate_username(username)

        existing = await self._find_claim(fixture_id)
        if existing is None:
            raise ClaimNotFound(fixture_id)
        if existing.username != username:
            raise NotOwner(fixture_id, username)

        deleted = await self._store.delete_many(
            ACTIVE_CLAIMS_COLLECTION, {"fixture_id": fixture_id, "username": username},
        )
        if deleted == 0:
            raise ClaimNotFound(fixture_id)
        logger.info("Claim released: user=%s fixture=%d", username, fixture_id)

    async def list_active_claims(self) -> list[Claim]:
        rows = await self._store.find(ACTIVE_CLAIMS_COLLECTION, sort=[("claimed_at", 1)])
        return [_parse_claim(row) for row in rows]

    async def sweep_finished(self) -> SweepResult:
        """Archive every active claim whose fixture has finished.

        History is written before the active claims are deleted. A claim that
        already has a history entry is not archived twice, so a sweep
        interrupted between the two writes heals on the next run.
        """
        active = await self.list_active_claims()
        if not active:
            return SweepResult()

        snapshots = await self._fixtures.get_fixtures(c.fixture_id for c in active)
        now = self._clock()
        finished: list[tuple[Claim, FixtureSnapshot]] = []
        missing: list[int] = []
        for claim in active:
            snapshot = snapshots.get(claim.fixture_id)
            if snapshot is None:
                logger.warning(
                    "Sweep: fixture %d claimed by %s has no snapshot, leaving claim untouched",
                    claim.fixture_id, claim.username,
                )
                missing.append(claim.fixture_id)
                continue
            if is_finished(snapshot.status_code):
                finished.append((claim, snapshot))

        if not finished:
            return SweepResult(checked_count=len(active), missing_fixture_ids=missing)

        finished_ids = [claim.fixture_id for claim, _ in finished]
        archived_rows = await self._store.find(
            CLAIM_HISTORY_COLLECTION, {"fixture_id": {"$in": finished_ids}},
        )
        already_archived = {(row.get("fixture_id"), row.get("username")) for row in archived_rows}

        entries = [
            self._history_entry(claim, snapshot, now)
            for claim, snapshot in finished
            if (claim.fixture_id, claim.username) not in already_archived
        ]
        if entries:
            await self._store.insert_many(
                CLAIM_HISTORY_COLLECTION, [entry.model_dump() for entry in entries],
            )
        await self._store.delete_many(
            ACTIVE_CLAIMS_COLLECTION, {"fixture_id": {"$in": finished_ids}},
        )

        logger.info(
            "Sweep archived %d finished claim%s (%d checked)",
            len(entries), "" if len(entries) == 1 else "s", len(active),
        )
        return SweepResult(
            archived_count=len(entries),
            checked_count=len(active),
            missing_fixture_ids=missing,
        )

    @staticmethod
    def _history_entry(claim: Claim, snapshot: FixtureSnapshot, now: datetime) -> ClaimHistoryEntry:
        data = claim.model_dump()
        data.update(
            round=claim.round or snapshot.league.round,
            league_name=claim.league_name or snapshot.league.name,
            season=claim.season or snapshot.league.season,
        )
        return ClaimHistoryEntry(
            **data,
            archived_at=now,
            final_score=FinalScore(home=snapshot.goals_home, away=snapshot.goals_away),
            match_status=snapshot.status_long or snapshot.status_code,
        )

    async def history(self, username: Optional[str] = None) -> list[ClaimHistoryEntry]:
        query = {"username": username} if username else {}
        rows = await self._store.find(
            CLAIM_HISTORY_COLLECTION, query, sort=[("archived_at", -1)],
        )
        try:
            return [ClaimHistoryEntry.model_validate(row) for row in rows]
        except PydanticValidationError as exc:
            raise StorageError(f"Corrupt claim history record: {exc}") from exc
