"""
backend/goalsgoals/services/fixture_sync_service.py

Purpose:
    Admin-triggered fixture import: one provider call per configured league
    over a date window around today, upserted into the fixtures collection.
    Stops as soon as the weekly quota refuses further calls.

Dependencies:
    - goalsgoals.providers.api_football
    - goalsgoals.services.fixture_service
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Iterable

from goalsgoals.errors import GoalsError, QuotaExceeded, StorageError
from goalsgoals.models.fixture import SyncResult
from goalsgoals.providers.api_football import LEAGUE_NAMES, ApiFootballProvider
from goalsgoals.services.fixture_service import FixtureRepository
from goalsgoals.utils import utcnow

logger = logging.getLogger("goalsgoals.fixture_sync")


async def sync_fixtures(
    provider: ApiFootballProvider,
    fixtures: FixtureRepository,
    league_ids: Iterable[int],
    *,
    season: int,
    date_range_days: int = 20,
    user: str = "system",
    pause_seconds: float = 1.0,
    clock: Callable[[], datetime] = utcnow,
) -> SyncResult:
    started = time.monotonic()
    result = SyncResult()

    today = clock().date()
    date_from = (today - timedelta(days=date_range_days)).isoformat()
    date_to = (today + timedelta(days=date_range_days)).isoformat()
    league_ids = list(league_ids)
    logger.info("Starting sync for %d leagues, %s to %s", len(league_ids), date_from, date_to)

    for index, league_id in enumerate(league_ids):
        name = LEAGUE_NAMES.get(league_id, f"League {league_id}")
        try:
            rows = await provider.fetch_fixtures(
                season=season,
                league_id=league_id,
                date_from=date_from,
                date_to=date_to,
                user=user,
            )
        except QuotaExceeded as exc:
            result.details.append(f"{name}: {exc.message}")
            result.error = "Rate limit exceeded"
            logger.warning("Fixture sync stopped at %s: weekly quota reached", name)
            break
        except StorageError:
            raise
        except GoalsError as exc:
            result.details.append(f"{name}: Error - {exc.message}")
            logger.error("Fixture sync failed for %s: %s", name, exc.message)
            continue

        result.api_calls_used += 1
        if rows:
            new_count, updated_count = await fixtures.save_fixtures(rows)
            result.total_fixtures += len(rows)
            result.new_fixtures += new_count
            result.updated_fixtures += updated_count
            result.leagues_synced += 1
            result.details.append(
                f"{name}: {len(rows)} fixtures ({new_count} new, {updated_count} updated)"
            )
        else:
            result.details.append(f"{name}: No fixtures found")

        if pause_seconds > 0 and index < len(league_ids) - 1:
            await asyncio.sleep(pause_seconds)

    result.duration = round(time.monotonic() - started, 3)
    result.success = result.error is None
    logger.info(
        "Sync completed: %d fixtures (%d new, %d updated), %d API calls",
        result.total_fixtures, result.new_fixtures, result.updated_fixtures, result.api_calls_used,
    )
    return result
