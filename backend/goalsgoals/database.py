"""
backend/goalsgoals/database.py

Purpose:
    MongoDB connection bootstrap and index management for the collections
    behind the Mongo document store.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - goalsgoals.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from goalsgoals.config import Settings
from goalsgoals.errors import StorageError

logger = logging.getLogger("goalsgoals.database")


async def connect_db(config: Settings) -> tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    if not config.MONGO_URI:
        raise StorageError("MONGO_URI is required when STORAGE_BACKEND=mongo")
    client = AsyncIOMotorClient(
        config.MONGO_URI,
        tz_aware=True,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[config.MONGO_DB]
    try:
        await ensure_indexes(db)
    except PyMongoError as exc:
        client.close()
        raise StorageError(f"MongoDB unavailable: {exc}") from exc
    logger.info("Connected to MongoDB database %s", config.MONGO_DB)
    return client, db


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Active claims (one claimant per fixture) ----
    try:
        await db.match_selections.create_index("fixture_id", unique=True)
    except (DuplicateKeyError, OperationFailure) as exc:
        logger.warning("Skipped unique fixture_id index due to duplicate data: %s", exc)
        await db.match_selections.create_index("fixture_id", name="fixture_id_lookup")
    await db.match_selections.create_index("username")
    await db.match_selections.create_index("claimed_at")

    # ---- Claim history (append-only) ----
    await db.match_selection_history.create_index([("archived_at", -1)])
    await db.match_selection_history.create_index([("username", 1), ("archived_at", -1)])
    await db.match_selection_history.create_index("fixture_id")

    # ---- Fixtures (provider snapshots) ----
    await db.fixtures.create_index("fixture.id", unique=True)
    await db.fixtures.create_index([("league.id", 1), ("fixture.date", 1)])
    await db.fixtures.create_index("fixture.status.short")
