"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap (backend import path) plus shared fakes: an
    in-memory stand-in for the Motor database behind MongoDocumentStore, a
    settable clock, and a ``store`` fixture that runs a test once per
    storage backend.
"""

from __future__ import annotations

import asyncio
import copy
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

_BACKEND_DIR = str(Path(__file__).resolve().parents[1])
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from goalsgoals.storage import FileDocumentStore, MongoDocumentStore  # noqa: E402
from goalsgoals.storage.query import apply_sort, matches  # noqa: E402


class _InsertManyResult:
    def __init__(self, ids):
        self.inserted_ids = ids


class _UpdateResult:
    def __init__(self, matched):
        self.matched_count = matched


class _DeleteResult:
    def __init__(self, count):
        self.deleted_count = count


class _Cursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._sort = None
        self._limit = None

    def sort(self, spec):
        self._sort = spec
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        docs = apply_sort(self._docs, self._sort)
        if self._limit:
            docs = docs[: self._limit]
        return [copy.deepcopy(d) for d in docs]


def _project(doc: dict, projection: dict | None) -> dict:
    out = copy.deepcopy(doc)
    for field, flag in (projection or {}).items():
        if flag == 0:
            out.pop(field, None)
    return out


class FakeCollection:
    """Motor-like collection. Every call yields to the event loop first, so
    concurrent coroutines interleave between reads and writes as they would
    against a real server."""

    def __init__(self, owner: "FakeMongoDatabase"):
        self._owner = owner
        self.docs: list[dict] = []
        self._next_id = 1

    async def _roundtrip(self):
        await asyncio.sleep(0)
        if self._owner.down:
            raise ServerSelectionTimeoutError("fake mongo is down")

    def _check(self):
        if self._owner.down:
            raise ServerSelectionTimeoutError("fake mongo is down")

    async def find_one(self, query, projection=None):
        await self._roundtrip()
        for doc in self.docs:
            if matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        self._check()
        return _Cursor([_project(d, projection) for d in self.docs if matches(d, query)])

    async def replace_one(self, query, replacement, upsert=False):
        await self._roundtrip()
        for index, doc in enumerate(self.docs):
            if matches(doc, query):
                new_doc = copy.deepcopy(replacement)
                new_doc.setdefault("_id", doc.get("_id"))
                self.docs[index] = new_doc
                return _UpdateResult(1)
        if upsert:
            new_doc = copy.deepcopy(replacement)
            if "_id" not in new_doc:
                new_doc["_id"] = self._next_id
                self._next_id += 1
            self.docs.append(new_doc)
        return _UpdateResult(0)

    async def insert_one(self, row):
        await self._roundtrip()
        if "_id" in row and any(d.get("_id") == row["_id"] for d in self.docs):
            raise DuplicateKeyError(f"duplicate _id {row['_id']!r}")
        if "_id" not in row:
            row["_id"] = self._next_id
            self._next_id += 1
        self.docs.append(copy.deepcopy(row))

    async def insert_many(self, rows):
        await self._roundtrip()
        ids = []
        for row in rows:
            # pymongo stamps _id onto the caller's dict
            row["_id"] = self._next_id
            self._next_id += 1
            ids.append(row["_id"])
            self.docs.append(copy.deepcopy(row))
        return _InsertManyResult(ids)

    async def delete_many(self, query):
        await self._roundtrip()
        kept = [d for d in self.docs if not matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return _DeleteResult(deleted)


class FakeMongoDatabase:
    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}
        self.down = False

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(self)
        return self.collections[name]


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 10, 6, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_mongo() -> FakeMongoDatabase:
    return FakeMongoDatabase()


@pytest.fixture(params=["file", "mongo"])
def store(request, tmp_path, fake_mongo):
    if request.param == "file":
        return FileDocumentStore(tmp_path / "data")
    return MongoDocumentStore(fake_mongo)


def _provider_fixture(
    fixture_id: int,
    *,
    status: str = "NS",
    status_long: str = "Not Started",
    home: str = "Arsenal",
    away: str = "Chelsea",
    goals: tuple[int | None, int | None] = (None, None),
    date: str = "2025-10-11T14:00:00+00:00",
    league_id: int = 39,
) -> dict:
    """A fixture document in the API-Football shape."""
    return {
        "fixture": {
            "id": fixture_id,
            "date": date,
            "status": {"short": status, "long": status_long},
        },
        "league": {
            "id": league_id,
            "name": "Premier League",
            "country": "England",
            "season": 2025,
            "round": "Regular Season - 7",
        },
        "teams": {"home": {"name": home}, "away": {"name": away}},
        "goals": {"home": goals[0], "away": goals[1]},
    }


@pytest.fixture
def make_fixture():
    return _provider_fixture
