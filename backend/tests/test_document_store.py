"""
backend/tests/test_document_store.py

Purpose:
    Both DocumentStore backends must behave the same for every operation:
    defaults on absence, full replace, query operators, sorting, upsert by
    key, delete counts, and StorageError on backend failure.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from goalsgoals.errors import StorageError, ValidationError
from goalsgoals.storage import FileDocumentStore, MongoDocumentStore


@pytest.mark.asyncio
async def test_load_document_returns_copy_of_default_when_absent(store):
    default = {"calls": [], "weekly_count": 0}
    doc = await store.load_document("api_calls", default)
    assert doc == default
    doc["calls"].append("x")
    assert default["calls"] == []


@pytest.mark.asyncio
async def test_save_document_replaces_whole_document(store):
    stamp = datetime(2025, 10, 1, 9, 30, tzinfo=timezone.utc)
    await store.save_document("api_calls", {"calls": [1, 2], "last_reset": stamp, "extra": True})
    await store.save_document("api_calls", {"calls": [], "last_reset": stamp})

    doc = await store.load_document("api_calls", {})
    assert doc == {"calls": [], "last_reset": stamp}
    assert doc["last_reset"].tzinfo is not None


@pytest.mark.asyncio
async def test_find_supports_operators_sort_and_limit(store):
    await store.insert_many("claims", [
        {"fixture_id": 1, "username": "alice", "kickoff": 30},
        {"fixture_id": 2, "username": "bob", "kickoff": 10},
        {"fixture_id": 3, "username": "alice", "kickoff": 20},
        {"fixture_id": 4, "username": "carol"},
    ])

    alice = await store.find("claims", {"username": "alice"}, sort=[("kickoff", 1)])
    assert [r["fixture_id"] for r in alice] == [3, 1]

    not_alice = await store.find("claims", {"username": {"$ne": "alice"}}, sort=[("fixture_id", -1)])
    assert [r["fixture_id"] for r in not_alice] == [4, 2]

    some = await store.find("claims", {"fixture_id": {"$in": [1, 4, 99]}}, sort=[("fixture_id", 1)])
    assert [r["fixture_id"] for r in some] == [1, 4]

    ranged = await store.find("claims", {"kickoff": {"$gte": 15, "$lt": 30}})
    assert [r["fixture_id"] for r in ranged] == [3]

    first = await store.find("claims", sort=[("fixture_id", 1)], limit=2)
    assert [r["fixture_id"] for r in first] == [1, 2]
    assert all("_id" not in r for r in first)


@pytest.mark.asyncio
async def test_find_with_dotted_paths(store):
    await store.insert_many("fixtures", [
        {"fixture": {"id": 10, "status": {"short": "NS"}}},
        {"fixture": {"id": 11, "status": {"short": "FT"}}},
    ])
    row = await store.find_one("fixtures", {"fixture.status.short": "FT"})
    assert row["fixture"]["id"] == 11
    assert await store.find_one("fixtures", {"fixture.id": 99}) is None


@pytest.mark.asyncio
async def test_upsert_replaces_matching_record_or_inserts(store):
    await store.upsert("claims", {"fixture_id": 7}, {"fixture_id": 7, "username": "alice"})
    await store.upsert("claims", {"fixture_id": 7}, {"fixture_id": 7, "username": "bob"})
    await store.upsert("claims", {"fixture_id": 8}, {"fixture_id": 8, "username": "carol"})

    rows = await store.find("claims", sort=[("fixture_id", 1)])
    assert rows == [
        {"fixture_id": 7, "username": "bob"},
        {"fixture_id": 8, "username": "carol"},
    ]


@pytest.mark.asyncio
async def test_upsert_rejects_record_not_matching_key(store):
    with pytest.raises(ValidationError):
        await store.upsert("claims", {"fixture_id": 7}, {"fixture_id": 8})


@pytest.mark.asyncio
async def test_insert_and_delete_many_report_counts(store):
    records = [{"n": i} for i in range(5)]
    assert await store.insert_many("numbers", records) == 5
    assert all("_id" not in r for r in records)
    assert await store.insert_many("numbers", []) == 0

    assert await store.delete_many("numbers", {"n": {"$gte": 3}}) == 2
    assert await store.delete_many("numbers", {"n": 42}) == 0
    assert [r["n"] for r in await store.find("numbers", sort=[("n", 1)])] == [0, 1, 2]


@pytest.mark.asyncio
async def test_datetimes_round_trip_and_compare(store):
    base = datetime(2025, 10, 6, 12, 0, tzinfo=timezone.utc)
    await store.insert_many("history", [
        {"id": 1, "archived_at": base},
        {"id": 2, "archived_at": base + timedelta(days=1)},
    ])
    newest = await store.find("history", sort=[("archived_at", -1)])
    assert [r["id"] for r in newest] == [2, 1]
    later = await store.find("history", {"archived_at": {"$gt": base}})
    assert [r["id"] for r in later] == [2]


@pytest.mark.asyncio
async def test_file_store_rejects_corrupt_file(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "api_calls.json").write_text("{not json", encoding="utf-8")
    store = FileDocumentStore(data_dir)

    with pytest.raises(StorageError):
        await store.load_document("api_calls", {})


@pytest.mark.asyncio
async def test_file_store_rejects_wrong_shape(tmp_path):
    store = FileDocumentStore(tmp_path)
    await store.insert_many("api_calls", [{"a": 1}])
    with pytest.raises(StorageError):
        await store.load_document("api_calls", {})


@pytest.mark.asyncio
async def test_file_store_writes_whole_file_without_leftovers(tmp_path):
    store = FileDocumentStore(tmp_path)
    await store.save_document("api_calls", {"calls": []})
    await store.upsert("claims", {"fixture_id": 1}, {"fixture_id": 1})

    names = sorted(p.name for p in tmp_path.iterdir())
    assert names == ["api_calls.json", "claims.json"]


@pytest.mark.asyncio
async def test_file_store_rejects_path_like_names(tmp_path):
    store = FileDocumentStore(tmp_path)
    with pytest.raises(ValidationError):
        await store.load_document("../escape", {})


@pytest.mark.asyncio
async def test_mongo_store_wraps_backend_errors(fake_mongo):
    store = MongoDocumentStore(fake_mongo)
    fake_mongo.down = True

    with pytest.raises(StorageError):
        await store.load_document("api_calls", {})
    with pytest.raises(StorageError):
        await store.save_document("api_calls", {"calls": []})
    with pytest.raises(StorageError):
        await store.find("claims")
    with pytest.raises(StorageError):
        await store.delete_many("claims", {})


@pytest.mark.asyncio
async def test_mongo_store_keeps_singleton_under_fixed_id(fake_mongo):
    store = MongoDocumentStore(fake_mongo)
    await store.save_document("api_calls", {"calls": []})
    await store.save_document("api_calls", {"calls": [1]})

    docs = fake_mongo["api_calls"].docs
    assert len(docs) == 1
    assert docs[0]["_id"] == "tracker"
    assert await store.load_document("api_calls", {}) == {"calls": [1]}


@pytest.mark.asyncio
async def test_update_document_serializes_concurrent_writers(store):
    def bump(doc):
        doc["n"] += 1
        return doc

    await asyncio.gather(*(store.update_document("counter", {"n": 0}, bump) for _ in range(10)))
    assert await store.load_document("counter", {}) == {"n": 10}


@pytest.mark.asyncio
async def test_update_document_skips_unchanged_and_aborts_on_error(store):
    assert await store.update_document("fresh", {"n": 0}, lambda doc: None) == {"n": 0}
    assert await store.load_document("fresh", {"absent": True}) == {"absent": True}

    await store.save_document("counter", {"n": 1})
    assert await store.update_document("counter", {"n": 0}, lambda doc: None) == {"n": 1}

    def refuse(doc):
        raise ValidationError("refused")

    with pytest.raises(ValidationError):
        await store.update_document("counter", {"n": 0}, refuse)
    assert await store.load_document("counter", {}) == {"n": 1}


@pytest.mark.asyncio
async def test_mongo_update_retries_when_document_changes_underneath(fake_mongo):
    store = MongoDocumentStore(fake_mongo)
    await store.save_document("counter", {"n": 0})
    interfered = []

    def bump(doc):
        if not interfered:
            # A second process writes between this read and our replace.
            stored = fake_mongo["counter"].docs[0]
            fake_mongo["counter"].docs[0] = {**stored, "n": 100, "_rev": "other-writer"}
            interfered.append(True)
        doc["n"] += 1
        return doc

    assert await store.update_document("counter", {"n": 0}, bump) == {"n": 101}
    assert await store.load_document("counter", {}) == {"n": 101}
