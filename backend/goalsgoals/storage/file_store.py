"""
backend/goalsgoals/storage/file_store.py

Purpose:
    Local JSON-file implementation of the DocumentStore. One file per logical
    name under DATA_DIR: documents are JSON objects, collections are JSON
    arrays. Every write replaces the whole file through a temp file and
    os.replace, so readers never observe a partial write.

    Values are encoded as MongoDB extended JSON (bson.json_util) so that
    datetimes come back as tz-aware UTC datetimes, exactly like the Mongo
    backend returns them.

Dependencies:
    - bson.json_util
    - asyncio (blocking file I/O runs in worker threads)
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import re
import tempfile
from datetime import timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from bson import json_util
from bson.json_util import JSONMode, JSONOptions

from goalsgoals.errors import StorageError, ValidationError
from goalsgoals.storage.base import Document, DocumentStore, Query, SortSpec
from goalsgoals.storage.query import apply_sort, get_path, matches

logger = logging.getLogger("goalsgoals.storage.file")

_JSON_OPTIONS = JSONOptions(json_mode=JSONMode.RELAXED, tz_aware=True, tzinfo=timezone.utc)
_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class FileDocumentStore(DocumentStore):
    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir)
        # One lock per file keeps each read-modify-write whole inside this process.
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path(self, name: str) -> Path:
        if not _NAME_RE.match(name or ""):
            raise ValidationError(f"Invalid storage name {name!r}")
        return self._data_dir / f"{name}.json"

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    # ---------- blocking helpers (run in threads) ----------

    def _read(self, name: str) -> Any:
        path = self._path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {path.name}: {exc}") from exc
        if not raw.strip():
            return None
        try:
            return json_util.loads(raw, json_options=_JSON_OPTIONS)
        except (ValueError, TypeError) as exc:
            raise StorageError(f"Corrupt storage file {path.name}: {exc}") from exc

    def _write(self, name: str, payload: Any) -> None:
        path = self._path(name)
        tmp_name: Optional[str] = None
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self._data_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json_util.dumps(payload, json_options=_JSON_OPTIONS, indent=2))
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {path.name}: {exc}") from exc

    async def _read_collection(self, collection: str) -> list[Document]:
        data = await asyncio.to_thread(self._read, collection)
        if data is None:
            return []
        if not isinstance(data, list):
            raise StorageError(f"Storage file {collection}.json does not hold a collection")
        return data

    # ---------- documents ----------

    async def load_document(self, name: str, default: Document) -> Document:
        data = await asyncio.to_thread(self._read, name)
        if data is None:
            return copy.deepcopy(default)
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {name}.json does not hold a document")
        return data

    async def save_document(self, name: str, document: Document) -> None:
        async with self._lock(name):
            await asyncio.to_thread(self._write, name, document)

    async def update_document(
        self,
        name: str,
        default: Document,
        mutate: Callable[[Document], Optional[Document]],
    ) -> Document:
        async with self._lock(name):
            current = await self.load_document(name, default)
            updated = mutate(copy.deepcopy(current))
            if updated is None:
                return current
            await asyncio.to_thread(self._write, name, updated)
            return updated

    # ---------- collections ----------

    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        rows = [row for row in await self._read_collection(collection) if matches(row, query)]
        rows = apply_sort(rows, sort)
        if limit:
            rows = rows[:limit]
        return rows

    async def insert_many(self, collection: str, records: Iterable[Document]) -> int:
        new_rows = [copy.deepcopy(dict(record)) for record in records]
        if not new_rows:
            return 0
        async with self._lock(collection):
            rows = await self._read_collection(collection)
            rows.extend(new_rows)
            await asyncio.to_thread(self._write, collection, rows)
        return len(new_rows)

    async def delete_many(self, collection: str, query: Query) -> int:
        async with self._lock(collection):
            rows = await self._read_collection(collection)
            kept = [row for row in rows if not matches(row, query)]
            deleted = len(rows) - len(kept)
            if deleted:
                await asyncio.to_thread(self._write, collection, kept)
        return deleted

    async def upsert(self, collection: str, key: Query, record: Document) -> None:
        stored = copy.deepcopy(dict(record))
        for path, expected in key.items():
            if get_path(stored, path) != expected:
                raise ValidationError(f"Upsert record does not match key field {path!r}")
        async with self._lock(collection):
            rows = await self._read_collection(collection)
            for index, row in enumerate(rows):
                if matches(row, key):
                    rows[index] = stored
                    break
            else:
                rows.append(stored)
            await asyncio.to_thread(self._write, collection, rows)

    async def close(self) -> None:
        logger.debug("File store at %s closed", self._data_dir)
