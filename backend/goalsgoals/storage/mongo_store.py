"""
backend/goalsgoals/storage/mongo_store.py

Purpose:
    MongoDB implementation of the DocumentStore on top of Motor. Singleton
    documents live in a collection named after the document under the fixed
    _id "tracker"; collections map one-to-one. Mongo's _id never leaks out,
    so results look the same as the file backend's.

    Every write of a singleton document stamps a fresh revision token
    (_rev). update_document replaces only when the token it read is still
    current and retries otherwise, so concurrent read-modify-writes from any
    number of processes never drop each other's changes.

Dependencies:
    - motor.motor_asyncio
    - pymongo
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Callable, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from goalsgoals.errors import StorageError, ValidationError
from goalsgoals.storage.base import Document, DocumentStore, Query, SortSpec
from goalsgoals.storage.query import get_path

logger = logging.getLogger("goalsgoals.storage.mongo")

DOCUMENT_ID = "tracker"
REVISION_FIELD = "_rev"
MAX_UPDATE_ATTEMPTS = 20
_STORED_ONLY = {"_id": 0, REVISION_FIELD: 0}
_NO_ID = {"_id": 0}


class MongoDocumentStore(DocumentStore):
    def __init__(self, db: AsyncIOMotorDatabase, client: Optional[AsyncIOMotorClient] = None) -> None:
        self._db = db
        self._client = client

    async def load_document(self, name: str, default: Document) -> Document:
        try:
            doc = await self._db[name].find_one({"_id": DOCUMENT_ID}, _STORED_ONLY)
        except PyMongoError as exc:
            raise StorageError(f"Failed to read document {name}: {exc}") from exc
        if doc is None:
            return copy.deepcopy(default)
        return doc

    async def save_document(self, name: str, document: Document) -> None:
        payload = {**document, "_id": DOCUMENT_ID, REVISION_FIELD: uuid.uuid4().hex}
        try:
            await self._db[name].replace_one({"_id": DOCUMENT_ID}, payload, upsert=True)
        except PyMongoError as exc:
            raise StorageError(f"Failed to write document {name}: {exc}") from exc

    async def update_document(
        self,
        name: str,
        default: Document,
        mutate: Callable[[Document], Optional[Document]],
    ) -> Document:
        # Optimistic concurrency: replace only if the revision read is still current.
        collection = self._db[name]
        for _ in range(MAX_UPDATE_ATTEMPTS):
            try:
                stored = await collection.find_one({"_id": DOCUMENT_ID})
            except PyMongoError as exc:
                raise StorageError(f"Failed to read document {name}: {exc}") from exc
            if stored is None:
                revision = None
                current = copy.deepcopy(default)
            else:
                revision = stored.pop(REVISION_FIELD, None)
                stored.pop("_id", None)
                current = stored

            updated = mutate(copy.deepcopy(current))
            if updated is None:
                return current

            payload = {**updated, "_id": DOCUMENT_ID, REVISION_FIELD: uuid.uuid4().hex}
            try:
                if stored is None:
                    await collection.insert_one(payload)
                    return updated
                result = await collection.replace_one(
                    {"_id": DOCUMENT_ID, REVISION_FIELD: revision}, payload,
                )
            except DuplicateKeyError:
                # Another writer created the document first.
                continue
            except PyMongoError as exc:
                raise StorageError(f"Failed to write document {name}: {exc}") from exc
            if result.matched_count:
                return updated
            logger.debug("Document %s changed concurrently, retrying update", name)

        raise StorageError(
            f"Document {name} kept changing; update abandoned after {MAX_UPDATE_ATTEMPTS} attempts"
        )

    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        try:
            cursor = self._db[collection].find(query or {}, _NO_ID)
            if sort:
                cursor = cursor.sort(list(sort))
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise StorageError(f"Failed to query {collection}: {exc}") from exc

    async def find_one(self, collection: str, query: Query) -> Optional[Document]:
        try:
            return await self._db[collection].find_one(query, _NO_ID)
        except PyMongoError as exc:
            raise StorageError(f"Failed to query {collection}: {exc}") from exc

    async def insert_many(self, collection: str, records: Iterable[Document]) -> int:
        # insert_many stamps _id onto the dicts it is given; hand it copies.
        rows = [dict(record) for record in records]
        if not rows:
            return 0
        try:
            result = await self._db[collection].insert_many(rows)
        except PyMongoError as exc:
            raise StorageError(f"Failed to insert into {collection}: {exc}") from exc
        return len(result.inserted_ids)

    async def delete_many(self, collection: str, query: Query) -> int:
        try:
            result = await self._db[collection].delete_many(query)
        except PyMongoError as exc:
            raise StorageError(f"Failed to delete from {collection}: {exc}") from exc
        return result.deleted_count

    async def upsert(self, collection: str, key: Query, record: Document) -> None:
        for path, expected in key.items():
            if get_path(record, path) != expected:
                raise ValidationError(f"Upsert record does not match key field {path!r}")
        replacement = {k: v for k, v in record.items() if k != "_id"}
        try:
            await self._db[collection].replace_one(key, replacement, upsert=True)
        except PyMongoError as exc:
            raise StorageError(f"Failed to upsert into {collection}: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB connection closed")
