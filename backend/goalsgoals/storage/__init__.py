"""Persistence port: one interface, a file backend and a MongoDB backend."""

from goalsgoals.config import Settings
from goalsgoals.storage.base import Document, DocumentStore, Query
from goalsgoals.storage.file_store import FileDocumentStore
from goalsgoals.storage.mongo_store import MongoDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "FileDocumentStore",
    "MongoDocumentStore",
    "Query",
    "open_document_store",
]


async def open_document_store(config: Settings) -> DocumentStore:
    """Build the store selected by STORAGE_BACKEND. The only backend switch."""
    if config.STORAGE_BACKEND == "mongo":
        from goalsgoals.database import connect_db

        client, db = await connect_db(config)
        return MongoDocumentStore(db, client=client)
    return FileDocumentStore(config.DATA_DIR)
