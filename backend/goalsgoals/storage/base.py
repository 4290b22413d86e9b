"""
backend/goalsgoals/storage/base.py

Purpose:
    Backend-agnostic persistence interface used by the quota tracker, the
    claim registry and the fixture repository. Two implementations exist
    (local JSON files and MongoDB) and they must behave identically for
    every operation below.

Dependencies:
    - abc
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Sequence

Document = dict[str, Any]
Query = dict[str, Any]
SortSpec = Sequence[tuple[str, int]]


class DocumentStore(ABC):
    """Named singleton documents plus named record collections.

    Queries use a small Mongo-compatible subset: field equality and the
    operators $eq, $ne, $in, $nin, $lt, $lte, $gt, $gte. Dotted paths reach
    into nested documents. Every backend failure surfaces as StorageError.
    """

    @abstractmethod
    async def load_document(self, name: str, default: Document) -> Document:
        """Return the stored document, or a copy of ``default`` when absent."""

    @abstractmethod
    async def save_document(self, name: str, document: Document) -> None:
        """Replace the stored document as a whole."""

    @abstractmethod
    async def update_document(
        self,
        name: str,
        default: Document,
        mutate: Callable[[Document], Optional[Document]],
    ) -> Document:
        """Read-modify-write one document atomically.

        ``mutate`` receives a private copy of the stored document (or of
        ``default`` when absent) and returns the replacement, or None to leave
        the document unchanged. It runs again when a concurrent writer got in
        first, so it must only compute from its argument. Exceptions it raises
        abort the update. Returns the document as it stands afterwards.
        """

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        ...

    async def find_one(self, collection: str, query: Query) -> Optional[Document]:
        rows = await self.find(collection, query, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    async def insert_many(self, collection: str, records: Iterable[Document]) -> int:
        """Append records; returns the number inserted."""

    @abstractmethod
    async def delete_many(self, collection: str, query: Query) -> int:
        """Delete every matching record; returns the number deleted."""

    @abstractmethod
    async def upsert(self, collection: str, key: Query, record: Document) -> None:
        """Replace the record matching the equality ``key`` or insert ``record``.

        ``record`` must itself satisfy ``key``.
        """

    async def close(self) -> None:
        return None
