"""Evaluate the Mongo-style query subset against plain dicts (file backend)."""

from __future__ import annotations

from typing import Any, Optional

from goalsgoals.errors import ValidationError
from goalsgoals.storage.base import Document, Query, SortSpec

_MISSING = object()
_RANGE_OPS = {
    "$lt": lambda a, b: a < b,
    "$lte": lambda a, b: a <= b,
    "$gt": lambda a, b: a > b,
    "$gte": lambda a, b: a >= b,
}


def get_path(doc: Document, path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _equals(value: Any, expected: Any) -> bool:
    # Mongo treats a missing field as null for equality.
    if value is _MISSING:
        return expected is None
    return value == expected


def _match_operator(value: Any, op: str, operand: Any) -> bool:
    if op == "$eq":
        return _equals(value, operand)
    if op == "$ne":
        return not _equals(value, operand)
    if op == "$in":
        return any(_equals(value, item) for item in operand)
    if op == "$nin":
        return not any(_equals(value, item) for item in operand)
    if op in _RANGE_OPS:
        if value is _MISSING or value is None or operand is None:
            return False
        try:
            return _RANGE_OPS[op](value, operand)
        except TypeError:
            return False
    raise ValidationError(f"Unsupported query operator {op}")


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(str(k).startswith("$") for k in value)


def matches(doc: Document, query: Optional[Query]) -> bool:
    if not query:
        return True
    for path, condition in query.items():
        value = get_path(doc, path)
        if _is_operator_dict(condition):
            if not all(_match_operator(value, op, operand) for op, operand in condition.items()):
                return False
        elif not _equals(value, condition):
            return False
    return True


def _sort_key(value: Any) -> tuple:
    # Missing and null sort first, like Mongo.
    if value is _MISSING or value is None:
        return (0, 0)
    return (1, value)


def apply_sort(rows: list[Document], sort: Optional[SortSpec]) -> list[Document]:
    if not sort:
        return rows
    # Stable sorts applied from the least significant key.
    for path, direction in reversed(list(sort)):
        rows = sorted(rows, key=lambda row: _sort_key(get_path(row, path)), reverse=direction < 0)
    return rows
