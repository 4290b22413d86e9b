"""
backend/goalsgoals/errors.py

Purpose:
    Error taxonomy shared by the quota tracker, the claim registry and the
    storage layer. Every error knows the HTTP status it maps to, so the
    routers never translate outcomes by hand.
"""

from __future__ import annotations

from typing import Any


class GoalsError(Exception):
    """Base class for all expected failures of the backend."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


class StorageError(GoalsError):
    """Backend unreachable, unreadable or corrupt."""

    status_code = 503
    code = "storage_unavailable"


class ValidationError(GoalsError):
    """Missing or malformed identifiers."""

    status_code = 400
    code = "validation_error"


class QuotaExceeded(GoalsError):
    """The weekly provider budget refuses new calls."""

    status_code = 429
    code = "rate_limit_reached"

    def __init__(self, message: str, *, count: int, limit: int, oldest_call_expiry: str | None) -> None:
        super().__init__(
            message,
            status={"count": count, "limit": limit, "oldest_call_expiry": oldest_call_expiry},
        )
        self.count = count
        self.limit = limit


class ProviderError(GoalsError):
    """The external football data provider answered with an error."""

    status_code = 502
    code = "provider_error"


class FixtureNotFound(GoalsError):
    status_code = 404
    code = "fixture_not_found"

    def __init__(self, fixture_id: int) -> None:
        super().__init__(f"Fixture {fixture_id} not found", fixture_id=fixture_id)
        self.fixture_id = fixture_id


class FixtureNotClaimable(GoalsError):
    """The fixture has already started or finished."""

    status_code = 409
    code = "fixture_not_claimable"

    def __init__(self, fixture_id: int, status_code: str) -> None:
        super().__init__(
            f"Fixture {fixture_id} is not available for selection (status {status_code})",
            fixture_id=fixture_id,
            fixture_status=status_code,
        )
        self.fixture_id = fixture_id
        self.fixture_status = status_code


class AlreadyClaimed(GoalsError):
    status_code = 409
    code = "already_claimed"

    def __init__(self, fixture_id: int, by: str) -> None:
        super().__init__(
            f"This match has already been selected by {by}",
            fixture_id=fixture_id,
            selected_by=by,
        )
        self.fixture_id = fixture_id
        self.by = by


class ClaimNotFound(GoalsError):
    status_code = 404
    code = "claim_not_found"

    def __init__(self, fixture_id: int) -> None:
        super().__init__(f"No active selection for fixture {fixture_id}", fixture_id=fixture_id)
        self.fixture_id = fixture_id


class NotOwner(GoalsError):
    status_code = 403
    code = "not_owner"

    def __init__(self, fixture_id: int, username: str) -> None:
        super().__init__(
            f"Selection for fixture {fixture_id} does not belong to {username}",
            fixture_id=fixture_id,
        )
        self.fixture_id = fixture_id
        self.username = username


class ProviderRateLimited(ProviderError):
    """The provider itself refused the call with HTTP 429."""

    status_code = 429
    code = "provider_rate_limited"
