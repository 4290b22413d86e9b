"""
backend/tests/test_api_football_provider.py

Purpose:
    The API-Football adapter consults the weekly quota before sending and
    records every answered request, whatever its status.
"""

from __future__ import annotations

import httpx
import pytest

from goalsgoals.errors import ProviderError, ProviderRateLimited, QuotaExceeded
from goalsgoals.providers.api_football import ApiFootballProvider
from goalsgoals.services.quota_service import QuotaTracker


class _Recorder:
    def __init__(self, status: int = 200, payload: dict | None = None):
        self.status = status
        self.payload = payload if payload is not None else {"results": 0, "response": [], "errors": []}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)


def _provider(tracker, handler, api_key="test-key") -> ApiFootballProvider:
    return ApiFootballProvider(tracker, api_key=api_key, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_records_call_with_metadata(store, clock, make_fixture):
    tracker = QuotaTracker(store, clock=clock)
    handler = _Recorder(payload={"results": 1, "response": [make_fixture(1)], "errors": []})
    provider = _provider(tracker, handler)

    rows = await provider.fetch_fixtures(
        season=2025, league_id=39, date_from="2025-09-16", date_to="2025-10-26", user="admin",
    )
    await provider.aclose()

    assert [r["fixture"]["id"] for r in rows] == [1]
    request = handler.requests[0]
    assert request.url.host == "v3.football.api-sports.io"
    assert request.url.path == "/fixtures"
    assert request.url.params["league"] == "39"
    assert request.url.params["from"] == "2025-09-16"
    assert request.headers["x-rapidapi-key"] == "test-key"

    state = await tracker.prune()
    assert len(state.calls) == 1
    call = state.calls[0]
    assert call.endpoint == "/fixtures"
    assert call.user == "admin"
    assert call.metadata["league"] == 39
    assert call.metadata["status"] == 200
    assert call.metadata["results"] == 1


@pytest.mark.asyncio
async def test_blocked_quota_sends_nothing(store, clock):
    tracker = QuotaTracker(store, soft_limit=1, hard_limit=1, clock=clock)
    await tracker.record_call("/fixtures")
    handler = _Recorder()
    provider = _provider(tracker, handler)

    with pytest.raises(QuotaExceeded):
        await provider.fetch_fixtures(season=2025, league_id=39)
    assert handler.requests == []
    assert (await tracker.get_status()).count == 1


@pytest.mark.asyncio
async def test_provider_429_is_still_counted(store, clock):
    tracker = QuotaTracker(store, clock=clock)
    provider = _provider(tracker, _Recorder(status=429, payload={}))

    with pytest.raises(ProviderRateLimited) as exc_info:
        await provider.fetch_fixtures(season=2025, league_id=39)
    assert exc_info.value.status_code == 429
    state = await tracker.prune()
    assert [c.metadata["status"] for c in state.calls] == [429]


@pytest.mark.asyncio
async def test_payload_errors_raise_provider_error(store, clock):
    tracker = QuotaTracker(store, clock=clock)
    provider = _provider(tracker, _Recorder(payload={"errors": {"token": "invalid key"}, "response": []}))

    with pytest.raises(ProviderError, match="invalid key"):
        await provider.fetch_fixtures(season=2025)
    assert (await tracker.get_status()).count == 1


@pytest.mark.asyncio
async def test_missing_key_fails_without_quota_use(store, clock):
    tracker = QuotaTracker(store, clock=clock)
    handler = _Recorder()
    provider = _provider(tracker, handler, api_key="")

    assert provider.configured is False
    with pytest.raises(ProviderError):
        await provider.fetch_fixtures(season=2025)
    assert handler.requests == []
    assert (await tracker.get_status()).count == 0


@pytest.mark.asyncio
async def test_each_retry_is_admitted_and_counted(store, clock, make_fixture):
    tracker = QuotaTracker(store, soft_limit=5, hard_limit=5, clock=clock)
    responses = iter([
        httpx.Response(503),
        httpx.Response(200, json={"results": 1, "response": [make_fixture(1)], "errors": []}),
    ])
    provider = ApiFootballProvider(
        tracker,
        api_key="test-key",
        max_retries=1,
        retry_delay=0,
        transport=httpx.MockTransport(lambda request: next(responses)),
    )

    rows = await provider.fetch_fixtures(season=2025, league_id=39)
    await provider.aclose()

    assert len(rows) == 1
    state = await tracker.prune()
    assert [c.metadata["status"] for c in state.calls] == [503, 200]
