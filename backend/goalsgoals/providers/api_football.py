"""
backend/goalsgoals/providers/api_football.py

Purpose:
    Adapter for API-Football (api-sports.io) fixtures. Every request goes
    through the weekly quota tracker: refused before sending when the soft
    limit is reached, recorded once the provider has answered.

Dependencies:
    - goalsgoals.providers.http_client
    - goalsgoals.services.quota_service
"""

import logging
from typing import Any, Optional

import httpx

from goalsgoals.config import Settings
from goalsgoals.errors import ProviderError, ProviderRateLimited
from goalsgoals.providers.http_client import CircuitOpenError, ResilientClient
from goalsgoals.services.quota_service import QuotaTracker

logger = logging.getLogger("goalsgoals.api_football")

PROVIDER_NAME = "api_football"

LEAGUE_NAMES = {
    39: "Premier League",
    140: "La Liga",
    78: "Bundesliga",
    135: "Serie A",
    61: "Ligue 1",
}


def _payload(resp: httpx.Response) -> dict[str, Any]:
    """JSON body of a successful response; unparsable bodies surface as provider errors."""
    if resp.status_code >= 400:
        return {}
    try:
        payload = resp.json()
    except ValueError as exc:
        return {"errors": {"body": f"invalid JSON: {exc}"}}
    return payload if isinstance(payload, dict) else {"errors": {"body": "unexpected payload"}}


class ApiFootballProvider:
    def __init__(
        self,
        tracker: QuotaTracker,
        *,
        api_key: str,
        host: str = "v3.football.api-sports.io",
        timeout: float = 15.0,
        max_retries: int = 0,
        retry_delay: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._tracker = tracker
        self._api_key = api_key
        self._host = host
        self._client = ResilientClient(
            PROVIDER_NAME,
            timeout=timeout,
            max_retries=max_retries,
            base_delay=retry_delay,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        tracker: QuotaTracker,
        config: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ApiFootballProvider":
        return cls(
            tracker,
            api_key=config.API_FOOTBALL_KEY,
            host=config.API_FOOTBALL_HOST,
            timeout=config.API_FOOTBALL_TIMEOUT_SECONDS,
            max_retries=config.API_FOOTBALL_MAX_RETRIES,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_fixtures(
        self,
        *,
        season: int,
        league_id: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        user: str = "system",
    ) -> list[dict[str, Any]]:
        """Fetch raw fixtures. Raises QuotaExceeded before sending when blocked."""
        if not self._api_key:
            raise ProviderError("API_FOOTBALL_KEY not configured")

        params = {"season": str(season)}
        if league_id is not None:
            params["league"] = str(league_id)
        if date_from:
            params["from"] = date_from
        if date_to:
            params["to"] = date_to

        async def admit() -> None:
            await self._tracker.ensure_can_make_call()

        async def count(resp: httpx.Response) -> None:
            # The provider bills every answered request, successful or not.
            await self._tracker.record_call(
                "/fixtures",
                user,
                {
                    "league": league_id,
                    "season": season,
                    "from": date_from,
                    "to": date_to,
                    "status": resp.status_code,
                    "results": _payload(resp).get("results"),
                },
            )

        logger.info("Fetching fixtures for league %s, season %s", league_id, season)
        try:
            resp = await self._client.get(
                f"https://{self._host}/fixtures",
                headers={"x-rapidapi-key": self._api_key, "x-rapidapi-host": self._host},
                params=params,
                before_attempt=admit,
                on_response=count,
            )
        except (httpx.HTTPError, CircuitOpenError) as exc:
            raise ProviderError(f"API request failed: {exc}") from exc

        if resp.status_code == 429:
            raise ProviderRateLimited("API rate limit exceeded (429)")
        if resp.status_code >= 400:
            raise ProviderError(f"API request failed: HTTP {resp.status_code}")
        payload = _payload(resp)
        if payload.get("errors"):
            raise ProviderError(f"API returned errors: {payload['errors']}")

        fixtures = payload.get("response") or []
        logger.info("Fetched %d fixtures", len(fixtures))
        return fixtures

    async def aclose(self) -> None:
        await self._client.aclose()
