"""
backend/goalsgoals/providers/http_client.py

Purpose:
    httpx.AsyncClient wrapper for metered providers: circuit breaker, optional
    retries with backoff, and a per-attempt hook pair. ``before_attempt`` runs
    before every request that would reach the provider (quota admission) and
    ``on_response`` after every answered one (quota accounting), so retries
    are admitted and counted like first attempts.

Dependencies:
    - httpx
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("goalsgoals.http_client")

_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_NETWORK_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)
_MAX_BACKOFF_SECONDS = 60.0

AttemptHook = Callable[[], Awaitable[None]]
ResponseHook = Callable[[httpx.Response], Awaitable[None]]


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a provider whose circuit is open."""


class CircuitBreaker:
    """Opens after ``failure_threshold`` failed requests in a row.

    While open, requests are refused until ``recovery_timeout`` seconds have
    passed since the last failure; the next request then goes through
    (half-open) and its outcome closes or re-opens the circuit.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self._clock = clock
        self._opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self._opened_at is not None

    def allow(self) -> bool:
        if self._opened_at is None:
            return True
        if self._clock() - self._opened_at >= self.recovery_timeout:
            logger.info("[%s] circuit half-open, allowing one request", self.name)
            return True
        return False

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("[%s] circuit closed", self.name)
        self.failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count >= self.failure_threshold:
            if self._opened_at is None:
                logger.warning("[%s] circuit OPEN after %d failures", self.name, self.failure_count)
            self._opened_at = self._clock()


def _retry_after(response: httpx.Response) -> Optional[float]:
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return float(value)
        except ValueError:
            continue
    return None


def _safe_url(url: str) -> str:
    """Strip query params (keys, dates) for logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """Each attempt is a real provider request. Metered callers keep max_retries at 0
    or pass hooks that admit and count every attempt."""

    def __init__(
        self,
        name: str,
        timeout: float = 15.0,
        max_retries: int = 0,
        base_delay: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._name = name
        self._max_retries = max(0, max_retries)
        self._base_delay = base_delay
        self.circuit = CircuitBreaker(name)

    def _backoff(self, attempt: int, response: Optional[httpx.Response]) -> float:
        delay = _retry_after(response) if response is not None else None
        if delay is None:
            delay = self._base_delay * (2 ** attempt)
        return min(delay, _MAX_BACKOFF_SECONDS)

    async def request(
        self,
        method: str,
        url: str,
        *,
        before_attempt: Optional[AttemptHook] = None,
        on_response: Optional[ResponseHook] = None,
        **kwargs,
    ) -> httpx.Response:
        """Send with retries. Returns the last response when every attempt got a
        retryable status; re-raises the last network error when none was answered.
        Exceptions from ``before_attempt`` abort without touching the circuit."""
        if not self.circuit.allow():
            raise CircuitOpenError(f"{self._name}: circuit open, skipping {_safe_url(url)}")

        attempts = self._max_retries + 1
        last_exc: Optional[Exception] = None
        last_resp: Optional[httpx.Response] = None

        for attempt in range(attempts):
            if before_attempt is not None:
                await before_attempt()
            try:
                resp = await self._client.request(method, url, **kwargs)
            except _NETWORK_ERRORS as exc:
                last_exc = exc
                logger.warning(
                    "[%s] network error on %s %s (attempt %d/%d): %s",
                    self._name, method, _safe_url(url), attempt + 1, attempts, exc,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff(attempt, None))
                continue

            if on_response is not None:
                await on_response(resp)
            if resp.status_code not in _RETRYABLE_STATUSES:
                self.circuit.record_success()
                return resp

            last_resp = resp
            logger.warning(
                "[%s] HTTP %d on %s %s (attempt %d/%d)",
                self._name, resp.status_code, method, _safe_url(url), attempt + 1, attempts,
            )
            if attempt < self._max_retries:
                await asyncio.sleep(self._backoff(attempt, resp))

        self.circuit.record_failure()
        if last_resp is not None:
            return last_resp
        logger.error("[%s] %s %s unreachable after %d attempts", self._name, method, _safe_url(url), attempts)
        raise last_exc  # type: ignore[misc]

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
