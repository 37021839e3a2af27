"""
Resilient HTTP requests for plan generation.

- per-request timeout
- retry with exponential backoff on timeouts, network errors, 429 and 5xx
- per-host circuit breaker: after N consecutive failures the host is
  short-circuited for a cooldown window
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit

import httpx
import structlog

from ambitionly.core.config import Settings, get_settings
from ambitionly.core.errors import (
    CircuitOpenError,
    HttpStatusError,
    NetworkError,
    RequestTimeoutError,
    TransportError,
    is_retryable_status,
)

logger = structlog.get_logger()


@dataclass
class RetryPolicy:
    """Retry configuration; ``retries`` counts attempts after the first."""
    retries: int = 3
    factor: float = 2.0
    min_backoff: float = 0.5
    max_backoff: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            retries=settings.GENERATION_RETRIES,
            factor=settings.BACKOFF_FACTOR,
            min_backoff=settings.MIN_BACKOFF_SECONDS,
            max_backoff=settings.MAX_BACKOFF_SECONDS,
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is 0-indexed)."""
        return min(self.min_backoff * (self.factor ** attempt), self.max_backoff)


@dataclass
class _HostCircuit:
    failures: int = 0
    opened_at: Optional[float] = None


@dataclass
class CircuitBreaker:
    failure_threshold: int = 5
    open_seconds: float = 20.0
    clock: Callable[[], float] = time.monotonic
    _hosts: dict[str, _HostCircuit] = field(default_factory=dict)

    def _state(self, host: str) -> _HostCircuit:
        return self._hosts.setdefault(host, _HostCircuit())

    def is_open(self, host: str) -> bool:
        state = self._state(host)
        if state.opened_at is None:
            return False
        if self.clock() - state.opened_at < self.open_seconds:
            return True
        # cooldown elapsed: half-open, next failure re-opens immediately
        state.opened_at = None
        state.failures = self.failure_threshold - 1
        return False

    def record_success(self, host: str) -> None:
        state = self._state(host)
        state.failures = 0
        state.opened_at = None

    def record_failure(self, host: str) -> None:
        state = self._state(host)
        state.failures += 1
        if state.failures >= self.failure_threshold:
            state.opened_at = self.clock()
            logger.warning("circuit_opened", host=host, failures=state.failures)


def host_of(url: str) -> str:
    return urlsplit(url).netloc or "unknown"


class ResilientHttpClient:
    """Thin wrapper over httpx.AsyncClient adding retry and circuit breaking."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        policy: Optional[RetryPolicy] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else settings.GENERATION_TIMEOUT_SECONDS
        self._client = client or httpx.AsyncClient(timeout=self.timeout)
        self.policy = policy or RetryPolicy.from_settings(settings)
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            open_seconds=settings.CIRCUIT_OPEN_SECONDS,
        )
        self._sleep = sleep

    async def post_json(self, url: str, body: dict[str, Any]) -> Any:
        """
        POST ``body`` as JSON and return the decoded JSON response.

        Raises:
            CircuitOpenError: host short-circuited
            TransportError: request failed after all retries
        """
        host = host_of(url)
        if self.breaker.is_open(host):
            raise CircuitOpenError(f"Circuit open for {host}")

        attempt = 0
        while True:
            try:
                response = await self._client.post(url, json=body, timeout=self.timeout)
            except httpx.TimeoutException as e:
                error: TransportError = RequestTimeoutError("Request timed out")
                error.__cause__ = e
            except httpx.HTTPError as e:
                error = NetworkError(f"Network request failed: {e}")
                error.__cause__ = e
            else:
                status = response.status_code
                if response.is_success:
                    self.breaker.record_success(host)
                    try:
                        return response.json()
                    except ValueError:
                        return None
                if status in (400, 401) or not is_retryable_status(status):
                    raise HttpStatusError(f"HTTP {status}", status=status, retryable=False)
                error = HttpStatusError(f"HTTP {status}", status=status, retryable=True)

            self.breaker.record_failure(host)
            if attempt >= self.policy.retries:
                logger.warning("http_request_failed", host=host, attempts=attempt + 1, error=error.message)
                raise error
            if self.breaker.is_open(host):
                logger.warning("http_request_short_circuited", host=host, attempts=attempt + 1)
                raise CircuitOpenError(f"Circuit open for {host}") from error

            delay = self.policy.backoff(attempt)
            logger.info(
                "http_request_retry",
                host=host,
                attempt=attempt + 1,
                max_attempts=self.policy.retries + 1,
                delay=delay,
                error=error.message,
            )
            await self._sleep(delay)
            attempt += 1

    async def aclose(self) -> None:
        await self._client.aclose()
