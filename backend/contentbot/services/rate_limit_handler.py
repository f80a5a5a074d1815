"""Backoff and request spacing for outbound calls.

One ``RateLimitHandler`` guards one integration: an LLM provider used by
``ContentGenerator`` or the research task service used by
``ResearchClient``. Calls that hit 429, a 5xx or a transport error are
retried with exponential backoff; 401/403 fail at once.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

# Minimum gap between two requests to the same integration (seconds)
REQUEST_SPACING: dict[str, float] = {
    "openai": 0.3,
    "anthropic": 0.4,
    "gemini": 0.2,
    "google": 0.2,
    "openrouter": 0.3,
    "ollama": 0.0,
    "research": 1.0,
}

RETRYABLE_STATUSES = frozenset({500, 502, 503, 504})
_MAX_SPACING = 5.0


class RateLimitExceeded(Exception):
    pass


class AuthenticationError(Exception):
    pass


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - (now or datetime.now(timezone.utc))).total_seconds())


@dataclass
class CallStats:
    calls: int = 0
    succeeded: int = 0
    failed: int = 0
    rate_limited: int = 0
    retries: int = 0
    waited_seconds: float = 0.0

    def summary(self) -> str:
        return (
            f"{self.succeeded}/{self.calls} ok, {self.failed} failed, "
            f"{self.rate_limited} rate-limited, {self.retries} retries, {self.waited_seconds:.1f}s waiting"
        )


class RateLimitHandler:
    """Retries one integration's calls and spaces them out.

    The wait for a 429 starts at ``rate_limit_wait`` and doubles per
    attempt up to ``max_backoff``; a longer Retry-After wins. Each 429 also
    widens the spacing between later requests.
    """

    def __init__(
        self,
        integration: str,
        max_retries: int = 4,
        max_backoff: float = 60.0,
        rate_limit_wait: float = 5.0,
        error_wait: float = 2.0,
    ):
        self.integration = integration
        self.max_retries = max_retries
        self.max_backoff = max_backoff
        self.rate_limit_wait = rate_limit_wait
        self.error_wait = error_wait
        self.stats = CallStats()
        self._spacing = REQUEST_SPACING.get(integration, 0.3)
        self._last_call = 0.0

    def backoff(self, attempt: int, base: float) -> float:
        return min(base * (2 ** attempt), self.max_backoff)

    async def _wait_for_slot(self) -> None:
        if self._last_call:
            gap = time.monotonic() - self._last_call
            if gap < self._spacing:
                await asyncio.sleep(self._spacing - gap)
        self._last_call = time.monotonic()

    async def _pause(self, seconds: float) -> None:
        self.stats.retries += 1
        self.stats.waited_seconds += seconds
        await asyncio.sleep(seconds)

    def _fail(self, exc: Exception) -> Exception:
        self.stats.failed += 1
        logger.warning("%s call failed: %s (%s)", self.integration, exc, self.stats.summary())
        return exc

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        await self._wait_for_slot()
        self.stats.calls += 1

        for attempt in range(self.max_retries + 1):
            last_attempt = attempt >= self.max_retries
            try:
                result = await func(*args, **kwargs)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status in (401, 403):
                    raise self._fail(AuthenticationError(
                        f"{self.integration} rejected the credentials (HTTP {status})"
                    )) from exc

                if status == 429:
                    self.stats.rate_limited += 1
                    if last_attempt:
                        raise self._fail(RateLimitExceeded(
                            f"{self.integration} still rate limiting after {self.max_retries} retries"
                        )) from exc
                    wait = self.backoff(attempt, self.rate_limit_wait)
                    hinted = parse_retry_after(exc.response.headers.get("Retry-After"))
                    if hinted is not None:
                        wait = max(wait, min(hinted, self.max_backoff))
                    self._spacing = min(max(self._spacing, 0.1) * 1.5, _MAX_SPACING)
                    logger.warning(
                        "Rate limited by %s (attempt %d/%d), waiting %.1fs",
                        self.integration, attempt + 1, self.max_retries + 1, wait,
                    )
                    await self._pause(wait)
                    continue

                if status in RETRYABLE_STATUSES and not last_attempt:
                    wait = self.backoff(attempt, self.error_wait)
                    logger.warning(
                        "HTTP %d from %s (attempt %d/%d), retrying in %.1fs",
                        status, self.integration, attempt + 1, self.max_retries + 1, wait,
                    )
                    await self._pause(wait)
                    continue

                raise self._fail(exc)

            except (httpx.TransportError, httpx.TimeoutException) as exc:
                if last_attempt:
                    raise self._fail(exc)
                wait = self.backoff(attempt, self.error_wait)
                logger.warning("Transport error for %s, retrying in %.1fs: %s", self.integration, wait, exc)
                await self._pause(wait)
                continue

            self.stats.succeeded += 1
            if attempt:
                logger.info("%s call succeeded after %d retries", self.integration, attempt)
            return result

        raise self._fail(RateLimitExceeded(f"Max retries exceeded for {self.integration}"))
