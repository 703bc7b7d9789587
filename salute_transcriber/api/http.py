"""Outbound HTTP with status- and transport-based retry.

WHY: The speech API throttles (429) and has transient 5xx outages, and the
network between us and it occasionally drops. Every call in the workflow
(token grant, upload, submit, status, download) needs the same retry policy,
so it lives in one wrapper instead of being repeated per call.

HOW: RetryingHttpClient.send() sends a prepared httpx.Request through an
httpx.AsyncClient. After a failed attempt n (1-indexed) it sleeps
base_delay * 2^(n-1), capped at max_delay, and tries again while
n <= retry_attempts. Requests are built once and re-sent as-is, so the body
must be in memory (bytes, form or JSON), never a stream.

RULES:
- Retry when the status is in retry_statuses or httpx raises a TransportError
- Any other response (2xx or not) is returned immediately; the caller
  decides success by inspecting the status
- When retries run out, the last response is returned, or the last transport
  error is raised as TransientNetworkError (chained)
- Each attempt is logged; nothing outside the call is mutated
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

import httpx

from salute_transcriber.api.errors import TransientNetworkError
from salute_transcriber.config import (
    RETRY_ATTEMPTS,
    RETRY_MAX_DELAY,
    RETRY_STATUSES,
    RETRY_TIMEOUT,
)

logger = logging.getLogger(__name__)


class RetryingHttpClient:
    """Sends requests with exponential backoff on transient failures.

    RULES:
    - retry_attempts is the number of retries, not total requests
    - sleep is injectable so tests can record delays instead of waiting
    - the wrapped httpx.AsyncClient is owned by the caller
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_statuses: Iterable[int] = RETRY_STATUSES,
        retry_attempts: int = RETRY_ATTEMPTS,
        base_delay: float = RETRY_TIMEOUT,
        max_delay: float | None = RETRY_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if retry_attempts < 0:
            raise ValueError("retry_attempts must be >= 0")
        self._client = client
        self.retry_statuses = frozenset(retry_statuses)
        self.retry_attempts = retry_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay (seconds) to wait after failed attempt ``attempt`` (1-indexed)."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send ``request``, retrying transient failures.

        Returns:
            The first non-retryable response, or the last response once
            retries are exhausted.

        Raises:
            TransientNetworkError: every attempt failed at the transport level.
        """
        url = str(request.url)
        attempt = 1
        while True:
            logger.debug("%s %s (attempt %d)", request.method, url, attempt)
            try:
                response = await self._client.send(request)
            except httpx.TransportError as exc:
                if attempt > self.retry_attempts:
                    logger.error(
                        "%s %s failed after %d attempt(s): %s",
                        request.method, url, attempt, exc,
                    )
                    raise TransientNetworkError(url, attempt) from exc
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "%s %s failed with %s. Retrying in %.1fs (attempt %d/%d)",
                    request.method, url, type(exc).__name__, delay,
                    attempt, self.retry_attempts,
                )
            else:
                if response.status_code not in self.retry_statuses:
                    if response.is_success:
                        logger.debug("%s %s -> %d", request.method, url, response.status_code)
                    else:
                        logger.warning(
                            "%s %s completed with non-retryable status %d",
                            request.method, url, response.status_code,
                        )
                    return response
                if attempt > self.retry_attempts:
                    logger.error(
                        "%s %s still returning %d after %d attempt(s)",
                        request.method, url, response.status_code, attempt,
                    )
                    return response
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "%s %s returned %d. Retrying in %.1fs (attempt %d/%d)",
                    request.method, url, response.status_code, delay,
                    attempt, self.retry_attempts,
                )

            await self._sleep(delay)
            attempt += 1
