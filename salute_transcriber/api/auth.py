"""Bearer token lifecycle for the speech API.

WHY: Every API call except the credential grant needs a short-lived bearer
token. Tokens must be refreshed before they expire, and a failed refresh
must surface immediately rather than letting a stale token through.

HOW: TokenManager holds at most one AccessToken. get_valid_token() returns
it while now + safety_margin < expires_at; otherwise it performs a
credential grant (form-encoded scope, Basic auth key, RqUID correlation id)
through the RetryingHttpClient and stores the new token. An asyncio.Lock
makes refresh single-flight: callers that arrive while a refresh is running
wait for it and reuse its token.

RULES:
- expires_in (seconds) sets the lifetime; an absolute expires_at in epoch
  milliseconds is used when expires_in is absent; otherwise 1800s
- A failed refresh clears the held token and raises AuthError
- Token values are never logged
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

from salute_transcriber.api.errors import AuthError, TransientNetworkError
from salute_transcriber.api.http import RetryingHttpClient
from salute_transcriber.api.models import AccessToken
from salute_transcriber.config import TOKEN_DEFAULT_LIFETIME, TOKEN_SAFETY_MARGIN

logger = logging.getLogger(__name__)


class TokenManager:
    """Owns one bearer token and refreshes it before it expires."""

    def __init__(
        self,
        http: RetryingHttpClient,
        auth_key: str,
        token_url: str,
        scope: str,
        session_id: str,
        safety_margin: float = TOKEN_SAFETY_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._http = http
        self._auth_key = auth_key
        self._token_url = token_url
        self._scope = scope
        self._session_id = session_id
        self._safety_margin = safety_margin
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> AccessToken | None:
        return self._token

    def needs_refresh(self) -> bool:
        return self._token is None or self._token.is_expiring(
            self._clock(), self._safety_margin
        )

    def invalidate(self) -> None:
        """Drop the held token so the next call performs a fresh grant."""
        self._token = None

    async def get_valid_token(self) -> str:
        """Return a token that stays valid for at least the safety margin.

        Raises:
            AuthError: the credential grant failed.
            TransientNetworkError: the token endpoint was unreachable.
        """
        if not self.needs_refresh():
            return self._token.value

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.needs_refresh():
                logger.info("Access token is missing or expiring soon. Refreshing...")
                await self.refresh()
            return self._token.value

    async def refresh(self) -> AccessToken:
        """Perform a credential grant and store the resulting token."""
        request = httpx.Request(
            "POST",
            self._token_url,
            data={"scope": self._scope},
            headers={
                "Accept": "application/json",
                "RqUID": self._session_id,
                "Authorization": "Basic {}".format(self._auth_key),
            },
        )
        try:
            response = await self._http.send(request)
        except TransientNetworkError:
            self._token = None
            raise

        if not response.is_success:
            self._token = None
            logger.error("Failed to update access token (status %d)", response.status_code)
            raise AuthError(
                "Failed to update access token",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError:
            self._token = None
            raise AuthError(
                "Token response is not valid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from None

        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not value:
            self._token = None
            logger.error("Access token not found in response from token endpoint")
            raise AuthError("Access token not found in response")

        now = self._clock()
        try:
            if payload.get("expires_in"):
                expires_at = now + float(payload["expires_in"])
            elif payload.get("expires_at"):
                expires_at = float(payload["expires_at"]) / 1000.0
            else:
                expires_at = now + TOKEN_DEFAULT_LIFETIME
        except (TypeError, ValueError):
            self._token = None
            logger.error("Token response has a non-numeric expiry")
            raise AuthError(
                "Token response has a malformed expiry",
                status_code=response.status_code,
                body=response.text,
            ) from None

        self._token = AccessToken(value=value, expires_at=expires_at)
        logger.info(
            "Access token updated successfully. Expires in %.0fs", expires_at - now
        )
        return self._token
