"""Async HTTP client for the asynchronous speech recognition API.

WHY: Transcribing a file is a multi-step remote workflow: upload the media,
submit a recognition task, check its status, download the result. This
module puts each step behind one method so callers (orchestrator, HTTP API,
CLI, tests) never deal with tokens, headers or retry policy.

HOW: RecognitionJobClient is an async context manager. Entering it opens an
httpx.AsyncClient (or adopts an injected transport), wraps it in a
RetryingHttpClient and creates a TokenManager for this session. Each step
fetches a fresh-enough token first, sends one request through the retry
wrapper, and turns anything other than the expected success body into a
typed error:
upload → submit → poll_once (repeated by the caller) → download_result.

RULES:
- Always use the async context manager (async with RecognitionJobClient(...) as client:)
- Every call re-validates the token; no token value is cached by the client
- Every request carries Authorization: Bearer <token> and X-Request-ID: <session id>
- poll_once never loops; polling cadence belongs to the caller
- download_result parses JSON regardless of the declared content-type
- Encoding parameter validation happens before submit, not here
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from salute_transcriber.api.auth import TokenManager
from salute_transcriber.api.errors import (
    APIResponseError,
    DownloadError,
    ResultParseError,
    StatusError,
    SubmissionError,
    UploadError,
)
from salute_transcriber.api.http import RetryingHttpClient
from salute_transcriber.api.models import (
    RecognitionJob,
    RecognitionOptions,
    RecognitionResult,
    parse_recognition_result,
)
from salute_transcriber.config import ServiceConfig

logger = logging.getLogger(__name__)


class RecognitionJobClient:
    """Async client for the upload → submit → poll → download workflow.

    RULES:
    - Use as: async with RecognitionJobClient(config) as client: ...
    - Each instance owns its session id and its token; nothing is shared
      between instances
    - transport is for tests (httpx.MockTransport); production uses the
      default network transport
    """

    def __init__(
        self,
        config: ServiceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        session_id: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._transport = transport
        self.session_id = session_id or str(uuid.uuid4())
        self._sleep = sleep
        self._clock = clock
        self._client: httpx.AsyncClient | None = None
        self._http: RetryingHttpClient | None = None
        self._tokens: TokenManager | None = None
        logger.info("New client instance created with session id %s", self.session_id)

    async def __aenter__(self) -> RecognitionJobClient:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/"),
            timeout=httpx.Timeout(300.0, connect=30.0),
            verify=self._config.verify_ssl,
            transport=self._transport,
        )
        self._http = RetryingHttpClient(
            self._client,
            retry_statuses=self._config.retry_statuses,
            retry_attempts=self._config.retry_attempts,
            base_delay=self._config.retry_timeout,
            max_delay=self._config.max_delay,
            sleep=self._sleep,
        )
        self._tokens = TokenManager(
            self._http,
            auth_key=self._config.auth_key,
            token_url=self._config.token_url,
            scope=self._config.scope,
            session_id=self.session_id,
            safety_margin=self._config.token_safety_margin,
            clock=self._clock,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None
            self._http = None
            self._tokens = None

    @property
    def tokens(self) -> TokenManager:
        self._ensure_client()
        return self._tokens

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "RecognitionJobClient must be used as an async context manager: "
                "async with RecognitionJobClient(config) as client: ..."
            )
        return self._client

    async def _authorized_send(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        client = self._ensure_client()
        token = await self._tokens.get_valid_token()
        request_headers = {
            "Authorization": "Bearer {}".format(token),
            "X-Request-ID": self.session_id,
        }
        if headers:
            request_headers.update(headers)
        request = client.build_request(method, path, headers=request_headers, **kwargs)
        return await self._http.send(request)

    # ------------------------------------------------------------------
    # Step 1: Upload file
    # ------------------------------------------------------------------

    async def upload(self, data: bytes, content_type: str) -> str:
        """Upload raw media bytes and return the request_file_id.

        The content type is passed through verbatim; the service uses it to
        pick a decoder.

        Raises:
            UploadError: non-2xx after retries, or no result.request_file_id.
        """
        logger.info(
            "Uploading file for recognition (%d bytes, Content-Type: %s)",
            len(data), content_type,
        )
        response = await self._authorized_send(
            "POST",
            "/data:upload",
            headers={"Content-Type": content_type},
            content=data,
        )
        if not response.is_success:
            logger.error("Failed to upload file (status %d)", response.status_code)
            raise UploadError(response.status_code, response.text)

        file_id = _result_field(response, "request_file_id", UploadError)
        logger.info("File upload successful. Request file id: %s", file_id)
        return file_id

    # ------------------------------------------------------------------
    # Step 2: Submit recognition
    # ------------------------------------------------------------------

    async def submit(self, request_file_id: str, options: RecognitionOptions) -> str:
        """Start an async recognition task and return its id.

        Raises:
            SubmissionError: non-2xx after retries, or no result.id.
        """
        body = {
            "options": options.to_request_options(self._config.model),
            "request_file_id": request_file_id,
        }
        logger.info("Starting recognition for request file id %s", request_file_id)
        logger.debug("Recognition request body: %s", json.dumps(body))

        response = await self._authorized_send(
            "POST", "/speech:async_recognize", json=body,
        )
        if not response.is_success:
            logger.error("Failed to start recognition (status %d)", response.status_code)
            raise SubmissionError(response.status_code, response.text)

        job_id = _result_field(response, "id", SubmissionError)
        logger.info("Recognition started successfully. Task id: %s", job_id)
        return job_id

    # ------------------------------------------------------------------
    # Step 3: Check status (single request)
    # ------------------------------------------------------------------

    async def poll_once(self, job_id: str) -> RecognitionJob:
        """Fetch the current status of a recognition task.

        Raises:
            StatusError: non-2xx after retries, or a malformed status body.
        """
        response = await self._authorized_send(
            "GET", "/task:get", params={"id": job_id},
        )
        if not response.is_success:
            logger.error(
                "Failed to get recognition status for task %s (status %d)",
                job_id, response.status_code,
            )
            raise StatusError(response.status_code, response.text)

        try:
            job = RecognitionJob.from_dict(_json_result(response), job_id)
        except (KeyError, TypeError, ValueError) as exc:
            raise StatusError(
                response.status_code, response.text,
                reason="malformed status body ({})".format(exc),
            ) from exc

        logger.info("Status for task %s is %s", job_id, job.status.value)
        return job

    # ------------------------------------------------------------------
    # Step 4: Download result
    # ------------------------------------------------------------------

    async def download_result(self, response_file_id: str) -> RecognitionResult:
        """Download and parse the recognition result document.

        The service labels the result with a non-JSON content-type, so the
        body is decoded as UTF-8 and parsed unconditionally.

        Raises:
            DownloadError: non-2xx after retries.
            ResultParseError: body is not a JSON array of result items.
        """
        response = await self._authorized_send(
            "GET", "/data:download", params={"response_file_id": response_file_id},
        )
        if not response.is_success:
            logger.error(
                "Failed to get recognition result %s (status %d)",
                response_file_id, response.status_code,
            )
            raise DownloadError(response.status_code, response.text)

        raw = response.content
        try:
            body = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ResultParseError(raw.decode("utf-8", errors="replace"), str(exc)) from exc
        logger.info(
            "Downloaded result data for %s (%d characters)", response_file_id, len(body)
        )

        try:
            result = parse_recognition_result(json.loads(body))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.error("Failed to parse recognition result for %s", response_file_id)
            raise ResultParseError(body, str(exc)) from exc

        logger.info("Result parsed successfully (%d items)", len(result))
        return result


# ---------------------------------------------------------------------------
# Response helpers (module-private)
# ---------------------------------------------------------------------------


def _json_result(response: httpx.Response) -> dict:
    """Return the "result" object of a JSON envelope, or raise ValueError."""
    payload = response.json()
    result = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(result, dict):
        raise ValueError("response has no result object")
    return result


def _result_field(
    response: httpx.Response,
    key: str,
    error_cls: type[APIResponseError],
) -> str:
    """Extract result.<key> from a success body, raising error_cls if absent."""
    try:
        value = _json_result(response).get(key)
    except ValueError:
        value = None
    if not value:
        logger.error("Expected field result.%s missing from response", key)
        raise error_cls(
            response.status_code,
            response.text,
            reason="missing result.{}".format(key),
        )
    return str(value)
