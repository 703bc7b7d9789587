"""Shared test fixtures for the salute_transcriber test suite.

WHY: Most test modules talk to the speech API through the real client and
need the same fake service, config and sample result documents. Keeping them
here avoids duplication and keeps every test on the same wire format.

HOW: FakeSpeechAPI is an httpx.MockTransport handler that routes requests by
URL path to queued responses and records every request it sees. Tests queue
responses per endpoint, run the async code with asyncio.run(), and then
assert on the recorded requests.

RULES:
- The real network is never used
- Backoff and polling sleeps are recorded, never awaited for real
- Each test gets a fresh FakeSpeechAPI (no shared mutable state)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import pytest

from salute_transcriber.api.client import RecognitionJobClient
from salute_transcriber.config import ServiceConfig

TOKEN_URL = "https://auth.test/api/v2/oauth"
BASE_URL = "https://speech.test/rest/v1"

TOKEN_PATH = "/api/v2/oauth"
UPLOAD_PATH = "/rest/v1/data:upload"
SUBMIT_PATH = "/rest/v1/speech:async_recognize"
STATUS_PATH = "/rest/v1/task:get"
DOWNLOAD_PATH = "/rest/v1/data:download"


class FakeSpeechAPI:
    """Routes requests by path to queued canned responses.

    Each queued item is either a (status, kwargs) pair passed to
    httpx.Response, or an httpx.TransportError subclass to raise. The last
    item of a queue is repeated once the queue is drained.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, status: int = 200, **kwargs: Any) -> FakeSpeechAPI:
        self.routes.setdefault(path, []).append((status, kwargs))
        return self

    def fail(self, path: str, exc_type: type = httpx.ConnectError) -> FakeSpeechAPI:
        self.routes.setdefault(path, []).append(exc_type)
        return self

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"message": "no route"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, type) and issubclass(item, Exception):
            raise item("simulated transport failure", request=request)
        status, kwargs = item
        return httpx.Response(status, **kwargs)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(**overrides: Any) -> ServiceConfig:
    values: Dict[str, Any] = dict(
        auth_key="Y2xpZW50OnNlY3JldA==",
        token_url=TOKEN_URL,
        base_url=BASE_URL,
        scope="SALUTE_SPEECH_PERS",
        model="general",
        retry_attempts=3,
        retry_timeout=2.0,
        max_delay=30.0,
        token_safety_margin=300.0,
        polling_delay=5.0,
        recognition_timeout=3600.0,
    )
    values.update(overrides)
    return ServiceConfig(**values)


def make_client(
    api: FakeSpeechAPI,
    sleep: Optional[SleepRecorder] = None,
    clock: Optional[FakeClock] = None,
    **config_overrides: Any,
) -> RecognitionJobClient:
    return RecognitionJobClient(
        make_config(**config_overrides),
        transport=api.transport(),
        session_id="session-0001",
        sleep=sleep or SleepRecorder(),
        clock=clock or FakeClock(),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api() -> FakeSpeechAPI:
    """Fake speech API with a working token endpoint."""
    fake = FakeSpeechAPI()
    fake.add(TOKEN_PATH, json={"access_token": "token-1", "expires_in": 1800})
    return fake


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def flat_result() -> List[Dict[str, Any]]:
    """Flat result shape: one object per recognized segment."""
    return [
        {
            "text": "hello there",
            "normalized_text": "Hello there.",
            "start_ms": 120,
            "end_ms": 940,
            "speaker_tag": "1",
            "words": [
                {"text": "hello", "start_ms": 120, "end_ms": 500, "speaker_tag": "1"},
                {"text": "there", "start_ms": 510, "end_ms": 940, "speaker_tag": "1"},
            ],
        },
        {
            "text": "general kenobi",
            "normalized_text": "General Kenobi!",
            "start_ms": 1200,
            "end_ms": 2100,
            "speaker_tag": "2",
            "words": [
                {"text": "general", "start_ms": 1200, "end_ms": 1600, "speaker_tag": "2"},
                {"text": "kenobi", "start_ms": 1610, "end_ms": 2100, "speaker_tag": "2"},
            ],
        },
    ]


@pytest.fixture
def nested_result() -> List[Dict[str, Any]]:
    """Nested result shape: utterances grouped under speaker_info."""
    return [
        {
            "results": [
                {"text": "good morning", "normalized_text": "Good morning."},
            ],
            "channel": 0,
            "speaker_info": {"speaker_id": 1, "main_speaker_confidence": 0.92},
        },
        {
            "results": [
                {"text": "morning", "normalized_text": "Morning."},
                {"text": "how are you", "normalized_text": "How are you?"},
            ],
            "channel": 0,
            "speaker_info": {"speaker_id": 2, "main_speaker_confidence": 0.88},
        },
    ]
