"""Configuration constants, supported encodings, and .env loading.

WHY: Centralizes every tunable value (endpoints, retry policy, token safety
margin, polling cadence) so it is easy to find and override. The encodings
table is plain data, not buried in logic, so adding a format is a one-line
change.

HOW: python-dotenv loads the .env file on import. Defaults are module-level
constants read from the environment. ServiceConfig bundles them into one
immutable object that callers pass to the client explicitly; nothing in the
package reads the environment after construction.

RULES:
- SPEECH_API_AUTH_KEY is required and never hardcoded or logged
- Numeric variables must parse as numbers; a bad value raises ValueError
  naming the variable
- All durations are float seconds
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load .env from the working directory
load_dotenv()


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(
            "Environment variable {} is not a valid integer: {}".format(key, raw)
        ) from None


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        raise ValueError(
            "Environment variable {} is not a valid number: {}".format(key, raw)
        ) from None


# ---------------------------------------------------------------------------
# Audio encodings
# ---------------------------------------------------------------------------

SUPPORTED_ENCODINGS: dict[str, str] = {
    "MP3": "MP3",
    "WAV": "WAV (PCM_S16LE parameters detected by the service)",
    "PCM_S16LE": "WAV / PCM S16LE (requires sample rate and channel count)",
    "OPUS": "Opus",
    "FLAC": "FLAC",
}
"""Encoding identifier → human-readable label."""

RAW_PCM_ENCODINGS: frozenset[str] = frozenset({"PCM_S16LE"})
"""Encodings the service cannot probe; sample rate and channels are mandatory."""

MAX_UPLOAD_BYTES = 1024 * 1024 * 1024
"""Largest media file accepted for upload (1 GiB)."""

# ---------------------------------------------------------------------------
# API configuration defaults
# ---------------------------------------------------------------------------

SPEECH_API_TOKEN_URL = os.getenv(
    "SPEECH_API_TOKEN_URL", "https://ngw.devices.sberbank.ru:9443/api/v2/oauth"
)
SPEECH_API_BASE_URL = os.getenv(
    "SPEECH_API_BASE_URL", "https://smartspeech.sber.ru/rest/v1"
)
SPEECH_API_SCOPE = os.getenv("SPEECH_API_SCOPE", "SALUTE_SPEECH_PERS")
SPEECH_API_VERIFY_SSL = os.getenv("SPEECH_API_VERIFY_SSL", "true").lower() == "true"
RECOGNITION_MODEL = os.getenv("RECOGNITION_MODEL", "general")

RETRY_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
RETRY_ATTEMPTS = _env_int("RETRY_ATTEMPTS", 5)
RETRY_TIMEOUT = _env_float("RETRY_TIMEOUT", 2.0)
RETRY_MAX_DELAY = _env_float("RETRY_MAX_DELAY", 30.0)

TOKEN_SAFETY_MARGIN = _env_float("TOKEN_SAFETY_MARGIN", 300.0)
TOKEN_DEFAULT_LIFETIME = 1800.0
"""Token lifetime assumed when the grant response omits expires_in."""

RECOGNITION_POLLING_DELAY = _env_float("RECOGNITION_POLLING_DELAY", 5.0)
RECOGNITION_TIMEOUT = _env_float("RECOGNITION_TIMEOUT", 60 * 60)


def load_auth_key() -> str:
    """Load the client-credentials auth key from the environment.

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("SPEECH_API_AUTH_KEY", "").strip()
    if not key:
        raise ValueError(
            "Speech API auth key not configured. "
            "Add SPEECH_API_AUTH_KEY to the .env file in the app folder."
        )
    return key


@dataclass(frozen=True)
class ServiceConfig:
    """Connection, retry and polling settings for one client instance.

    WHY: The client, token manager and orchestrator all need the same
    settings. Passing one frozen object keeps them consistent and lets tests
    build a config without touching the environment.

    RULES:
    - auth_key is the pre-encoded Basic credential issued by the provider
    - retry_attempts counts retries, so a call makes at most
      retry_attempts + 1 requests
    - max_delay caps each individual backoff sleep
    """

    auth_key: str
    token_url: str = SPEECH_API_TOKEN_URL
    base_url: str = SPEECH_API_BASE_URL
    scope: str = SPEECH_API_SCOPE
    model: str = RECOGNITION_MODEL
    verify_ssl: bool = SPEECH_API_VERIFY_SSL
    retry_statuses: frozenset[int] = RETRY_STATUSES
    retry_attempts: int = RETRY_ATTEMPTS
    retry_timeout: float = RETRY_TIMEOUT
    max_delay: float = RETRY_MAX_DELAY
    token_safety_margin: float = TOKEN_SAFETY_MARGIN
    polling_delay: float = RECOGNITION_POLLING_DELAY
    recognition_timeout: float = RECOGNITION_TIMEOUT

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Build a config from the environment (populated by python-dotenv).

        Variables are re-read at call time; unset ones fall back to the
        module defaults above.
        """
        return cls(
            auth_key=load_auth_key(),
            token_url=os.getenv("SPEECH_API_TOKEN_URL", SPEECH_API_TOKEN_URL),
            base_url=os.getenv("SPEECH_API_BASE_URL", SPEECH_API_BASE_URL),
            scope=os.getenv("SPEECH_API_SCOPE", SPEECH_API_SCOPE),
            model=os.getenv("RECOGNITION_MODEL", RECOGNITION_MODEL),
            verify_ssl=os.getenv(
                "SPEECH_API_VERIFY_SSL", str(SPEECH_API_VERIFY_SSL)
            ).lower() == "true",
            retry_attempts=_env_int("RETRY_ATTEMPTS", RETRY_ATTEMPTS),
            retry_timeout=_env_float("RETRY_TIMEOUT", RETRY_TIMEOUT),
            max_delay=_env_float("RETRY_MAX_DELAY", RETRY_MAX_DELAY),
            token_safety_margin=_env_float("TOKEN_SAFETY_MARGIN", TOKEN_SAFETY_MARGIN),
            polling_delay=_env_float("RECOGNITION_POLLING_DELAY", RECOGNITION_POLLING_DELAY),
            recognition_timeout=_env_float("RECOGNITION_TIMEOUT", RECOGNITION_TIMEOUT),
        )
