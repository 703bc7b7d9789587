"""Exception hierarchy for the speech API client.

WHY: Every step of the remote workflow can fail in its own way, and callers
(the HTTP API, the CLI) need to tell the failures apart to report them. No
failure is ever turned into an empty or default value.

HOW: One base class, SaluteSpeechError, with a subclass per failure kind.
Response-level failures carry the HTTP status code and raw body so the
message is enough to diagnose a provider rejection.

RULES:
- TransientNetworkError: transport failed on every attempt
- AuthError: credential grant failed (no stale token is substituted)
- UploadError / SubmissionError / StatusError / DownloadError: non-2xx after
  retries, or a success body missing the expected field
- ResultParseError: downloaded body is not a JSON array, raw body attached
"""

from __future__ import annotations


class SaluteSpeechError(Exception):
    """Base class for all speech API client failures."""


class TransientNetworkError(SaluteSpeechError):
    """Raised when a request fails at the transport level on every attempt."""

    def __init__(self, url: str, attempts: int) -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(
            "Request to {} failed after {} attempt(s)".format(url, attempts)
        )


class AuthError(SaluteSpeechError):
    """Raised when the access token cannot be obtained."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        detail = message
        if status_code is not None:
            detail = "{} (status {}): {}".format(message, status_code, body)
        super().__init__(detail)


class APIResponseError(SaluteSpeechError):
    """Raised when an API step returns an error or malformed response.

    Wraps the HTTP status code and raw response body.
    """

    operation = "API request"

    def __init__(self, status_code: int, body: str, reason: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.reason = reason
        message = "{} failed with status {}".format(self.operation, status_code)
        if reason:
            message = "{}: {}".format(message, reason)
        super().__init__("{} - {}".format(message, body))


class UploadError(APIResponseError):
    operation = "File upload"


class SubmissionError(APIResponseError):
    operation = "Recognition submission"


class StatusError(APIResponseError):
    operation = "Status check"


class DownloadError(APIResponseError):
    operation = "Result download"


class ResultParseError(SaluteSpeechError):
    """Raised when a downloaded result body is not a JSON array of segments."""

    def __init__(self, body: str, reason: str) -> None:
        self.body = body
        self.reason = reason
        super().__init__(
            "Failed to parse recognition result: {}. Received: {}".format(reason, body)
        )
