"""Sequencing of one transcription: initiate, check status, fetch result.

WHY: The browser-facing API and the CLI both need the same three calls on
top of the job client, plus the encoding checks that must happen before any
remote call. Keeping them here means neither front-end talks to the job
client directly.

HOW: JobOrchestrator wraps an entered RecognitionJobClient and a
ResultNormalizer. initiate() validates the options, uploads and submits.
check_status() is a single poll. fetch_result() downloads and normalizes.
transcribe() chains them with fixed-interval polling for callers that want
the whole flow in one await (the CLI).

RULES:
- validate_options() runs before upload; raw PCM needs positive sample rate
  and channel count
- A job that reports ERROR ends the flow with TranscriptionFailedError
- transcribe() gives up after the configured recognition timeout
- Status regressions reported by the service are logged and ignored; the
  job's state only moves forward
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from salute_transcriber.api.client import RecognitionJobClient
from salute_transcriber.api.models import (
    AudioEncoding,
    JobStatus,
    RecognitionJob,
    RecognitionOptions,
    RecognitionResult,
)
from salute_transcriber.config import RECOGNITION_POLLING_DELAY, RECOGNITION_TIMEOUT
from salute_transcriber.core.normalizer import ResultNormalizer

logger = logging.getLogger(__name__)


class EncodingParameterError(ValueError):
    """Raised when options are incomplete for the selected encoding.

    Raised by validate_options before any API call is made.
    """


class TranscriptionFailedError(Exception):
    """Raised when the service reports the recognition task as ERROR."""

    def __init__(self, job_id: str, detail: str | None) -> None:
        self.job_id = job_id
        self.detail = detail
        super().__init__(
            "Transcription {} failed: {}".format(job_id, detail or "no details provided")
        )


class TranscriptionTimeoutError(TimeoutError):
    """Raised when a task does not finish within the recognition timeout."""


@dataclass
class TranscriptionResult:
    """Normalized transcript plus the parsed result it came from."""

    text: str
    result: RecognitionResult


def validate_options(options: RecognitionOptions) -> None:
    """Check encoding-dependent parameters before anything is uploaded."""
    encoding = AudioEncoding(options.encoding)
    for name in ("sample_rate", "channels_count"):
        value = getattr(options, name)
        if value is not None and value <= 0:
            raise EncodingParameterError("{} must be a positive integer.".format(name))
    if encoding.requires_pcm_parameters and (
        not options.sample_rate or not options.channels_count
    ):
        raise EncodingParameterError(
            "For {} encoding, Sample Rate and Channels Count are required.".format(
                encoding.value
            )
        )


class JobOrchestrator:
    """Runs the initiate / check status / fetch result contract for one client."""

    def __init__(
        self,
        client: RecognitionJobClient,
        normalizer: ResultNormalizer | None = None,
        polling_delay: float = RECOGNITION_POLLING_DELAY,
        timeout: float = RECOGNITION_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.normalizer = normalizer or ResultNormalizer()
        self.polling_delay = polling_delay
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    async def initiate(
        self,
        data: bytes,
        content_type: str,
        options: RecognitionOptions,
    ) -> str:
        """Validate, upload and submit; return the recognition task id."""
        validate_options(options)
        request_file_id = await self.client.upload(data, content_type)
        return await self.client.submit(request_file_id, options)

    async def check_status(self, job_id: str) -> RecognitionJob:
        return await self.client.poll_once(job_id)

    async def fetch_result(
        self,
        response_file_id: str,
        separate_speakers: bool,
    ) -> TranscriptionResult:
        result = await self.client.download_result(response_file_id)
        text = self.normalizer.normalize(result, separate_speakers)
        logger.info("Formatting complete. Text length: %d", len(text))
        return TranscriptionResult(text=text, result=result)

    async def wait_until_done(
        self,
        job_id: str,
        on_status: Callable[[str], None] | None = None,
    ) -> RecognitionJob:
        """Poll at a fixed interval until the task reaches a terminal state.

        Raises:
            TranscriptionFailedError: the task ended in ERROR.
            TranscriptionTimeoutError: the task outlived the timeout.
        """
        start = self._clock()
        current = JobStatus.NEW

        while True:
            elapsed = self._clock() - start
            if elapsed > self.timeout:
                raise TranscriptionTimeoutError(
                    "Transcription {} timed out after {:.0f}s (limit: {:.0f}s)".format(
                        job_id, elapsed, self.timeout
                    )
                )

            job = await self.check_status(job_id)
            if not current.can_transition_to(job.status):
                logger.warning(
                    "Ignoring status regression for task %s: %s -> %s",
                    job_id, current.value, job.status.value,
                )
            else:
                current = job.status
                if on_status:
                    on_status("Processing... Status: {}".format(current.value))

                if current is JobStatus.DONE:
                    return job
                if current is JobStatus.ERROR:
                    raise TranscriptionFailedError(job_id, job.error)

            await self._sleep(self.polling_delay)

    async def transcribe(
        self,
        data: bytes,
        content_type: str,
        options: RecognitionOptions,
        on_status: Callable[[str], None] | None = None,
    ) -> TranscriptionResult:
        """Run the whole flow for one file and return the transcript."""
        if on_status:
            on_status("Uploading file and initiating transcription...")
        job_id = await self.initiate(data, content_type, options)
        if on_status:
            on_status("Transcription initiated. Task ID: {}".format(job_id))

        job = await self.wait_until_done(job_id, on_status=on_status)

        if on_status:
            on_status("Transcription complete. Fetching results...")
        return await self.fetch_result(job.response_file_id, options.speaker_separation)
