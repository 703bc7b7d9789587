"""FastAPI application exposing initiate / check status / fetch result.

WHY: The browser UI uploads a file, polls until the recognition task is
done, and then shows the transcript. It needs three HTTP endpoints in front
of the job orchestrator, plus small discovery endpoints for the form
(supported encodings) and a health check.

HOW: create_app() builds the FastAPI app. Its lifespan enters one
RecognitionJobClient (built by client_factory, by default from the
environment) and stores a JobOrchestrator on app.state; endpoints receive it
through a dependency. Core errors are mapped to HTTP statuses in one place.

RULES:
- No process-wide client: each app instance owns its client and token
- Invalid encoding parameters → 400, oversize upload → 413,
  any speech API failure → 502 with the error message as detail
- Polling cadence is the browser's; the server never loops on a task
- Endpoint signatures use Optional from typing, not PEP 604 unions
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile

from salute_transcriber import __version__
from salute_transcriber.api.client import RecognitionJobClient
from salute_transcriber.api.errors import SaluteSpeechError
from salute_transcriber.api.models import (
    AudioEncoding,
    RecognitionOptions,
    serialize_recognition_result,
)
from salute_transcriber.config import MAX_UPLOAD_BYTES, SUPPORTED_ENCODINGS, ServiceConfig
from salute_transcriber.core.normalizer import ResultNormalizer
from salute_transcriber.orchestrator import EncodingParameterError, JobOrchestrator
from salute_transcriber.server.models import (
    EncodingInfo,
    ErrorResponse,
    HealthResponse,
    TranscriptionCreatedResponse,
    TranscriptionResultResponse,
    TranscriptionStatusResponse,
)

logger = logging.getLogger(__name__)


def _default_client_factory() -> RecognitionJobClient:
    return RecognitionJobClient(ServiceConfig.from_env())


def get_orchestrator(request: Request) -> JobOrchestrator:
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Speech client is not initialised")
    return orchestrator


OrchestratorDep = Annotated[JobOrchestrator, Depends(get_orchestrator)]


def _upstream_error(exc: SaluteSpeechError) -> HTTPException:
    logger.error("Speech API call failed: %s", exc)
    return HTTPException(status_code=502, detail=str(exc))


def create_app(
    client_factory: Optional[Callable[[], RecognitionJobClient]] = None,
    normalizer: Optional[ResultNormalizer] = None,
) -> FastAPI:
    """Build the HTTP API around a client produced by ``client_factory``.

    The client is created and entered on startup and closed on shutdown.
    """
    factory = client_factory or _default_client_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with factory() as client:
            app.state.orchestrator = JobOrchestrator(client, normalizer=normalizer)
            logger.info("Speech client ready (session %s)", client.session_id)
            yield
            app.state.orchestrator = None

    app = FastAPI(
        lifespan=lifespan,
        title="Salute Speech Transcriber API",
        description=(
            "Upload an audio or video file for asynchronous speech recognition, "
            "poll the recognition task, and fetch the transcript as plain text."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.orchestrator = None

    # -----------------------------------------------------------------------
    # Endpoints: Transcriptions
    # -----------------------------------------------------------------------

    @app.post(
        "/transcriptions",
        response_model=TranscriptionCreatedResponse,
        status_code=201,
        tags=["transcriptions"],
        summary="Upload a file and start recognition",
        description=(
            "Upload an audio or video file with encoding options. Returns the "
            "recognition task id immediately. Poll GET /transcriptions/{task_id} "
            "until the status is DONE."
        ),
        responses={
            400: {"model": ErrorResponse, "description": "Invalid file or encoding parameters"},
            413: {"model": ErrorResponse, "description": "File too large"},
            502: {"model": ErrorResponse, "description": "Speech API failure"},
        },
    )
    async def create_transcription(
        orchestrator: OrchestratorDep,
        file: Annotated[UploadFile, File(description="Audio or video file to transcribe")],
        encoding: Annotated[
            str,
            Form(description="Audio encoding: MP3, WAV, PCM_S16LE, OPUS or FLAC."),
        ] = AudioEncoding.MP3.value,
        speaker_separation: Annotated[
            bool,
            Form(description="Tag utterances with speaker ids."),
        ] = True,
        sample_rate: Annotated[
            Optional[int],
            Form(description="Sample rate in Hz (required for PCM_S16LE)."),
        ] = None,
        channels_count: Annotated[
            Optional[int],
            Form(description="Number of audio channels (required for PCM_S16LE)."),
        ] = None,
    ) -> TranscriptionCreatedResponse:
        filename = Path(file.filename or "upload").name

        try:
            audio_encoding = AudioEncoding(encoding.strip().upper())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail="Unsupported encoding '{}'. Supported encodings: {}".format(
                    encoding, ", ".join(SUPPORTED_ENCODINGS)
                ),
            )

        options = RecognitionOptions(
            encoding=audio_encoding,
            sample_rate=sample_rate,
            channels_count=channels_count,
            speaker_separation=speaker_separation,
        )

        # Reject by declared size before buffering the upload
        if file.size is not None and file.size > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="Maximum file size is 1GB.")

        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="No file uploaded.")
        if len(content) > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="Maximum file size is 1GB.")

        content_type = file.content_type or "application/octet-stream"
        logger.info(
            "File received: %s, size: %d, type: %s", filename, len(content), content_type
        )

        try:
            task_id = await orchestrator.initiate(content, content_type, options)
        except EncodingParameterError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except SaluteSpeechError as exc:
            raise _upstream_error(exc)

        return TranscriptionCreatedResponse(task_id=task_id, status="NEW", filename=filename)

    @app.get(
        "/transcriptions/{task_id}",
        response_model=TranscriptionStatusResponse,
        tags=["transcriptions"],
        summary="Get recognition task status",
        responses={
            502: {"model": ErrorResponse, "description": "Speech API failure"},
        },
    )
    async def get_transcription_status(
        task_id: str,
        orchestrator: OrchestratorDep,
    ) -> TranscriptionStatusResponse:
        try:
            job = await orchestrator.check_status(task_id)
        except SaluteSpeechError as exc:
            raise _upstream_error(exc)
        return TranscriptionStatusResponse(
            task_id=job.job_id,
            status=job.status.value,
            response_file_id=job.response_file_id,
            error=job.error,
        )

    @app.get(
        "/results/{response_file_id}",
        response_model=TranscriptionResultResponse,
        tags=["transcriptions"],
        summary="Fetch the transcript of a finished task",
        description=(
            "Downloads the recognition result for a DONE task and returns it as "
            "plain text, optionally prefixed with speaker labels."
        ),
        responses={
            502: {"model": ErrorResponse, "description": "Speech API failure or unparseable result"},
        },
    )
    async def get_transcription_result(
        response_file_id: str,
        orchestrator: OrchestratorDep,
        separate_speakers: Annotated[
            bool, Query(description="Prefix each line with 'Speaker N: '.")
        ] = True,
        include_raw: Annotated[
            bool, Query(description="Include the parsed result document.")
        ] = False,
    ) -> TranscriptionResultResponse:
        try:
            outcome = await orchestrator.fetch_result(response_file_id, separate_speakers)
        except SaluteSpeechError as exc:
            raise _upstream_error(exc)
        return TranscriptionResultResponse(
            response_file_id=response_file_id,
            transcription=outcome.text,
            segment_count=len(outcome.result),
            raw_result=serialize_recognition_result(outcome.result) if include_raw else None,
        )

    # -----------------------------------------------------------------------
    # Endpoints: Encodings and health
    # -----------------------------------------------------------------------

    @app.get(
        "/encodings",
        response_model=List[EncodingInfo],
        tags=["encodings"],
        summary="List supported audio encodings",
    )
    async def list_encodings() -> List[EncodingInfo]:
        return [
            EncodingInfo(
                key=encoding.value,
                label=SUPPORTED_ENCODINGS.get(encoding.value, encoding.value),
                requires_pcm_parameters=encoding.requires_pcm_parameters,
            )
            for encoding in AudioEncoding
        ]

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return app


app = create_app()


def run_api():
    """Entry point for the salute-transcriber-api console script."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
