"""Pydantic response models for the browser-facing HTTP API.

WHY: The FastAPI endpoints need typed schemas for response serialization
and automatic OpenAPI documentation. Pydantic models enforce field types at
runtime and generate the JSON Schema shown in the /docs UI.

HOW: One model per endpoint response plus a shared ErrorResponse. All
fields carry Field descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Status values are the service's own (NEW, PROCESSING, DONE, ERROR)
- Response models never expose tokens, auth keys or session ids
- Optional fields use Optional from typing, not PEP 604 unions
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TranscriptionCreatedResponse(BaseModel):
    """Returned when a file was uploaded and a recognition task started.

    RULES:
    - task_id is the service's recognition task id, used for polling
    - status is always 'NEW' on creation
    """

    task_id: str = Field(description="Recognition task id for status polling.")
    status: str = Field(description="Initial task status (always 'NEW').")
    filename: str = Field(description="Original uploaded filename.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "task_id": "b1a9c0de6f2a4b0e9c55f0a6f1d2e3c4",
                "status": "NEW",
                "filename": "interview.mp3",
            }
        ]
    }}


class TranscriptionStatusResponse(BaseModel):
    """Current state of a recognition task.

    RULES:
    - response_file_id is only present when status is 'DONE'
    - error is only present when status is 'ERROR'
    """

    task_id: str = Field(description="Recognition task id.")
    status: str = Field(description="One of NEW, PROCESSING, DONE, ERROR.")
    response_file_id: Optional[str] = Field(
        default=None,
        description="Result file id, only present when status is 'DONE'.",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error details, only present when status is 'ERROR'.",
    )


class TranscriptionResultResponse(BaseModel):
    """Normalized transcript for a finished task."""

    response_file_id: str = Field(description="The result file this transcript came from.")
    transcription: str = Field(description="Plain text transcript, one utterance per line.")
    segment_count: int = Field(description="Number of top-level items in the result document.")
    raw_result: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Parsed result document, only present when include_raw=true.",
    )


class EncodingInfo(BaseModel):
    """Description of a supported audio encoding."""

    key: str = Field(description="Encoding identifier used in requests.")
    label: str = Field(description="Human-readable encoding name.")
    requires_pcm_parameters: bool = Field(
        description="Whether sample_rate and channels_count are mandatory.",
    )


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
