"""Tests for the browser-facing FastAPI application.

WHY: The browser UI only sees these endpoints. Status codes and bodies must
say exactly what went wrong: bad input (400/413) versus a speech service
failure (502), and the transcript must match what the normalizer produces.

HOW: create_app() is given a client_factory that builds a
RecognitionJobClient on the FakeSpeechAPI. The TestClient is used as a
context manager so the app's lifespan enters and closes the client.

RULES:
- All tests use the FastAPI TestClient (synchronous)
- The real speech service is never called
- Each test gets a fresh app and a fresh fake service
"""

from __future__ import annotations

import io
import json

import pytest
from fastapi.testclient import TestClient

from conftest import (
    DOWNLOAD_PATH,
    STATUS_PATH,
    SUBMIT_PATH,
    UPLOAD_PATH,
    make_client,
)
from salute_transcriber import __version__
from salute_transcriber.server.app import create_app


@pytest.fixture
def http(api):
    """TestClient for an app wired to the fake speech API."""
    app = create_app(client_factory=lambda: make_client(api))
    with TestClient(app) as client:
        yield client


def _audio(name: str = "interview.mp3", content: bytes = b"fake audio data", ctype: str = "audio/mpeg"):
    return {"file": (name, io.BytesIO(content), ctype)}


# ---------------------------------------------------------------------------
# POST /transcriptions
# ---------------------------------------------------------------------------


class TestCreateTranscription:
    """POST /transcriptions uploads and submits in one call."""

    def test_returns_201_with_task_id(self, http, api):
        api.add(UPLOAD_PATH, json={"result": {"request_file_id": "f1"}})
        api.add(SUBMIT_PATH, json={"result": {"id": "job1"}})

        resp = http.post("/transcriptions", files=_audio(), data={"encoding": "MP3"})

        assert resp.status_code == 201
        assert resp.json() == {"task_id": "job1", "status": "NEW", "filename": "interview.mp3"}
        upload = api.requests_to(UPLOAD_PATH)[0]
        assert upload.headers["Content-Type"] == "audio/mpeg"
        assert upload.content == b"fake audio data"

    def test_form_options_forwarded(self, http, api):
        api.add(UPLOAD_PATH, json={"result": {"request_file_id": "f1"}})
        api.add(SUBMIT_PATH, json={"result": {"id": "job1"}})

        resp = http.post(
            "/transcriptions",
            files=_audio("call.pcm", ctype="audio/L16"),
            data={
                "encoding": "pcm_s16le",
                "sample_rate": "8000",
                "channels_count": "2",
                "speaker_separation": "false",
            },
        )

        assert resp.status_code == 201
        sent = json.loads(api.requests_to(SUBMIT_PATH)[0].content)["options"]
        assert sent == {
            "model": "general",
            "audio_encoding": "PCM_S16LE",
            "sample_rate": 8000,
            "channels_count": 2,
        }

    def test_pcm_without_parameters_is_400(self, http, api):
        resp = http.post("/transcriptions", files=_audio(), data={"encoding": "PCM_S16LE"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == (
            "For PCM_S16LE encoding, Sample Rate and Channels Count are required."
        )
        assert api.requests_to(UPLOAD_PATH) == []

    def test_unknown_encoding_is_400(self, http):
        resp = http.post("/transcriptions", files=_audio(), data={"encoding": "AAC"})
        assert resp.status_code == 400
        assert "Unsupported encoding" in resp.json()["detail"]

    def test_empty_file_is_400(self, http):
        resp = http.post("/transcriptions", files=_audio(content=b""))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No file uploaded."

    def test_missing_file_is_422(self, http):
        resp = http.post("/transcriptions", data={"encoding": "MP3"})
        assert resp.status_code == 422

    def test_oversize_file_is_413(self, http, monkeypatch):
        monkeypatch.setattr("salute_transcriber.server.app.MAX_UPLOAD_BYTES", 4)
        resp = http.post("/transcriptions", files=_audio(content=b"12345"))
        assert resp.status_code == 413

    def test_oversize_file_rejected_without_reading(self, http, api, monkeypatch):
        async def _no_read(self, size=-1):
            raise AssertionError("oversize upload was read into memory")

        monkeypatch.setattr("salute_transcriber.server.app.MAX_UPLOAD_BYTES", 4)
        monkeypatch.setattr("starlette.datastructures.UploadFile.read", _no_read)
        resp = http.post("/transcriptions", files=_audio(content=b"12345"))
        assert resp.status_code == 413
        assert resp.json()["detail"] == "Maximum file size is 1GB."
        assert api.requests_to(UPLOAD_PATH) == []

    def test_upload_failure_is_502(self, http, api):
        api.add(UPLOAD_PATH, status=400, text="unsupported media type")
        resp = http.post("/transcriptions", files=_audio())
        assert resp.status_code == 502
        assert "unsupported media type" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# GET /transcriptions/{task_id}
# ---------------------------------------------------------------------------


class TestTranscriptionStatus:
    """GET /transcriptions/{task_id} is a single status check."""

    def test_processing(self, http, api):
        api.add(STATUS_PATH, json={"result": {"id": "job1", "status": "PROCESSING"}})
        resp = http.get("/transcriptions/job1")
        assert resp.status_code == 200
        assert resp.json() == {
            "task_id": "job1",
            "status": "PROCESSING",
            "response_file_id": None,
            "error": None,
        }
        assert len(api.requests_to(STATUS_PATH)) == 1

    def test_done(self, http, api):
        api.add(STATUS_PATH, json={"result": {"id": "job1", "status": "DONE", "response_file_id": "r1"}})
        body = http.get("/transcriptions/job1").json()
        assert body["status"] == "DONE"
        assert body["response_file_id"] == "r1"

    def test_error_detail(self, http, api):
        api.add(STATUS_PATH, json={"result": {"id": "job1", "status": "ERROR", "error": "bad audio"}})
        body = http.get("/transcriptions/job1").json()
        assert body["status"] == "ERROR"
        assert body["error"] == "bad audio"

    def test_done_without_response_file_id_is_502(self, http, api):
        api.add(STATUS_PATH, json={"result": {"id": "job1", "status": "DONE"}})
        resp = http.get("/transcriptions/job1")
        assert resp.status_code == 502
        assert "response_file_id" in resp.json()["detail"]

    def test_service_failure_is_502(self, http, api):
        api.add(STATUS_PATH, status=404, text="task not found")
        resp = http.get("/transcriptions/nope")
        assert resp.status_code == 502


# ---------------------------------------------------------------------------
# GET /results/{response_file_id}
# ---------------------------------------------------------------------------


class TestTranscriptionResult:
    """GET /results/{id} returns the normalized transcript."""

    def test_transcript_with_speakers(self, http, api, flat_result):
        api.add(DOWNLOAD_PATH, json=flat_result)
        resp = http.get("/results/r1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["transcription"] == "Speaker 1: Hello there.\nSpeaker 2: General Kenobi!"
        assert body["segment_count"] == 2
        assert body["raw_result"] is None

    def test_without_speakers(self, http, api, flat_result):
        api.add(DOWNLOAD_PATH, json=flat_result)
        body = http.get("/results/r1", params={"separate_speakers": "false"}).json()
        assert body["transcription"] == "Hello there.\nGeneral Kenobi!"

    def test_include_raw(self, http, api, nested_result):
        api.add(DOWNLOAD_PATH, json=nested_result)
        body = http.get("/results/r1", params={"include_raw": "true"}).json()
        assert body["raw_result"] == nested_result

    def test_empty_result_sentinel(self, http, api):
        api.add(DOWNLOAD_PATH, json=[])
        body = http.get("/results/r1").json()
        assert body["transcription"] == "No transcription results found."
        assert body["segment_count"] == 0

    def test_unparseable_result_is_502(self, http, api):
        api.add(DOWNLOAD_PATH, text="not json at all")
        resp = http.get("/results/r1")
        assert resp.status_code == 502
        assert "not json at all" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# Discovery and health
# ---------------------------------------------------------------------------


class TestDiscovery:

    def test_encodings(self, http):
        body = http.get("/encodings").json()
        assert [e["key"] for e in body] == ["MP3", "WAV", "PCM_S16LE", "OPUS", "FLAC"]
        pcm = [e for e in body if e["key"] == "PCM_S16LE"][0]
        assert pcm["requires_pcm_parameters"] is True

    def test_health(self, http):
        resp = http.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    def test_one_token_per_app(self, http, api):
        api.add(STATUS_PATH, json={"result": {"id": "job1", "status": "PROCESSING"}})
        http.get("/transcriptions/job1")
        http.get("/transcriptions/job1")
        assert len(api.requests_to("/api/v2/oauth")) == 1


class TestLifespan:

    def test_without_lifespan_is_503(self, api):
        app = create_app(client_factory=lambda: make_client(api))
        client = TestClient(app)
        resp = client.get("/transcriptions/job1")
        assert resp.status_code == 503
