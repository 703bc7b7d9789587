"""Speech API request and response dataclasses.

WHY: The speech API exchanges small JSON envelopes (upload, submit, status)
and one large result document. Typed dataclasses make these structures
explicit and catch field mismatches at the parsing boundary instead of deep
inside the formatter.

HOW: Each dataclass maps to one JSON object. Factory methods (from_dict)
parse raw API dicts; to_dict produces the same JSON shape back. The result
document comes in two shapes (flat segments and per-speaker blocks), so
parse_recognition_result resolves each item to ResultSegment or SpeakerBlock
exactly once, and nothing downstream re-inspects raw dicts.

RULES:
- Job status values are exactly NEW, PROCESSING, DONE, ERROR
- A result item with a "results" list is a SpeakerBlock, anything else is a
  ResultSegment
- Optional fields are None when absent and omitted again by to_dict
- speaker_tag is a string ("1", "2"); SpeakerBlock.speaker_id is an int,
  negative when the provider could not attribute the speech
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from salute_transcriber.config import RAW_PCM_ENCODINGS


class JobStatus(str, enum.Enum):
    """Server-side recognition task state.

    WHY: Jobs move forward through a fixed state machine with two terminal
    states. The enum makes the allowed transitions explicit.

    RULES:
    - NEW → PROCESSING → DONE | ERROR (NEW may jump straight to a terminal)
    - DONE and ERROR are terminal
    - A state may repeat (polling sees PROCESSING many times)
    """

    NEW = "NEW"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)

    def can_transition_to(self, other: JobStatus) -> bool:
        if self.is_terminal:
            return other is self
        order = [JobStatus.NEW, JobStatus.PROCESSING]
        if other.is_terminal:
            return True
        return order.index(other) >= order.index(self)


class AudioEncoding(str, enum.Enum):
    """Audio encodings accepted by the recognition endpoint."""

    MP3 = "MP3"
    WAV = "WAV"
    PCM_S16LE = "PCM_S16LE"
    OPUS = "OPUS"
    FLAC = "FLAC"

    @property
    def requires_pcm_parameters(self) -> bool:
        return self.value in RAW_PCM_ENCODINGS


@dataclass
class AccessToken:
    """A bearer token and the absolute time (epoch seconds) it expires."""

    value: str
    expires_at: float

    def is_expiring(self, now: float, margin: float) -> bool:
        return now + margin >= self.expires_at


@dataclass(frozen=True)
class RecognitionOptions:
    """Caller-supplied recognition settings for one job.

    WHY: The submit request embeds encoding details and the speaker
    separation toggle. Freezing the options keeps them identical between
    validation and submission.

    RULES:
    - sample_rate / channels_count are sent only when set
    - speaker_separation adds speaker_separation_options={"enable": true}
    - model None means "use the client's configured model"
    - hints is passed through verbatim when set
    """

    encoding: AudioEncoding
    sample_rate: Optional[int] = None
    channels_count: Optional[int] = None
    speaker_separation: bool = True
    model: Optional[str] = None
    hints: Optional[Dict[str, Any]] = None

    def to_request_options(self, default_model: str) -> Dict[str, Any]:
        """Build the "options" object of the submit request body."""
        options: Dict[str, Any] = {
            "model": self.model or default_model,
            "audio_encoding": AudioEncoding(self.encoding).value,
        }
        if self.sample_rate:
            options["sample_rate"] = self.sample_rate
        if self.channels_count:
            options["channels_count"] = self.channels_count
        if self.hints:
            options["hints"] = self.hints
        if self.speaker_separation:
            options["speaker_separation_options"] = {"enable": True}
        return options


@dataclass
class RecognitionJob:
    """Status snapshot of a recognition task from GET /task:get.

    RULES:
    - response_file_id is set if and only if status is DONE
    - error is only set when status is ERROR
    """

    job_id: str
    status: JobStatus
    response_file_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], job_id: str) -> RecognitionJob:
        """Parse the "result" object of a status response.

        Raises ValueError for an unknown status or a DONE status without
        response_file_id, and KeyError when status is missing.
        """
        status = JobStatus(data["status"])
        if status is JobStatus.DONE and not data.get("response_file_id"):
            raise ValueError("DONE status without response_file_id")
        return cls(
            job_id=data.get("id") or job_id,
            status=status,
            response_file_id=data.get("response_file_id") if status is JobStatus.DONE else None,
            error=data.get("error") if status is JobStatus.ERROR else None,
        )


# ---------------------------------------------------------------------------
# Result document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResultWord:
    """One recognized word with timing and optional speaker attribution."""

    text: str
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    speaker_tag: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ResultWord:
        return cls(
            text=data.get("text") or "",
            start_ms=data.get("start_ms"),
            end_ms=data.get("end_ms"),
            speaker_tag=_speaker_tag(data.get("speaker_tag")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "text": self.text,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "speaker_tag": self.speaker_tag,
        })


@dataclass(frozen=True)
class ResultSegment:
    """A contiguous span of recognized speech.

    WHY: This is the flat result shape, and also the shape of each entry in
    a SpeakerBlock's results list.

    RULES:
    - text is "" when the provider sent nothing
    - normalized_text is None when absent (the formatter falls back to text)
    - words keep provider order
    """

    text: str = ""
    normalized_text: Optional[str] = None
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    speaker_tag: Optional[str] = None
    channel_tag: Optional[str] = None
    words: tuple = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ResultSegment:
        if not isinstance(data, dict):
            raise ValueError("result segment must be an object, got {}".format(
                type(data).__name__
            ))
        words = data.get("words") or []
        return cls(
            text=data.get("text") or "",
            normalized_text=data.get("normalized_text"),
            start_ms=data.get("start_ms"),
            end_ms=data.get("end_ms"),
            speaker_tag=_speaker_tag(data.get("speaker_tag")),
            channel_tag=data.get("channel_tag"),
            words=tuple(ResultWord.from_dict(w) for w in words),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = _drop_none({
            "text": self.text,
            "normalized_text": self.normalized_text,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "speaker_tag": self.speaker_tag,
            "channel_tag": self.channel_tag,
        })
        if self.words:
            data["words"] = [w.to_dict() for w in self.words]
        return data


@dataclass(frozen=True)
class SpeakerBlock:
    """Recognized utterances attributed to one speaker (nested result shape).

    RULES:
    - speaker_id is None when speaker_info is absent
    - a negative speaker_id means the speech is not attributed to anyone
    """

    results: tuple = ()
    speaker_id: Optional[int] = None
    main_speaker_confidence: Optional[float] = None
    channel: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SpeakerBlock:
        info = data.get("speaker_info") or {}
        speaker_id = info.get("speaker_id")
        return cls(
            results=tuple(ResultSegment.from_dict(r) for r in data["results"]),
            speaker_id=int(speaker_id) if speaker_id is not None else None,
            main_speaker_confidence=info.get("main_speaker_confidence"),
            channel=data.get("channel"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"results": [r.to_dict() for r in self.results]}
        info = _drop_none({
            "speaker_id": self.speaker_id,
            "main_speaker_confidence": self.main_speaker_confidence,
        })
        if info:
            data["speaker_info"] = info
        if self.channel is not None:
            data["channel"] = self.channel
        return data


ResultItem = Union[ResultSegment, SpeakerBlock]
RecognitionResult = List[ResultItem]


def parse_recognition_result(data: Any) -> RecognitionResult:
    """Resolve a decoded result document into typed items.

    Raises ValueError when the document is not a list of objects.
    """
    if not isinstance(data, list):
        raise ValueError("expected a JSON array, got {}".format(type(data).__name__))

    items: RecognitionResult = []
    for raw in data:
        if isinstance(raw, dict) and isinstance(raw.get("results"), list):
            items.append(SpeakerBlock.from_dict(raw))
        else:
            items.append(ResultSegment.from_dict(raw))
    return items


def serialize_recognition_result(result: RecognitionResult) -> List[Dict[str, Any]]:
    """Inverse of parse_recognition_result."""
    return [item.to_dict() for item in result]


def _speaker_tag(value: Any) -> Optional[str]:
    # The provider sends speaker tags as strings or small ints
    if value is None or value == "":
        return None
    return str(value)


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}
