"""Flatten a recognition result into plain, optionally speaker-labeled text.

WHY: The browser shows (and lets users download) a plain transcript, not the
provider's result tree. The provider returns either flat segments or
per-speaker blocks of utterances, and callers should not care which.

HOW: Walks the parsed result in order. A ResultSegment yields one line; a
SpeakerBlock yields one line per inner utterance, attributed to the block's
speaker. Each line is "Speaker {id}: " (when speakers are separated and the
item has a speaker) followed by the normalized text, falling back to the raw
text. Lines are joined with newlines and the result is right-trimmed.

RULES:
- An empty result yields NO_RESULTS_MESSAGE, never ""
- normalized_text wins over text; an utterance with neither yields no line
- Negative speaker ids (unattributed speech) get no label
- suppress_consecutive_duplicates drops a line equal (after trimming) to the
  previously emitted line; on by default
- speaker_filter, when set, keeps only SpeakerBlocks whose speaker id is in
  the set; flat segments are never filtered
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Optional

from salute_transcriber.api.models import RecognitionResult, ResultSegment, SpeakerBlock

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No transcription results found."


def _segment_body(segment: ResultSegment) -> str:
    return segment.normalized_text or segment.text or ""


class ResultNormalizer:
    """Turns a RecognitionResult into transcript text.

    Policies are fixed per instance; normalize() is pure.
    """

    def __init__(
        self,
        suppress_consecutive_duplicates: bool = True,
        speaker_filter: Optional[Iterable[int]] = None,
    ) -> None:
        self.suppress_consecutive_duplicates = suppress_consecutive_duplicates
        self.speaker_filter = (
            frozenset(speaker_filter) if speaker_filter is not None else None
        )

    def iter_lines(
        self,
        result: RecognitionResult,
        separate_speakers: bool,
    ) -> Iterator[str]:
        """Yield one line per recognized utterance, before de-duplication."""
        for index, item in enumerate(result):
            if isinstance(item, SpeakerBlock):
                if self.speaker_filter is not None and item.speaker_id not in self.speaker_filter:
                    logger.debug(
                        "Skipping item %d with speaker id %s", index + 1, item.speaker_id
                    )
                    continue
                speaker = (
                    str(item.speaker_id)
                    if item.speaker_id is not None and item.speaker_id >= 0
                    else None
                )
                for segment in item.results:
                    body = _segment_body(segment)
                    if body.strip():
                        yield _labeled(speaker, body, separate_speakers)
            else:
                body = _segment_body(item)
                if body.strip():
                    yield _labeled(item.speaker_tag, body, separate_speakers)

    def normalize(self, result: RecognitionResult, separate_speakers: bool) -> str:
        """Render the result as newline-separated transcript text."""
        if not result:
            logger.info("No transcription results found in the data")
            return NO_RESULTS_MESSAGE

        lines: list[str] = []
        previous: Optional[str] = None
        for line in self.iter_lines(result, separate_speakers):
            if (
                self.suppress_consecutive_duplicates
                and previous is not None
                and line.strip() == previous.strip()
            ):
                continue
            lines.append(line)
            previous = line

        return "\n".join(lines).rstrip()


def _labeled(speaker: Optional[str], body: str, separate_speakers: bool) -> str:
    if separate_speakers and speaker:
        return "Speaker {}: {}".format(speaker, body)
    return body


def normalize(
    result: RecognitionResult,
    separate_speakers: bool,
    suppress_consecutive_duplicates: bool = True,
) -> str:
    """Shortcut for ResultNormalizer(...).normalize(...) with default policies."""
    return ResultNormalizer(
        suppress_consecutive_duplicates=suppress_consecutive_duplicates,
    ).normalize(result, separate_speakers)
