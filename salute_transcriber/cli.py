"""Command-line interface for the Salute Speech Transcriber.

WHY: Users (and smoke tests against the real service) need a way to
transcribe a local file without running the web server. The CLI runs the
whole upload → submit → poll → download → normalize flow behind one command.

HOW: argparse collects the input file and recognition options, the content
type is guessed from the file name, and the async flow runs via
asyncio.run(). Status messages go to stderr; the transcript goes to stdout
or to --output.

RULES:
- Positional argument: input audio/video file path
- Encoding parameters are validated before the file is uploaded
- Status output goes to stderr (not stdout)
- Exit code 1 on any failure, with the error message on stderr
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from salute_transcriber.api.client import RecognitionJobClient
from salute_transcriber.api.errors import SaluteSpeechError
from salute_transcriber.api.models import AudioEncoding, RecognitionOptions
from salute_transcriber.config import MAX_UPLOAD_BYTES, ServiceConfig
from salute_transcriber.core.normalizer import ResultNormalizer
from salute_transcriber.orchestrator import (
    JobOrchestrator,
    TranscriptionFailedError,
    TranscriptionTimeoutError,
    validate_options,
)


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed immediately."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def guess_content_type(path: Path) -> str:
    """Guess the media type the service should decode the upload as."""
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or "application/octet-stream"


async def _run_pipeline(args: argparse.Namespace) -> None:
    input_path = Path(args.input_file).resolve()
    if not input_path.is_file():
        _fail("File not found: {}".format(input_path))
    if input_path.stat().st_size > MAX_UPLOAD_BYTES:
        _fail("File too large: maximum file size is 1GB.")

    options = RecognitionOptions(
        encoding=AudioEncoding(args.encoding),
        sample_rate=args.sample_rate,
        channels_count=args.channels,
        speaker_separation=args.speakers,
    )
    try:
        validate_options(options)
        config = ServiceConfig.from_env()
    except ValueError as exc:
        _fail(str(exc))

    normalizer = ResultNormalizer(
        suppress_consecutive_duplicates=not args.keep_duplicates,
    )
    data = input_path.read_bytes()
    content_type = guess_content_type(input_path)

    try:
        async with RecognitionJobClient(config) as client:
            orchestrator = JobOrchestrator(
                client,
                normalizer=normalizer,
                polling_delay=config.polling_delay,
                timeout=config.recognition_timeout,
            )
            outcome = await orchestrator.transcribe(
                data, content_type, options, on_status=_status,
            )
    except (SaluteSpeechError, TranscriptionFailedError, TranscriptionTimeoutError) as exc:
        _fail(str(exc))

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(outcome.text + "\n", encoding="utf-8")
        _status("Saved: {}".format(output_path))
    else:
        print(outcome.text)
    _status("Transcription successful!")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="salute_transcriber",
        description="Transcribe an audio/video file with the cloud speech "
                    "recognition service and print the transcript.",
    )

    parser.add_argument(
        "input_file",
        help="Path to the audio or video file to transcribe.",
    )

    parser.add_argument(
        "--encoding",
        default=AudioEncoding.MP3.value,
        choices=[e.value for e in AudioEncoding],
        help="Audio encoding of the input (default: %(default)s).",
    )

    parser.add_argument(
        "--sample-rate",
        type=int,
        default=None,
        help="Sample rate in Hz (required for PCM_S16LE).",
    )

    parser.add_argument(
        "--channels",
        type=int,
        default=None,
        help="Number of audio channels (required for PCM_S16LE).",
    )

    parser.add_argument(
        "--speakers",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Separate speakers and label each line (default: %(default)s).",
    )

    parser.add_argument(
        "--keep-duplicates",
        action="store_true",
        help="Keep consecutive identical lines instead of dropping repeats.",
    )

    parser.add_argument(
        "--output",
        default=None,
        help="Write the transcript to this file instead of stdout.",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log HTTP attempts and token refreshes to stderr.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    asyncio.run(_run_pipeline(args))


if __name__ == "__main__":
    main()
