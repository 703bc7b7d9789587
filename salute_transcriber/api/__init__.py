"""Speech API client package: async HTTP interface to the recognition service.

WHY: Uploading media, starting recognition, checking status and downloading
results all need a bearer token, retry handling and error typing. This
package keeps all of that behind one client class.

HOW: RetryingHttpClient (http.py) applies the retry policy, TokenManager
(auth.py) keeps a fresh token, and RecognitionJobClient (client.py) builds
the four workflow calls on top of both. Typed request/response objects live
in models.py and the exception hierarchy in errors.py.

RULES:
- All speech API HTTP calls go through RecognitionJobClient
- Only TokenManager talks to the credential endpoint
"""

from salute_transcriber.api.client import RecognitionJobClient
from salute_transcriber.api.models import (
    AudioEncoding,
    JobStatus,
    RecognitionJob,
    RecognitionOptions,
    ResultSegment,
    SpeakerBlock,
)

__all__ = [
    "AudioEncoding",
    "JobStatus",
    "RecognitionJob",
    "RecognitionJobClient",
    "RecognitionOptions",
    "ResultSegment",
    "SpeakerBlock",
]
