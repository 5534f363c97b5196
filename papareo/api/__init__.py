"""Papa Reo API client package: async HTTP interface to the Papa Reo ASR service.

WHY: Callers need short-utterance transcription and the long-recording
task workflow (submit, poll, cancel, download) behind one client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. PapaReoClient provides
one method per endpoint plus transcribe_recording(). Errors are typed in
errors.py, response values in models.py.

RULES:
- All HTTP calls go through PapaReoClient (no direct httpx usage elsewhere)
- Authentication is via the API token from config
"""

from papareo.api.client import PapaReoClient
from papareo.api.errors import (
    CancelError,
    DownloadError,
    PapaReoError,
    StatusCheckError,
    SubmissionError,
    TranscriptionCancelled,
    TranscriptionError,
    TransportError,
)
from papareo.api.models import TaskStatus, TranscribeResponse

__all__ = [
    "CancelError",
    "DownloadError",
    "PapaReoClient",
    "PapaReoError",
    "StatusCheckError",
    "SubmissionError",
    "TaskStatus",
    "TranscribeResponse",
    "TranscriptionCancelled",
    "TranscriptionError",
    "TransportError",
]
