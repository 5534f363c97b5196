"""Papa Reo API response types and task status values.

WHY: The API returns small JSON objects whose fields the client needs to
read by name: the long-task status strings and the short transcription
response. Typed values make the polling loop and the callers explicit.

HOW: TaskStatus is a str enum, so members compare equal to the raw status
strings the server sends. poll_status() still returns the server's string
verbatim; the helpers here classify it. TranscribeResponse maps the
/transcribe response with a from_dict factory.

RULES:
- PENDING and STARTED are the only "still working" statuses
- Any status outside PENDING/STARTED/SUCCESS is terminal
- Unknown statuses (e.g. FAILURE) are terminal but unrecognised
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class TaskStatus(str, enum.Enum):
    """Status values reported by /transcribe/large/{task_id}/status."""

    PENDING = "PENDING"
    STARTED = "STARTED"
    SUCCESS = "SUCCESS"
    REVOKED = "REVOKED"


WAITING_STATUSES = frozenset({TaskStatus.PENDING.value, TaskStatus.STARTED.value})
KNOWN_STATUSES = frozenset(s.value for s in TaskStatus)


def is_waiting(status: Optional[str]) -> bool:
    """True while the server is still queueing or running the task."""
    return status in WAITING_STATUSES


def is_recognised(status: Optional[str]) -> bool:
    return status in KNOWN_STATUSES


@dataclass
class TranscribeResponse:
    """Response of POST /transcribe (short utterance transcription).

    WHY: The endpoint returns the transcript text, a success flag, and,
    when with_metadata is requested, alignment and confidence data whose
    shape the client does not interpret.

    HOW: Known fields are lifted out; everything else is kept verbatim in
    metadata so callers can read whatever the API adds.

    RULES:
    - transcription is None only when the server omitted it
    - success defaults to False when absent
    - metadata never contains "transcription" or "success"
    """

    transcription: Optional[str]
    success: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TranscribeResponse:
        return cls(
            transcription=data.get("transcription"),
            success=bool(data.get("success", False)),
            metadata={
                k: v for k, v in data.items()
                if k not in ("transcription", "success")
            },
        )
