"""Typed errors raised by the Papa Reo client.

WHY: Callers need to tell which remote step failed (submit, status,
cancel, download), whether the network itself failed, and whether the
long-recording workflow was cancelled locally, without parsing messages.

HOW: Every error derives from PapaReoError, which carries the HTTP status
code (None when there was no response), a detail string, and the JSON
body when the server sent one. from_response() builds an error from an
httpx.Response, preferring the server's "detail" field.

RULES:
- detail is the JSON "detail" field, else the first 200 chars of the body,
  else the reason phrase
- TransportError wraps httpx.HTTPError as __cause__ and has no status code
- TranscriptionCancelled is local; it never comes from the server
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

import httpx

_BODY_SUMMARY_CHARS = 200

E = TypeVar("E", bound="PapaReoError")


class PapaReoError(Exception):
    """Base class for every error raised by the Papa Reo client."""

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.detail = detail
        self.status_code = status_code
        self.body = body
        if status_code is None:
            super().__init__(detail)
        else:
            super().__init__(f"{status_code}: {detail}")

    @classmethod
    def from_response(cls: Type[E], response: httpx.Response) -> E:
        """Build an error from a non-success HTTP response."""
        body = _json_or_none(response)
        if isinstance(body, dict) and body.get("detail"):
            detail = str(body["detail"])
        elif response.text:
            detail = response.text[:_BODY_SUMMARY_CHARS]
        else:
            detail = response.reason_phrase
        return cls(
            detail,
            status_code=response.status_code,
            body=body if isinstance(body, dict) else None,
        )

    @classmethod
    def from_body(cls: Type[E], body: Dict[str, Any], status_code: int) -> E:
        """Build an error from a success response whose JSON lacks a field."""
        detail = body.get("detail") or str(body)
        return cls(str(detail), status_code=status_code, body=body)


class TransportError(PapaReoError):
    """The request never produced an HTTP response (network or I/O failure)."""


class TranscriptionError(PapaReoError):
    """POST /transcribe failed or returned no transcription."""


class SubmissionError(PapaReoError):
    """POST /transcribe/large did not accept the recording."""


class StatusCheckError(PapaReoError):
    """A task status could not be read, or the task ended without success.

    status holds the last observed task status when the workflow stopped on
    a non-SUCCESS terminal status (or ran out of attempts).
    """

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        body: Optional[Dict[str, Any]] = None,
        status: Optional[str] = None,
    ) -> None:
        super().__init__(detail, status_code=status_code, body=body)
        self.status = status


class CancelError(PapaReoError):
    """POST /transcribe/large/{task_id}/cancel failed."""


class DownloadError(PapaReoError):
    """GET /transcribe/large/{task_id}/download failed."""


class TranscriptionCancelled(PapaReoError):
    """The long-recording workflow was cancelled with PapaReoClient.cancel()."""

    def __init__(self, detail: str = "Cancelled") -> None:
        super().__init__(detail)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
