"""Async HTTP client for the Papa Reo speech-recognition API.

WHY: Callers need to transcribe short utterances in one call, and to run
long recordings through the task workflow (submit, poll status, cancel,
download) without knowing endpoints, status codes, or multipart details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. PapaReoClient is an
async context manager: enter it to open the connection pool, exit to
close it. Each remote operation is one method that makes exactly one
request and either returns the parsed field or raises a typed error.
transcribe_recording() chains them: submit → await_completion → download.

RULES:
- Always use the async context manager (async with PapaReoClient(...) as client:)
- No retries: a failed request raises immediately
- The polling loop re-checks only while the status is PENDING or STARTED
- At most one task is in flight per client; cancel() retires it
- The token is resolved once at construction (see papareo.config)
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Dict, Optional, Type, Union

import httpx

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
from papareo.api.inflight import InFlightTask
from papareo.api.models import TaskStatus, TranscribeResponse, is_recognised, is_waiting
from papareo.config import (
    DEFAULT_POLL_INTERVAL_S,
    PAPAREO_BASE_URL,
    USER_AGENT,
    resolve_token,
)

logger = logging.getLogger(__name__)

AudioSource = Union[str, "os.PathLike[str]", bytes, IO[bytes]]
StatusCallback = Callable[[str], None]

_AUDIO_FIELD = "audio_file"
_AUDIO_FILENAME = "audio_file.wav"
_AUDIO_CONTENT_TYPE = "audio/wav"


class PapaReoClient:
    """Async client for the Papa Reo transcription API.

    WHY: Provides one typed entry point for every Papa Reo endpoint plus
    the long-recording workflow with cooperative cancellation.

    HOW: Wraps httpx.AsyncClient. The Authorization header is built per
    request so set_token() takes effect on an open client. The id of the
    task being monitored lives in an InFlightTask cell shared by
    await_completion(), cancel() and transcribe_recording().

    RULES:
    - token defaults to the papareo.config lookup chain
    - base_url defaults to PAPAREO_BASE_URL
    - transport is passed to httpx (tests inject httpx.MockTransport)
    - sleep is the async delay used between polls (tests inject a fake clock)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self._token = resolve_token(token)
        self._base_url = (base_url or PAPAREO_BASE_URL).rstrip("/") + "/"
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._client: Optional[httpx.AsyncClient] = None
        self._in_flight = InFlightTask()

    async def __aenter__(self) -> PapaReoClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    def set_token(self, token: Optional[str]) -> PapaReoClient:
        """Replace the API token; None or blank values are ignored."""
        if token is not None and token.strip():
            self._token = token.strip()
        return self

    @property
    def has_token(self) -> bool:
        return self._token is not None

    @property
    def current_task_id(self) -> Optional[str]:
        """The id of the task currently in flight, if any."""
        return self._in_flight.get()

    # ------------------------------------------------------------------
    # Short utterances
    # ------------------------------------------------------------------

    async def transcribe(
        self,
        audio: AudioSource,
        with_metadata: bool = False,
    ) -> TranscribeResponse:
        """Transcribe a short utterance with POST /transcribe.

        WHY: Short clips are transcribed synchronously, bilingual English
        and Māori, optionally with timing and confidence metadata.

        HOW: Sends the audio as multipart field audio_file alongside the
        with_metadata text field and parses the JSON response.

        RULES:
        - Expects HTTP 200; anything else raises TranscriptionError
        - Extra response fields are kept in TranscribeResponse.metadata

        Args:
            audio: Path, bytes, or binary stream of the WAV audio.
            with_metadata: Ask the API for alignment/confidence data.

        Returns:
            The parsed TranscribeResponse.
        """
        logger.debug("transcribe: with_metadata=%s", with_metadata)
        with _open_audio(audio) as stream:
            resp = await self._request(
                "POST",
                "/transcribe",
                files={_AUDIO_FIELD: (_AUDIO_FILENAME, stream, _AUDIO_CONTENT_TYPE)},
                data={"with_metadata": "true" if with_metadata else "false"},
            )
        if resp.status_code != 200:
            raise TranscriptionError.from_response(resp)
        return TranscribeResponse.from_dict(_json_object(resp, TranscriptionError))

    async def transcribe_utterance(self, audio: AudioSource) -> str:
        """Transcribe a short utterance and return only the text."""
        resp = await self.transcribe(audio, with_metadata=False)
        if resp.transcription is None:
            raise TranscriptionError.from_body(resp.metadata, 200)
        return resp.transcription

    # ------------------------------------------------------------------
    # Long recordings: step 1, submit
    # ------------------------------------------------------------------

    async def submit(self, audio: AudioSource) -> str:
        """Start a large-audio transcription task and return its task id.

        WHY: Recordings longer than an utterance are processed as a
        server-side task that the client then monitors by id.

        HOW: POSTs the audio to /transcribe/large. The server answers
        202 Accepted with a task_id, which becomes the in-flight task.

        RULES:
        - The audio stream is read once, fully
        - Any status other than 202 raises SubmissionError
        - A 202 body without task_id raises SubmissionError
        - Replaces any previously in-flight task id

        Args:
            audio: Path, bytes, or binary stream of the WAV recording.

        Returns:
            The server-assigned task id.
        """
        with _open_audio(audio) as stream:
            resp = await self._request(
                "POST",
                "/transcribe/large",
                files={_AUDIO_FIELD: (_AUDIO_FILENAME, stream, _AUDIO_CONTENT_TYPE)},
            )
        if resp.status_code != 202:
            raise SubmissionError.from_response(resp)

        data = _json_object(resp, SubmissionError)
        if not data.get("task_id"):
            raise SubmissionError.from_body(data, resp.status_code)

        task_id = str(data["task_id"])
        self._in_flight.set(task_id)
        logger.info("Submitted recording as task %s", task_id)
        return task_id

    # ------------------------------------------------------------------
    # Step 2: status
    # ------------------------------------------------------------------

    async def poll_status(self, task_id: str) -> str:
        """Check a task's status once and return it verbatim.

        Known values are PENDING, STARTED, SUCCESS and REVOKED; anything
        else the server sends is returned unchanged.
        """
        resp = await self._request("GET", f"/transcribe/large/{task_id}/status")
        if resp.status_code != 200:
            raise StatusCheckError.from_response(resp)

        data = _json_object(resp, StatusCheckError)
        if "status" not in data:
            raise StatusCheckError.from_body(data, resp.status_code)
        return str(data["status"])

    async def await_completion(
        self,
        task_id: str,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        max_attempts: Optional[int] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> Optional[str]:
        """Poll a task until it leaves PENDING/STARTED, is cancelled, or attempts run out.

        WHY: Large transcriptions take minutes. The caller needs a single
        call that waits for an outcome, can be bounded, and stops as soon
        as cancel() retires the task.

        HOW: Polls once, then sleeps poll_interval_s between polls while the
        status is still waiting. The in-flight cell is checked before every
        poll, so a cancel() takes effect within one interval. If nothing is
        in flight, task_id is adopted so cancel() can stop it.

        RULES:
        - Returns the first terminal status observed
        - A terminal status other than SUCCESS releases the in-flight task;
          SUCCESS keeps it until download() or transcribe_recording() claims it
        - Returns the last waiting status when max_attempts polls are used up
        - Returns None if the task was cancelled locally (not server REVOKED)
        - max_attempts=None polls without limit
        - A failed poll raises immediately; it is never retried
        - Sleeps at most max_attempts - 1 times

        Args:
            task_id: The id returned by submit().
            poll_interval_s: Delay between status checks, in seconds.
            max_attempts: Maximum number of status checks, or None.
            on_status: Optional callback for status updates.

        Returns:
            The final observed status string, or None when cancelled.
        """
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1 (or None)")
        if not self._in_flight.adopt(task_id):
            raise RuntimeError(
                f"Task {self._in_flight.get()} is in flight on this client; "
                "only one task can be monitored at a time"
            )

        attempts = 0
        status: Optional[str] = None
        while True:
            if not self._in_flight.is_current(task_id):
                logger.debug("await_completion: task %s cancelled", task_id)
                return None

            status = await self.poll_status(task_id)
            attempts += 1
            logger.debug("await_completion: task %s is %s (poll %d)", task_id, status, attempts)
            if on_status:
                on_status(_describe_status(status, attempts))

            if not is_waiting(status):
                if status != TaskStatus.SUCCESS and not self._in_flight.claim(task_id):
                    logger.debug("await_completion: task %s cancelled", task_id)
                    return None
                return status
            if max_attempts is not None and attempts >= max_attempts:
                logger.debug(
                    "await_completion: task %s still %s after %d polls",
                    task_id, status, attempts,
                )
                return status

            await self._sleep(poll_interval_s)

    # ------------------------------------------------------------------
    # Step 3 (optional): cancel
    # ------------------------------------------------------------------

    async def cancel_task(self, task_id: str) -> str:
        """Ask the server to cancel a task and return its message.

        The in-flight task is released when it is task_id, whatever the
        outcome of the request. Errors are raised to the caller.
        """
        try:
            resp = await self._request("POST", f"/transcribe/large/{task_id}/cancel")
            if resp.status_code != 200:
                raise CancelError.from_response(resp)

            data = _json_object(resp, CancelError)
            if "message" not in data:
                raise CancelError.from_body(data, resp.status_code)
        finally:
            self._in_flight.clear_if(task_id)

        logger.info("Cancelled task %s: %s", task_id, data["message"])
        return str(data["message"])

    async def cancel(self) -> Optional[str]:
        """Cancel the in-flight task, if any, on a best-effort basis.

        WHY: A caller (or a Ctrl-C handler) needs to abort
        transcribe_recording() from outside the polling loop without
        caring whether the server is reachable.

        HOW: Atomically takes the in-flight id, which stops the polling
        loop at its next check, then calls the cancel endpoint.

        RULES:
        - No task in flight: no request, returns None
        - Local state is cleared before the request is sent
        - PapaReoError from the request is logged, not raised
        - Never interrupts a request already in progress

        Returns:
            The server's message, or None if nothing was cancelled remotely.
        """
        task_id = self._in_flight.take()
        if task_id is None:
            return None
        try:
            return await self.cancel_task(task_id)
        except PapaReoError as exc:
            logger.warning("Could not cancel task %s: %s", task_id, exc)
            return None

    # ------------------------------------------------------------------
    # Step 4: download
    # ------------------------------------------------------------------

    async def download(self, task_id: str) -> bytes:
        """Download the WebVTT transcript of a finished task.

        WHY: Once a task reaches SUCCESS, its result is a caption file
        served by /transcribe/large/{task_id}/download.

        HOW: GETs the endpoint and returns the raw body. The task status is
        not checked here; the server rejects premature downloads.

        RULES:
        - Only HTTP 200 counts as success; anything else raises DownloadError
        - The body is returned unmodified (no WEBVTT validation)
        - Releases the in-flight task when it is task_id

        Args:
            task_id: The id of a task that has reached SUCCESS.

        Returns:
            The caption file bytes.
        """
        resp = await self._request("GET", f"/transcribe/large/{task_id}/download")
        if resp.status_code != 200:
            raise DownloadError.from_response(resp)

        self._in_flight.clear_if(task_id)
        logger.info("Downloaded %d bytes for task %s", len(resp.content), task_id)
        return resp.content

    # ------------------------------------------------------------------
    # Composite workflow
    # ------------------------------------------------------------------

    async def transcribe_recording(
        self,
        audio_path: Union[str, "os.PathLike[str]"],
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        max_attempts: Optional[int] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> Path:
        """Transcribe a long recording into a temporary WebVTT file.

        WHY: Most callers just want "recording in, captions out" and should
        not have to drive submit/poll/download themselves.

        HOW: submit() → await_completion() → claim the in-flight task →
        download() → write the bytes to a NamedTemporaryFile. Claiming is
        one atomic step, so a cancel() either wins before it (the workflow
        raises TranscriptionCancelled) or finds nothing to cancel.

        RULES:
        - Raises TranscriptionCancelled if cancel() retired the task
        - Raises StatusCheckError (with .status) if the task ended with any
          status but SUCCESS, or was still waiting when attempts ran out;
          in the latter case the task stays in flight
        - Never downloads before SUCCESS was observed
        - If the coroutine itself is cancelled, the task is cancelled remotely
        - The returned file is closed and complete; the caller deletes it
        - A temp file that could not be fully written is removed

        Args:
            audio_path: Path to the WAV recording.
            poll_interval_s: Delay between status checks, in seconds.
            max_attempts: Maximum number of status checks, or None.
            on_status: Optional callback for status updates.

        Returns:
            Path of the temporary .vtt file.
        """
        audio_path = Path(audio_path)
        logger.debug("transcribe_recording: %s", audio_path.name)
        try:
            if on_status:
                on_status(f"Uploading {audio_path.name}...")
            task_id = await self.submit(audio_path)

            status = await self.await_completion(
                task_id, poll_interval_s, max_attempts, on_status,
            )
            logger.debug("transcribe_recording: final status %s", status)

            if status is None:
                raise TranscriptionCancelled()
            if is_waiting(status):
                raise StatusCheckError(
                    f"Task {task_id} still {status} after {max_attempts} status checks",
                    status=status,
                )
            if status != TaskStatus.SUCCESS:
                raise StatusCheckError(
                    f"Task {task_id} ended with status {status}",
                    status=status,
                )
            if not self._in_flight.claim(task_id):
                raise TranscriptionCancelled()

            if on_status:
                on_status("Downloading transcript...")
            content = await self.download(task_id)
        except asyncio.CancelledError:
            await self.cancel()
            raise

        f = tempfile.NamedTemporaryFile(
            prefix=audio_path.name + "-", suffix=".vtt", delete=False,
        )
        try:
            with f:
                f.write(content)
        except OSError:
            os.unlink(f.name)
            raise
        return Path(f.name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "PapaReoClient must be used as an async context manager: "
                "async with PapaReoClient() as client: ..."
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        if self._token is None:
            return {}
        return {"Authorization": f"Token {self._token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._ensure_client()
        logger.debug("%s %s", method, path)
        try:
            resp = await client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return resp


# ---------------------------------------------------------------------------
# Helpers (module-private)
# ---------------------------------------------------------------------------


@contextmanager
def _open_audio(audio: AudioSource) -> Iterator[Union[bytes, IO[bytes]]]:
    """Yield uploadable audio content, opening (and closing) paths."""
    if isinstance(audio, (str, os.PathLike)):
        with open(audio, "rb") as f:
            yield f
    else:
        yield audio


def _json_object(resp: httpx.Response, error_cls: Type[PapaReoError]) -> Dict[str, Any]:
    """Parse a JSON object body, raising error_cls when it is not one."""
    try:
        data = resp.json()
    except ValueError:
        raise error_cls(
            f"Response is not JSON: {resp.text[:200]}",
            status_code=resp.status_code,
        ) from None
    if not isinstance(data, dict):
        raise error_cls(
            f"Expected a JSON object, got: {resp.text[:200]}",
            status_code=resp.status_code,
        )
    return data


def _describe_status(status: str, attempts: int) -> str:
    if status == TaskStatus.PENDING:
        return "Transcription queued..."
    if status == TaskStatus.STARTED:
        return f"Transcribing... (check {attempts})"
    if status == TaskStatus.SUCCESS:
        return "Transcription complete."
    if is_recognised(status):
        return f"Transcription ended with status {status}."
    return f"Transcription ended with unrecognised status {status}."
