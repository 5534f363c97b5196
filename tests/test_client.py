"""Tests for the single-request operations of PapaReoClient.

WHY: Every remote operation must send the right request (method, path,
multipart fields, auth headers) and translate each kind of response into
either its parsed value or the matching typed error.

HOW: Tests run the async client against FakePapaReo via
httpx.MockTransport, driving coroutines with asyncio.run(). Forced
responses (overrides) and forced exceptions (raise_on) exercise the
failure paths.

RULES:
- No test touches the network
- Each test builds its own FakePapaReo and client
- Tests are grouped by operation
"""

from __future__ import annotations

import asyncio
import io

import httpx
import pytest

from papareo.api.client import PapaReoClient
from papareo.api.errors import (
    CancelError,
    DownloadError,
    PapaReoError,
    StatusCheckError,
    SubmissionError,
    TranscriptionError,
    TransportError,
)
from papareo.api.models import TaskStatus
from papareo.core.vtt import has_webvtt_marker
from tests.fakes import FAKE_WAV, SAMPLE_VTT, FakePapaReo, make_client


def _run(server, fn, **kwargs):
    """Open a fake-backed client, run fn(client), and return its result."""

    async def _inner():
        async with make_client(server, **kwargs) as client:
            return await fn(client)

    return asyncio.run(_inner())


# ---------------------------------------------------------------------------
# Client setup
# ---------------------------------------------------------------------------


class TestClientSetup:
    """Construction, token handling and request headers."""

    def test_requires_context_manager(self):
        client = PapaReoClient(token="t", base_url="http://papareo.test/tuhi/")
        with pytest.raises(RuntimeError, match="async context manager"):
            asyncio.run(client.poll_status("task-1"))

    def test_sends_token_and_user_agent(self, server):
        _run(server, lambda c: c.poll_status("task-123"))
        request = server.requests[0]
        assert request.headers["Authorization"] == "Token test-token"
        assert request.headers["User-Agent"].startswith("papareo-client/")

    def test_paths_are_relative_to_base_url(self, server):
        _run(server, lambda c: c.poll_status("task-123"))
        assert server.requests[0].url == "http://papareo.test/tuhi/transcribe/large/task-123/status"

    def test_base_url_without_trailing_slash(self, server):
        async def _inner():
            client = PapaReoClient(
                token="t",
                base_url="http://papareo.test/tuhi",
                transport=httpx.MockTransport(server.handler),
            )
            async with client:
                await client.poll_status("abc")

        asyncio.run(_inner())
        assert server.requests[0].url.path == "/tuhi/transcribe/large/abc/status"

    def test_set_token_ignores_blank(self):
        client = PapaReoClient(token="first")
        client.set_token("")
        client.set_token("   ")
        client.set_token(None)
        assert client.has_token
        assert client._headers() == {"Authorization": "Token first"}

    def test_set_token_replaces_and_chains(self):
        client = PapaReoClient(token="first")
        assert client.set_token("second") is client
        assert client._headers() == {"Authorization": "Token second"}

    def test_no_token(self):
        client = PapaReoClient()
        assert not client.has_token
        assert client._headers() == {}

    def test_set_token_after_open_applies_to_next_request(self, server):
        async def _inner(client):
            client.set_token("rotated")
            return await client.poll_status("task-123")

        _run(server, _inner)
        assert server.requests[0].headers["Authorization"] == "Token rotated"


# ---------------------------------------------------------------------------
# transcribe / transcribe_utterance
# ---------------------------------------------------------------------------


class TestTranscribe:
    """POST /transcribe for short utterances."""

    def test_utterance_returns_text(self, server, wav_file):
        assert _run(server, lambda c: c.transcribe_utterance(wav_file)) == "kia ora"

    def test_sends_multipart_audio_and_flag(self, server, wav_file):
        _run(server, lambda c: c.transcribe(wav_file, with_metadata=False))
        request = server.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/tuhi/transcribe"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="audio_file"; filename="audio_file.wav"' in request.content
        assert b"Content-Type: audio/wav" in request.content
        assert FAKE_WAV in request.content
        assert b'name="with_metadata"\r\n\r\nfalse' in request.content

    def test_with_metadata_passes_extra_fields_through(self, server):
        resp = _run(server, lambda c: c.transcribe(io.BytesIO(FAKE_WAV), with_metadata=True))
        assert resp.transcription == "kia ora"
        assert resp.success is True
        assert resp.metadata["metadata"][0]["word"] == "kia"
        assert "transcription" not in resp.metadata

    def test_accepts_raw_bytes(self, server):
        assert _run(server, lambda c: c.transcribe_utterance(FAKE_WAV)) == "kia ora"
        assert FAKE_WAV in server.requests[0].content

    def test_http_error_uses_detail(self, server, wav_file):
        server.overrides["transcribe"] = (401, {"detail": "Invalid token."})
        with pytest.raises(TranscriptionError) as exc_info:
            _run(server, lambda c: c.transcribe_utterance(wav_file))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid token."
        assert str(exc_info.value) == "401: Invalid token."

    def test_missing_transcription_field(self, server, wav_file):
        server.overrides["transcribe"] = (200, {"success": False, "detail": "No speech found"})
        with pytest.raises(TranscriptionError, match="No speech found"):
            _run(server, lambda c: c.transcribe_utterance(wav_file))


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------


class TestSubmit:
    """POST /transcribe/large."""

    def test_returns_task_id_and_records_in_flight(self, server, wav_file):
        async def _inner(client):
            task_id = await client.submit(wav_file)
            return task_id, client.current_task_id

        task_id, current = _run(server, _inner)
        assert task_id == "task-123"
        assert current == "task-123"
        request = server.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/tuhi/transcribe/large"
        assert FAKE_WAV in request.content
        assert b"with_metadata" not in request.content

    def test_submit_then_poll_is_working_or_done(self, server, wav_file):
        async def _inner(client):
            task_id = await client.submit(wav_file)
            return await client.poll_status(task_id)

        assert _run(server, _inner) in {"PENDING", "STARTED", "SUCCESS"}

    def test_reads_stream_once(self, server):
        stream = io.BytesIO(FAKE_WAV)
        _run(server, lambda c: c.submit(stream))
        assert stream.read() == b""

    def test_non_202_raises(self, server, wav_file):
        server.overrides["submit"] = (200, {"task_id": "abc"})
        with pytest.raises(SubmissionError) as exc_info:
            _run(server, lambda c: c.submit(wav_file))
        assert exc_info.value.status_code == 200

    def test_missing_task_id_raises(self, server, wav_file):
        server.overrides["submit"] = (202, {"detail": "Queue full"})

        async def _inner(client):
            with pytest.raises(SubmissionError, match="Queue full"):
                await client.submit(wav_file)
            return client.current_task_id

        assert _run(server, _inner) is None

    def test_non_json_error_body_is_summarised(self, server, wav_file):
        server.overrides["submit"] = (502, "<html>" + "x" * 500 + "</html>")
        with pytest.raises(SubmissionError) as exc_info:
            _run(server, lambda c: c.submit(wav_file))
        assert exc_info.value.status_code == 502
        assert exc_info.value.detail.startswith("<html>")
        assert len(exc_info.value.detail) == 200
        assert exc_info.value.body is None

    def test_missing_audio_file_raises_before_request(self, server, tmp_path):
        with pytest.raises(FileNotFoundError):
            _run(server, lambda c: c.submit(tmp_path / "missing.wav"))
        assert server.requests == []


# ---------------------------------------------------------------------------
# poll_status
# ---------------------------------------------------------------------------


class TestPollStatus:
    """GET /transcribe/large/{task_id}/status."""

    def test_returns_status_verbatim(self):
        server = FakePapaReo(statuses=["FAILURE"])
        assert _run(server, lambda c: c.poll_status("task-123")) == "FAILURE"

    def test_repeated_polls_without_change_agree(self):
        server = FakePapaReo(statuses=["STARTED"])

        async def _inner(client):
            return [await client.poll_status("task-123") for _ in range(3)]

        assert _run(server, _inner) == ["STARTED", "STARTED", "STARTED"]

    def test_does_not_wait(self, server, clock):
        _run(server, lambda c: c.poll_status("task-123"), clock=clock)
        assert clock.sleeps == []
        assert server.count("status") == 1

    def test_http_error_raises(self, server):
        server.overrides["status"] = (404, {"detail": "Task not found"})
        with pytest.raises(StatusCheckError) as exc_info:
            _run(server, lambda c: c.poll_status("nope"))
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Task not found"
        assert exc_info.value.body == {"detail": "Task not found"}

    def test_missing_status_field_raises(self, server):
        server.overrides["status"] = (200, {"state": "PENDING"})
        with pytest.raises(StatusCheckError):
            _run(server, lambda c: c.poll_status("task-123"))

    def test_non_object_body_raises(self, server):
        server.overrides["status"] = (200, ["PENDING"])
        with pytest.raises(StatusCheckError, match="Expected a JSON object"):
            _run(server, lambda c: c.poll_status("task-123"))

    def test_invalid_json_raises(self, server):
        server.overrides["status"] = (200, "not json")
        with pytest.raises(StatusCheckError, match="not JSON"):
            _run(server, lambda c: c.poll_status("task-123"))


# ---------------------------------------------------------------------------
# cancel_task / cancel
# ---------------------------------------------------------------------------


class TestCancel:
    """POST /transcribe/large/{task_id}/cancel and the cancel() convenience."""

    def test_cancel_just_submitted_task(self, server, wav_file):
        async def _inner(client):
            task_id = await client.submit(wav_file)
            message = await client.cancel_task(task_id)
            return message, client.current_task_id

        message, current = _run(server, _inner)
        assert message == "Task task-123 cancelled"
        assert current is None

    def test_cancel_without_task_is_noop(self, server):
        assert _run(server, lambda c: c.cancel()) is None
        assert server.requests == []

    def test_second_cancel_is_noop(self, server, wav_file):
        async def _inner(client):
            await client.submit(wav_file)
            first = await client.cancel()
            second = await client.cancel()
            return first, second

        first, second = _run(server, _inner)
        assert first
        assert second is None
        assert server.count("cancel") == 1

    def test_cancel_task_surfaces_error_but_clears(self, server, wav_file):
        server.overrides["cancel"] = (500, {"detail": "worker unreachable"})

        async def _inner(client):
            task_id = await client.submit(wav_file)
            with pytest.raises(CancelError) as exc_info:
                await client.cancel_task(task_id)
            return exc_info.value, client.current_task_id

        error, current = _run(server, _inner)
        assert error.status_code == 500
        assert current is None

    def test_cancel_task_missing_message(self, server):
        server.overrides["cancel"] = (200, {})
        with pytest.raises(CancelError):
            _run(server, lambda c: c.cancel_task("task-123"))

    def test_cancel_task_for_other_task_keeps_in_flight(self, server, wav_file):
        async def _inner(client):
            await client.submit(wav_file)
            await client.cancel_task("someone-elses-task")
            return client.current_task_id

        assert _run(server, _inner) == "task-123"

    def test_convenience_cancel_swallows_http_error(self, server, wav_file, caplog):
        server.overrides["cancel"] = (503, {"detail": "busy"})

        async def _inner(client):
            await client.submit(wav_file)
            return await client.cancel(), client.current_task_id

        with caplog.at_level("WARNING", logger="papareo"):
            message, current = _run(server, _inner)
        assert message is None
        assert current is None
        assert "Could not cancel task task-123" in caplog.text

    def test_convenience_cancel_swallows_transport_error(self, server, wav_file):
        server.raise_on["cancel"] = httpx.ConnectError("connection refused")

        async def _inner(client):
            await client.submit(wav_file)
            return await client.cancel(), client.current_task_id

        assert _run(server, _inner) == (None, None)


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------


class TestDownload:
    """GET /transcribe/large/{task_id}/download."""

    def test_download_after_success(self):
        server = FakePapaReo(statuses=["SUCCESS"])

        async def _inner(client):
            assert await client.poll_status("task-123") == TaskStatus.SUCCESS
            return await client.download("task-123")

        content = _run(server, _inner)
        assert content == SAMPLE_VTT
        assert has_webvtt_marker(content)

    def test_download_before_success_raises(self, server, wav_file):
        async def _inner(client):
            task_id = await client.submit(wav_file)
            return await client.download(task_id)

        with pytest.raises(DownloadError) as exc_info:
            _run(server, _inner)
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Transcription not ready"

    def test_only_200_is_success(self, server):
        server.overrides["download"] = (204, b"")
        with pytest.raises(DownloadError):
            _run(server, lambda c: c.download("task-123"))

    def test_download_releases_in_flight_task(self, wav_file):
        server = FakePapaReo(statuses=["SUCCESS"])

        async def _inner(client):
            task_id = await client.submit(wav_file)
            await client.poll_status(task_id)
            await client.download(task_id)
            return client.current_task_id

        assert _run(server, _inner) is None


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------


class TestTransportErrors:
    """Network failures are wrapped, not reinterpreted."""

    def test_connect_error_is_wrapped(self, server):
        cause = httpx.ConnectError("connection refused")
        server.raise_on["status"] = cause
        with pytest.raises(TransportError) as exc_info:
            _run(server, lambda c: c.poll_status("task-123"))
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.status_code is None
        assert "connection refused" in str(exc_info.value)

    def test_transport_error_is_papareo_error(self, server):
        server.raise_on["download"] = httpx.ReadTimeout("timed out")
        with pytest.raises(PapaReoError):
            _run(server, lambda c: c.download("task-123"))
