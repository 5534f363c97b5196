"""Command-line interface for the Papa Reo API client.

WHY: Users need to transcribe recordings, or inspect and cancel running
tasks, from the terminal without writing Python.

HOW: argparse subcommands map one-to-one onto PapaReoClient operations;
"recording" runs the full submit/poll/download workflow. Each command is
an async function run with asyncio.run(). Status messages go to stderr,
results (text, task ids, captions) to stdout or to --output.

RULES:
- Token: --token, else the papareo.config lookup chain
- Status output goes to stderr (not stdout)
- Exit codes: 0 ok, 1 API error, 2 usage/config error, 130 interrupted
- Ctrl-C during "recording" cancels the task on the server
- -v enables DEBUG logging for the papareo package
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from papareo import __version__
from papareo.api.client import PapaReoClient
from papareo.api.errors import DownloadError, PapaReoError, TranscriptionCancelled
from papareo.config import DEFAULT_POLL_INTERVAL_S, load_token
from papareo.core.vtt import Cue, cues_to_text, read_cues

EXIT_OK = 0
EXIT_API_ERROR = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed."""
    print(msg, file=sys.stderr, flush=True)


def _make_client(args: argparse.Namespace) -> PapaReoClient:
    return PapaReoClient(token=load_token(args.token), base_url=args.base_url)


def _require_file(path: Path) -> None:
    if not path.is_file():
        raise FileNotFoundError("Audio file not found: {}".format(path))


def _read_transcript(vtt_path: Path) -> List[Cue]:
    """Parse a downloaded transcript; an unreadable body is an API error."""
    try:
        return read_cues(vtt_path)
    except ValueError as exc:
        raise DownloadError("Transcript is not readable WebVTT: {}".format(exc)) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _cmd_utterance(args: argparse.Namespace) -> int:
    _require_file(args.file)
    async with _make_client(args) as client:
        if args.metadata:
            resp = await client.transcribe(args.file, with_metadata=True)
            payload = dict(resp.metadata)
            payload["transcription"] = resp.transcription
            payload["success"] = resp.success
            print(json.dumps(payload, ensure_ascii=False, indent=2))
        else:
            print(await client.transcribe_utterance(args.file))
    return EXIT_OK


async def _cmd_submit(args: argparse.Namespace) -> int:
    _require_file(args.file)
    async with _make_client(args) as client:
        _status("Uploading {}...".format(args.file.name))
        print(await client.submit(args.file))
    return EXIT_OK


async def _cmd_status(args: argparse.Namespace) -> int:
    async with _make_client(args) as client:
        print(await client.poll_status(args.task_id))
    return EXIT_OK


async def _cmd_cancel(args: argparse.Namespace) -> int:
    async with _make_client(args) as client:
        print(await client.cancel_task(args.task_id))
    return EXIT_OK


async def _cmd_download(args: argparse.Namespace) -> int:
    async with _make_client(args) as client:
        content = await client.download(args.task_id)
    if args.output:
        args.output.write_bytes(content)
        _status("Saved: {}".format(args.output))
    else:
        sys.stdout.buffer.write(content)
        sys.stdout.flush()
    return EXIT_OK


async def _cmd_recording(args: argparse.Namespace) -> int:
    _require_file(args.file)
    async with _make_client(args) as client:
        vtt_path = await client.transcribe_recording(
            args.file,
            poll_interval_s=args.interval,
            max_attempts=args.max_attempts,
            on_status=_status,
        )

    try:
        if args.text:
            text = cues_to_text(_read_transcript(vtt_path))
            if args.output:
                args.output.write_text(text + "\n", encoding="utf-8")
            else:
                print(text)
        elif args.output:
            shutil.copyfile(vtt_path, args.output)
        else:
            sys.stdout.buffer.write(vtt_path.read_bytes())
            sys.stdout.flush()
    finally:
        vtt_path.unlink()

    if args.output:
        _status("Saved: {}".format(args.output))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="papareo",
        description="Transcribe te reo Māori audio with the Papa Reo API.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "--token",
        default=None,
        help="API token (default: PAPAREO_TOKEN from .env or the environment)",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="API base URL (default: PAPAREO_BASE_URL or https://api.papareo.io/tuhi/)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log requests and status checks to stderr",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    p = sub.add_parser("utterance", help="Transcribe a short utterance")
    p.add_argument("file", type=Path, help="WAV file")
    p.add_argument(
        "--metadata",
        action="store_true",
        help="Print the full JSON response including alignment metadata",
    )
    p.set_defaults(func=_cmd_utterance)

    p = sub.add_parser("recording", help="Transcribe a long recording to WebVTT")
    p.add_argument("file", type=Path, help="WAV file")
    p.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")
    p.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL_S,
        help="Seconds between status checks (default: %(default)s)",
    )
    p.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Give up after this many status checks (default: no limit)",
    )
    p.add_argument("--text", action="store_true", help="Output plain text instead of WebVTT")
    p.set_defaults(func=_cmd_recording)

    p = sub.add_parser("submit", help="Start a long-recording task and print its id")
    p.add_argument("file", type=Path, help="WAV file")
    p.set_defaults(func=_cmd_submit)

    p = sub.add_parser("status", help="Print the status of a task")
    p.add_argument("task_id")
    p.set_defaults(func=_cmd_status)

    p = sub.add_parser("cancel", help="Cancel a task")
    p.add_argument("task_id")
    p.set_defaults(func=_cmd_cancel)

    p = sub.add_parser("download", help="Download the WebVTT transcript of a finished task")
    p.add_argument("task_id")
    p.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")
    p.set_defaults(func=_cmd_download)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if args.verbose:
        logging.getLogger("papareo").setLevel(logging.DEBUG)

    try:
        return asyncio.run(args.func(args))
    except (ValueError, FileNotFoundError) as exc:
        _status("Error: {}".format(exc))
        return EXIT_USAGE
    except TranscriptionCancelled:
        _status("Cancelled.")
        return EXIT_INTERRUPTED
    except PapaReoError as exc:
        _status("Error: {}".format(exc))
        return EXIT_API_ERROR
    except KeyboardInterrupt:
        _status("Interrupted.")
        return EXIT_INTERRUPTED
