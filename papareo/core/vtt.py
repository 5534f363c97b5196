"""WebVTT helpers for transcripts downloaded from Papa Reo.

WHY: The long-recording workflow returns a WebVTT caption file. Callers
(and the CLI's --text mode) need to check that a download really is
WebVTT and to read its cues as plain text with timing.

HOW: has_webvtt_marker() checks the first line against the fixed marker.
parse_cues() walks blank-line separated blocks: an optional identifier
line, a "start --> end" timing line, then the cue text.

RULES:
- The first line must be exactly "WEBVTT" (a UTF-8 BOM and trailing
  whitespace are ignored; a header suffix after a space or tab is allowed)
- NOTE, STYLE and REGION blocks are skipped
- Timestamps are hh:mm:ss.ttt or mm:ss.ttt; times are float seconds
- Validation is explicit; PapaReoClient.download() never calls it
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

WEBVTT_MARKER = "WEBVTT"

_TIMESTAMP = r"(?:(\d+):)?(\d{2}):(\d{2})\.(\d{3})"
_TIMING_RE = re.compile(r"^\s*" + _TIMESTAMP + r"\s+-->\s+" + _TIMESTAMP + r"(?:\s+.*)?$")
_SKIPPED_BLOCKS = ("NOTE", "STYLE", "REGION")


@dataclass
class Cue:
    """One timed caption block."""

    start_s: float
    end_s: float
    text: str
    identifier: Optional[str] = None


def _first_line(text: str) -> str:
    return text.lstrip("\ufeff").split("\n", 1)[0].rstrip()


def _is_marker(line: str) -> bool:
    if line == WEBVTT_MARKER:
        return True
    return line.startswith(WEBVTT_MARKER) and line[len(WEBVTT_MARKER)] in " \t"


def has_webvtt_marker(source: Union[bytes, str, "os.PathLike[str]"]) -> bool:
    """Check whether bytes, or the file at a path, start with the WEBVTT line.

    A str argument is treated as a path; decode text yourself and use
    parse_cues() if you already hold the contents.
    """
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as f:
            head = f.readline()
    else:
        head = source.split(b"\n", 1)[0]
    line = _first_line(head.decode("utf-8", errors="replace").replace("\r", ""))
    return _is_marker(line)


def _seconds(hours: Optional[str], minutes: str, seconds: str, millis: str) -> float:
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def parse_cues(text: str) -> List[Cue]:
    """Parse the cue blocks of a WebVTT document.

    Raises:
        ValueError: If the document does not start with the WEBVTT marker.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if not _is_marker(_first_line(text)):
        raise ValueError("Not a WebVTT document: missing {} header".format(WEBVTT_MARKER))

    cues: List[Cue] = []
    # The first block is the header (marker plus optional metadata lines).
    blocks = re.split(r"\n\s*\n", text.lstrip("\ufeff"))[1:]
    for block in blocks:
        lines = [line for line in block.split("\n") if line.strip()]
        if not lines or lines[0].split(" ", 1)[0] in _SKIPPED_BLOCKS:
            continue

        identifier = None
        match = _TIMING_RE.match(lines[0])
        if match is None and len(lines) > 1:
            identifier = lines[0].strip()
            lines = lines[1:]
            match = _TIMING_RE.match(lines[0])
        if match is None:
            continue

        g = match.groups()
        cues.append(Cue(
            start_s=_seconds(*g[0:4]),
            end_s=_seconds(*g[4:8]),
            text="\n".join(lines[1:]),
            identifier=identifier,
        ))
    return cues


def cues_to_text(cues: List[Cue]) -> str:
    """Join cue texts into a plain transcript, one cue per line."""
    return "\n".join(cue.text.replace("\n", " ") for cue in cues if cue.text)


def read_cues(path: Union[str, "os.PathLike[str]"]) -> List[Cue]:
    return parse_cues(Path(path).read_text(encoding="utf-8-sig"))
