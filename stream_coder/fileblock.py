"""
Splits streamed model text into display text and
file-write sessions.

Directive grammar::

    <FILEBLOCK path="relative/or/absolute/path" [mode="append"]>
    ...content...
    </FILEBLOCK>

Exactly one newline directly after the opening tag is dropped.  Absence of
``mode`` means create/overwrite.  Blocks do not nest.

The parser is incremental: markers may be split across any chunk
boundary.  Text that might still turn out to be the start of a marker is
withheld until the next chunk (or ``flush``) decides it, so splitting the
input differently only changes *when* payloads are emitted, never *what*
is emitted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

OPEN_PREFIX = "<FILEBLOCK"
CLOSE_TAG = "</FILEBLOCK>"
MAX_OPEN_TAG = 1024

MODE_CREATE = "create"
MODE_APPEND = "append"

_OPEN_TAG_RE = re.compile(
    r'<FILEBLOCK((?:\s+[A-Za-z_][\w-]*="[^">\n]*")+)\s*>'
)
_ATTR_RE = re.compile(r'([A-Za-z_][\w-]*)="([^">\n]*)"')


# ── Events ──

@dataclass(frozen=True)
class SessionStart:
    path: str
    mode: str = MODE_CREATE


@dataclass(frozen=True)
class SessionContent:
    path: str
    chunk: str


@dataclass(frozen=True)
class SessionComplete:
    path: str


@dataclass(frozen=True)
class DisplayText:
    text: str


FileBlockEvent = Union[SessionStart, SessionContent, SessionComplete, DisplayText]


@dataclass(frozen=True)
class OpenSession:
    path: str
    mode: str


def parse_open_tag(tag: str) -> Optional[OpenSession]:
    """Parse a complete opening tag; None if it is not a valid directive."""
    if len(tag) > MAX_OPEN_TAG:
        return None
    match = _OPEN_TAG_RE.fullmatch(tag)
    if not match:
        return None
    attrs = dict(_ATTR_RE.findall(match.group(1)))
    path = attrs.get("path", "").strip()
    mode = attrs.get("mode", MODE_CREATE)
    if not path or mode not in (MODE_CREATE, MODE_APPEND):
        return None
    return OpenSession(path=path, mode=mode)


def _partial_prefix_len(text: str, marker: str) -> int:
    """Length of the longest suffix of *text* that is a proper prefix of *marker*."""
    for size in range(min(len(text), len(marker) - 1), 0, -1):
        if marker.startswith(text[-size:]):
            return size
    return 0


class FileBlockStreamParser:
    """Incremental two-state (idle / in-session) FILEBLOCK recognizer.

    ``feed`` returns the events a chunk makes certain; ``flush`` is called
    once at end of stream.  A session still open at flush time is left
    without a ``SessionComplete`` and must be treated as truncated.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._session: Optional[OpenSession] = None
        self._drop_newline = False

    @property
    def open_session(self) -> Optional[OpenSession]:
        return self._session

    @property
    def in_session(self) -> bool:
        return self._session is not None

    def feed(self, chunk: str) -> list[FileBlockEvent]:
        if not chunk:
            return []
        self._buffer += chunk
        return self._drain(final=False)

    def flush(self) -> list[FileBlockEvent]:
        events = self._drain(final=True)
        if self._session is not None:
            logger.warning("[FileBlock] Stream ended inside FILEBLOCK for %s; "
                           "treating as truncated", self._session.path)
        return events

    # ── State machine ──

    def _drain(self, final: bool) -> list[FileBlockEvent]:
        events: list[FileBlockEvent] = []
        while True:
            if self._session is not None:
                progressed = self._scan_session(events, final)
            else:
                progressed = self._scan_idle(events, final)
            if not progressed:
                return events

    def _scan_session(self, events: list[FileBlockEvent], final: bool) -> bool:
        session = self._session
        if self._drop_newline:
            if not self._buffer:
                return False
            if self._buffer.startswith("\n"):
                self._buffer = self._buffer[1:]
            self._drop_newline = False

        idx = self._buffer.find(CLOSE_TAG)
        if idx >= 0:
            if idx > 0:
                events.append(SessionContent(session.path, self._buffer[:idx]))
            events.append(SessionComplete(session.path))
            logger.debug("[FileBlock] Session complete: %s", session.path)
            self._buffer = self._buffer[idx + len(CLOSE_TAG):]
            self._session = None
            return True

        keep = 0 if final else len(CLOSE_TAG) - 1
        emit_upto = max(0, len(self._buffer) - keep)
        if emit_upto > 0:
            events.append(SessionContent(session.path, self._buffer[:emit_upto]))
            self._buffer = self._buffer[emit_upto:]
        return False

    def _scan_idle(self, events: list[FileBlockEvent], final: bool) -> bool:
        search_from = 0
        while True:
            start = self._buffer.find(OPEN_PREFIX, search_from)
            if start < 0:
                break
            end = self._buffer.find(">", start)
            if end < 0:
                if not final and len(self._buffer) - start <= MAX_OPEN_TAG:
                    # Tag still arriving.
                    self._emit_display(events, start)
                    return False
                search_from = start + 1
                continue
            session = parse_open_tag(self._buffer[start:end + 1])
            if session is None:
                search_from = start + 1
                continue
            self._emit_display(events, start)
            self._buffer = self._buffer[end + 1 - start:]
            events.append(SessionStart(session.path, session.mode))
            logger.debug("[FileBlock] Session start: %s (%s)", session.path, session.mode)
            self._session = session
            self._drop_newline = True
            return True

        keep = 0 if final else _partial_prefix_len(self._buffer, OPEN_PREFIX)
        self._emit_display(events, len(self._buffer) - keep)
        return False

    def _emit_display(self, events: list[FileBlockEvent], upto: int) -> None:
        if upto <= 0:
            return
        events.append(DisplayText(self._buffer[:upto]))
        self._buffer = self._buffer[upto:]
