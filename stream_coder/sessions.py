"""
Collects FILEBLOCK session content and turns each completed session into
a prepared edit.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .editing.engine import EditEngine, EditResult
from .editing.operations import FileWrite
from .fileblock import (
    MODE_CREATE,
    FileBlockEvent,
    SessionComplete,
    SessionContent,
    SessionStart,
)

logger = logging.getLogger(__name__)

TRAILING_WINDOW_SIZE = 30


@dataclass
class ResumeInfo:
    """Where an interrupted write stopped, for asking the model to continue."""
    path: str
    lines_written: int
    trailing_window: list[str]


@dataclass
class FileSession:
    path: str
    mode: str = MODE_CREATE
    parts: list[str] = field(default_factory=list)
    lines_written: int = 0
    complete: bool = False
    _line_buffer: str = field(default="", init=False, repr=False)
    _window: deque = field(default_factory=lambda: deque(maxlen=TRAILING_WINDOW_SIZE),
                           init=False, repr=False)

    @property
    def content(self) -> str:
        return "".join(self.parts)

    def write(self, chunk: str) -> None:
        self.parts.append(chunk)
        self._line_buffer += chunk
        *lines, self._line_buffer = self._line_buffer.split("\n")
        for line in lines:
            self.lines_written += 1
            self._window.append(line)

    def resume_info(self) -> ResumeInfo:
        window = list(self._window)
        lines = self.lines_written
        if self._line_buffer:
            window.append(self._line_buffer)
            window = window[-TRAILING_WINDOW_SIZE:]
            lines += 1
        return ResumeInfo(path=self.path, lines_written=lines, trailing_window=window)


@dataclass
class PreparedWrite:
    path: str
    mode: str
    result: EditResult


class FileSessionCollector:
    """Consume FileBlock events; prepare a write for each completed session.

    Sessions still open when the stream ends are truncated: they are
    reported by :meth:`truncated` and never prepared.
    """

    def __init__(self, engine: EditEngine) -> None:
        self.engine = engine
        self.prepared: list[PreparedWrite] = []
        self._current: Optional[FileSession] = None
        self._display: list[str] = []
        self._completed: list[FileSession] = []

    @property
    def display_text(self) -> str:
        return "".join(self._display)

    @property
    def current(self) -> Optional[FileSession]:
        return self._current

    def feed(self, event: FileBlockEvent) -> Optional[PreparedWrite]:
        """Consume one event; returns the write a ``SessionComplete`` prepared."""
        if isinstance(event, SessionStart):
            if self._current is not None:
                logger.warning("[FileBlock] Session for %s started before %s closed",
                               event.path, self._current.path)
            self._current = FileSession(path=event.path, mode=event.mode)
            return None
        if isinstance(event, SessionContent):
            if self._current is not None and self._current.path == event.path:
                self._current.write(event.chunk)
            return None
        if isinstance(event, SessionComplete):
            session = self._current
            if session is None or session.path != event.path:
                return None
            session.complete = True
            self._current = None
            self._completed.append(session)
            return self._prepare(session)
        self._display.append(event.text)
        return None

    def feed_all(self, events: Iterable[FileBlockEvent]) -> list[PreparedWrite]:
        writes = []
        for event in events:
            write = self.feed(event)
            if write is not None:
                writes.append(write)
        return writes

    def truncated(self) -> Optional[ResumeInfo]:
        """Resume information for a session left open at end of stream."""
        if self._current is None:
            return None
        return self._current.resume_info()

    def prepare_all(self) -> EditResult:
        """One consolidated result for every completed session, in order.

        Sessions writing the same file are chained, so an ``append`` after a
        ``create`` in the same turn appends to the new content.
        """
        if not self._completed:
            return EditResult(ok=True)
        writes = [(s.path, FileWrite(s.content, s.mode)) for s in self._completed]
        return self.engine.prepare_batch(writes)

    def _prepare(self, session: FileSession) -> PreparedWrite:
        mode = session.mode
        earlier = [s for s in self._completed[:-1] if s.path == session.path]
        if earlier:
            # Chain onto earlier writes to the same file in this stream.
            chain = [(s.path, FileWrite(s.content, s.mode)) for s in earlier + [session]]
            result = self.engine.prepare_batch(chain)
        else:
            result = self.engine.prepare_file_write(session.path, session.content, mode)
        if result.ok:
            logger.info("[FileBlock] Prepared %s (%s, %d lines)",
                        session.path, mode, session.resume_info().lines_written)
        else:
            logger.warning("[FileBlock] Could not prepare %s: %s", session.path, result.error)
        write = PreparedWrite(path=session.path, mode=mode, result=result)
        self.prepared.append(write)
        return write
