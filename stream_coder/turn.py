"""
Routes one turn's stream events to the FILEBLOCK parser,
the tool-call assembler and the file-session collector.

Pass :meth:`TurnProcessor.on_event` as ``on_event`` to
``LLMClient.stream_turn``; afterwards :meth:`TurnProcessor.finish`
returns what the turn produced.  Nothing is written to disk here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .editing.engine import EditEngine, EditResult
from .editing.tools import EditTools
from .fileblock import DisplayText, FileBlockStreamParser
from .llm.assembler import ToolCallAssembler
from .llm.cancellation import CancelToken
from .llm.events import Completed, Failed, StreamEvent, TextDelta, ToolCall
from .sessions import FileSessionCollector, ResumeInfo

logger = logging.getLogger(__name__)


@dataclass
class TurnOutcome:
    display_text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    file_writes: EditResult = field(default_factory=lambda: EditResult(ok=True))
    truncated: Optional[ResumeInfo] = None
    incomplete_tool_calls: list[str] = field(default_factory=list)
    error: str = ""


class TurnProcessor:
    """Single-use reducer for one model turn."""

    def __init__(self, engine: EditEngine,
                 on_display: Optional[Callable[[str], None]] = None) -> None:
        self.parser = FileBlockStreamParser()
        self.assembler = ToolCallAssembler()
        self.collector = FileSessionCollector(engine)
        self.tools = EditTools(engine)
        self._on_display = on_display
        self._error = ""
        self._flushed = False

    def on_event(self, event: StreamEvent) -> None:
        if isinstance(event, TextDelta):
            self._route(self.parser.feed(event.text))
            return
        self.assembler.feed(event)
        if isinstance(event, Failed):
            self._error = event.message
        if isinstance(event, (Completed, Failed)):
            self._flush()

    def finish(self) -> TurnOutcome:
        self._flush()
        truncated = self.collector.truncated()
        if truncated is not None:
            logger.warning("[FileBlock] %s truncated after %d lines",
                           truncated.path, truncated.lines_written)
        incomplete = self.assembler.pending_ids()
        if incomplete:
            logger.warning("[Stream] %d tool call(s) never completed: %s",
                           len(incomplete), ", ".join(incomplete))
        return TurnOutcome(
            display_text=self.collector.display_text,
            tool_calls=self.assembler.tool_calls,
            file_writes=self.collector.prepare_all(),
            truncated=truncated,
            incomplete_tool_calls=incomplete,
            error=self._error,
        )

    def run_edit_tools(self, cancel: Optional[CancelToken] = None,
                       ) -> list[tuple[ToolCall, dict]]:
        """Execute the turn's edit tool calls; other tools are left to the caller.

        Raises ``StreamCancelled`` (or ``StreamTimedOut``) between calls once
        *cancel* has tripped.
        """
        results = []
        for call in self.assembler.tool_calls:
            if call.name not in self.tools.names:
                continue
            if cancel is not None:
                cancel.raise_if_cancelled()
            if not call.input_ok:
                results.append((call, {"ok": False, "kind": "invalid_arguments",
                                       "error": f"Invalid tool input JSON: {call.input.error}"}))
                continue
            results.append((call, self.tools.execute(call.name, call.input)))
        return results

    def _flush(self) -> None:
        if self._flushed:
            return
        self._flushed = True
        self._route(self.parser.flush())

    def _route(self, events) -> None:
        for event in events:
            self.collector.feed(event)
            if isinstance(event, DisplayText) and self._on_display is not None:
                self._on_display(event.text)
