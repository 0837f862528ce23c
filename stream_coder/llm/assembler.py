"""
Folds a ``StreamEvent`` sequence into completed, deduplicated tool calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .events import (
    Completed,
    StreamEvent,
    ToolCall,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    parse_tool_arguments_strict,
)


@dataclass
class _Entry:
    name: str = ""
    args: str = ""


class ToolCallAssembler:
    """Pure reducer: ``id -> {name, args buffer}`` to ordered ``ToolCall`` list.

    Argument fragments for an id that was never announced create the
    entry.  On completion, arguments carried by the completion event win
    over the buffer.  A second completion for the same id is ignored.
    Never raises; unparseable arguments become a ``ToolInputParseError``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._calls: list[ToolCall] = []
        self._done: set[str] = set()

    def feed(self, event: StreamEvent) -> ToolCall | None:
        """Consume one event; returns the ToolCall it completed, if any."""
        if isinstance(event, ToolCallStarted):
            entry = self._entries.setdefault(event.id, _Entry())
            if event.name:
                entry.name = event.name
            return None

        if isinstance(event, ToolCallArgsDelta):
            if event.id in self._done:
                return None
            self._entries.setdefault(event.id, _Entry()).args += event.fragment
            return None

        if isinstance(event, ToolCallCompleted):
            return self._finalize(event.id, event.name, event.raw_arguments)

        if isinstance(event, Completed):
            # Calls restated on the terminal event that never got their own
            # completion frame.
            for call in event.tool_calls:
                if call.id not in self._done:
                    raw = self._entries.get(call.id, _Entry()).args
                    self._finalize(call.id, call.name, raw, fallback=call.input)
        return None

    def feed_all(self, events: Iterable[StreamEvent]) -> list[ToolCall]:
        for event in events:
            self.feed(event)
        return self.tool_calls

    @property
    def tool_calls(self) -> list[ToolCall]:
        return list(self._calls)

    def pending_ids(self) -> list[str]:
        """Ids seen but never completed (truncated calls)."""
        return [call_id for call_id in self._entries if call_id not in self._done]

    def _finalize(self, call_id: str, name: str, raw_arguments: str,
                  fallback=None) -> ToolCall | None:
        if call_id in self._done:
            return None
        entry = self._entries.pop(call_id, _Entry())
        raw = raw_arguments if raw_arguments else entry.args
        if raw:
            call_input = parse_tool_arguments_strict(raw)
        elif fallback is not None:
            call_input = fallback
        else:
            call_input = {}
        call = ToolCall(id=call_id, name=name or entry.name, input=call_input)
        self._calls.append(call)
        self._done.add(call_id)
        return call
