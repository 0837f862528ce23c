"""
Normalized stream events: the one event model every vendor decoder produces.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class ToolInputParseError:
    """Marker input for a tool call whose arguments were not valid JSON."""
    raw: str
    error: str


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: Any

    @property
    def input_ok(self) -> bool:
        return not isinstance(self.input, ToolInputParseError)


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0
    cache_write_tokens: int = 0


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallStarted:
    id: str
    name: str


@dataclass(frozen=True)
class ToolCallArgsDelta:
    id: str
    fragment: str


@dataclass(frozen=True)
class ToolCallCompleted:
    id: str
    name: str
    raw_arguments: str = ""


@dataclass(frozen=True)
class Completed:
    tool_calls: tuple[ToolCall, ...] = ()
    usage: Usage | None = None
    stop_reason: str = "end_turn"
    # "user" or "timeout" when stop_reason == "cancelled"
    cancel_reason: str = ""


@dataclass(frozen=True)
class Failed:
    message: str
    kind: str = "stream_transport_error"


StreamEvent = Union[
    TextDelta,
    ToolCallStarted,
    ToolCallArgsDelta,
    ToolCallCompleted,
    Completed,
    Failed,
]

TERMINAL_EVENTS = (Completed, Failed)


@dataclass
class TurnResult:
    """Everything one model turn produced, including partial output on failure."""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage | None = None
    stop_reason: str | None = None
    cancel_reason: str = ""
    error: str = ""
    error_kind: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def cancelled(self) -> bool:
        return self.stop_reason == "cancelled"


def parse_tool_arguments(raw: str) -> dict:
    """Parse accumulated tool arguments; failures yield an empty object."""
    if not raw or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def parse_tool_arguments_strict(raw: str) -> Any:
    """Parse tool arguments, returning a ``ToolInputParseError`` on failure."""
    if not raw or not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        return ToolInputParseError(raw=raw, error=str(exc))
