"""
Stream decoders, one per vendor protocol.

Each decoder consumes the ``data`` payload of one server-sent event at a
time and returns the normalized :mod:`stream_coder.llm.events` it implies.
Decoders own the per-turn tool-call bookkeeping needed to reconcile the
vendor shapes:

* plain incremental text deltas,
* tool calls announced by one frame, fed by argument fragments and closed
  by an explicit "arguments done" frame,
* a final "response completed" frame that restates the whole output,
  including tool calls already streamed (deduplicated by id here).

A decoder is single-use: once it has emitted ``Completed`` or ``Failed``
it ignores further input.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .events import (
    Completed,
    Failed,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    Usage,
    parse_tool_arguments,
)

logger = logging.getLogger(__name__)

INCOMPLETE_TOOL_CALLS = "Stream ended with incomplete tool calls - possible timeout"


@dataclass
class _PendingCall:
    id: str
    name: str
    arguments: str = ""


class StreamDecoder(ABC):
    """Base class holding the shared tool-call and terminal-state logic."""

    name = "base"

    def __init__(self) -> None:
        self._pending: dict[str, _PendingCall] = {}
        self._completed: list[ToolCall] = []
        self._completed_ids: set[str] = set()
        self._usage: Usage | None = None
        self._stop_reason: str | None = None
        self._finished = False

    # ── Public surface ──

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Tool calls completed so far, in completion order."""
        return list(self._completed)

    def feed_data(self, data: str) -> list[StreamEvent]:
        """Decode one SSE ``data`` payload."""
        if self._finished:
            return []
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            return self.fail(f"Unparseable stream frame: {data[:200]}")
        if not isinstance(frame, dict):
            return self.fail(f"Unexpected stream frame: {data[:200]}")
        return self.feed(frame)

    @abstractmethod
    def feed(self, frame: dict) -> list[StreamEvent]:
        """Decode one already-parsed frame."""

    def finish(self) -> list[StreamEvent]:
        """The transport ended; close the stream if no terminal frame arrived."""
        if self._finished:
            return []
        if self._stop_reason is None and self._pending:
            logger.warning("[Stream] %s: transport ended with %d pending tool call(s)",
                           self.name, len(self._pending))
            return self.fail(INCOMPLETE_TOOL_CALLS)
        return self._complete_turn()

    def cancel(self, reason: str = "user") -> list[StreamEvent]:
        """Close the stream as cancelled (not failed)."""
        if self._finished:
            return []
        self._finished = True
        logger.info("[Stream] %s: turn cancelled (%s)", self.name, reason or "user")
        return [Completed(
            tool_calls=tuple(self._completed),
            usage=self._usage,
            stop_reason="cancelled",
            cancel_reason=reason or "user",
        )]

    def fail(self, message: str, kind: str = "stream_transport_error") -> list[StreamEvent]:
        if self._finished:
            return []
        self._finished = True
        logger.warning("[Stream] %s: %s", self.name, message)
        return [Failed(message=message, kind=kind)]

    # ── Tool-call bookkeeping ──

    def _start_call(self, call_id: str, name: str, arguments: str = "") -> list[StreamEvent]:
        if call_id in self._completed_ids:
            return []
        existing = self._pending.get(call_id)
        if existing is not None:
            if name:
                existing.name = name
            return []
        self._pending[call_id] = _PendingCall(call_id, name, arguments or "")
        return [ToolCallStarted(id=call_id, name=name)]

    def _append_args(self, call_id: str, fragment: str) -> list[StreamEvent]:
        if not fragment or call_id in self._completed_ids:
            return []
        pending = self._pending.get(call_id)
        if pending is None:
            # Fragments may arrive before the call was announced.
            pending = self._pending[call_id] = _PendingCall(call_id, "")
        pending.arguments += fragment
        return [ToolCallArgsDelta(id=call_id, fragment=fragment)]

    def _complete_call(self, call_id: str, name: str | None = None,
                       arguments: str | None = None) -> list[StreamEvent]:
        if call_id in self._completed_ids:
            return []
        pending = self._pending.pop(call_id, None) or _PendingCall(call_id, "")
        if name:
            pending.name = name
        if arguments:
            pending.arguments = arguments
        call = ToolCall(
            id=pending.id,
            name=pending.name,
            input=parse_tool_arguments(pending.arguments),
        )
        self._completed.append(call)
        self._completed_ids.add(call_id)
        logger.debug("[Stream] %s: tool call %s (%s) complete", self.name,
                     call.id, call.name)
        return [ToolCallCompleted(id=call.id, name=call.name,
                                  raw_arguments=pending.arguments)]

    def _complete_turn(self, stop_reason: str | None = None) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for call_id in list(self._pending):
            events.extend(self._complete_call(call_id))
        reason = stop_reason or self._stop_reason
        if not reason:
            reason = "tool_use" if self._completed else "end_turn"
        self._finished = True
        events.append(Completed(
            tool_calls=tuple(self._completed),
            usage=self._usage,
            stop_reason=reason,
        ))
        return events


class AnthropicDecoder(StreamDecoder):
    """Anthropic Messages API streaming events."""

    name = "anthropic"

    def __init__(self) -> None:
        super().__init__()
        self._block_ids: dict[int, str] = {}
        self._input_tokens = 0
        self._output_tokens = 0
        self._cache_read = 0
        self._cache_write = 0

    def feed(self, frame: dict) -> list[StreamEvent]:
        if self._finished:
            return []
        event_type = frame.get("type", "")

        if event_type == "message_start":
            self._record_usage(frame.get("message", {}).get("usage") or {})
            return []

        if event_type == "content_block_start":
            block = frame.get("content_block") or {}
            if block.get("type") == "tool_use" and block.get("id"):
                self._block_ids[frame.get("index", 0)] = block["id"]
                return self._start_call(block["id"], block.get("name", ""))
            if block.get("type") == "text" and block.get("text"):
                return [TextDelta(block["text"])]
            return []

        if event_type == "content_block_delta":
            delta = frame.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                text = delta.get("text", "")
                return [TextDelta(text)] if text else []
            if delta_type == "input_json_delta":
                call_id = self._block_ids.get(frame.get("index", 0))
                if call_id is None:
                    call_id = f"block_{frame.get('index', 0)}"
                    self._block_ids[frame.get("index", 0)] = call_id
                return self._append_args(call_id, delta.get("partial_json", ""))
            # thinking / signature deltas are not part of the output model
            return []

        if event_type == "content_block_stop":
            call_id = self._block_ids.pop(frame.get("index", 0), None)
            if call_id is None:
                return []
            return self._complete_call(call_id)

        if event_type == "message_delta":
            delta = frame.get("delta") or {}
            if delta.get("stop_reason"):
                self._stop_reason = delta["stop_reason"]
            self._record_usage(frame.get("usage") or {})
            return []

        if event_type == "message_stop":
            return self._complete_turn()

        if event_type == "error":
            error = frame.get("error") or {}
            return self.fail(error.get("message") or "Unknown error")

        # ping and unknown event types
        return []

    def _record_usage(self, usage: dict) -> None:
        if not usage:
            return
        if isinstance(usage.get("input_tokens"), int):
            self._input_tokens = usage["input_tokens"]
        if isinstance(usage.get("output_tokens"), int):
            self._output_tokens = usage["output_tokens"]
        if isinstance(usage.get("cache_read_input_tokens"), int):
            self._cache_read = usage["cache_read_input_tokens"]
        if isinstance(usage.get("cache_creation_input_tokens"), int):
            self._cache_write = usage["cache_creation_input_tokens"]
        self._usage = Usage(
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
            cached_input_tokens=self._cache_read,
            cache_write_tokens=self._cache_write,
        )


class ResponsesDecoder(StreamDecoder):
    """OpenAI Responses API events (also spoken by OpenRouter)."""

    name = "responses"

    def __init__(self) -> None:
        super().__init__()
        self._text_seen = False

    def feed(self, frame: dict) -> list[StreamEvent]:
        if self._finished:
            return []
        event_type = frame.get("type", "")

        if event_type == "response.output_text.delta":
            delta = frame.get("delta") or ""
            if not delta:
                return []
            self._text_seen = True
            return [TextDelta(delta)]

        if event_type == "response.output_item.added":
            item = frame.get("item") or {}
            if item.get("type") == "function_call" and item.get("id"):
                return self._start_call(item["id"], item.get("name", ""),
                                        item.get("arguments", ""))
            return []

        if event_type == "response.function_call_arguments.delta":
            item_id = frame.get("item_id")
            if not item_id:
                return []
            return self._append_args(item_id, frame.get("delta") or "")

        if event_type == "response.function_call_arguments.done":
            item_id = frame.get("item_id")
            if not item_id:
                return []
            return self._complete_call(item_id, frame.get("name"),
                                       frame.get("arguments"))

        if event_type == "response.completed":
            response = frame.get("response") or {}
            events: list[StreamEvent] = []
            for item in response.get("output") or []:
                if item.get("type") == "function_call" and item.get("id"):
                    events.extend(self._complete_call(
                        item["id"], item.get("name"), item.get("arguments")))
                elif item.get("type") == "message" and not self._text_seen:
                    # Only used when no deltas were streamed at all.
                    for block in item.get("content") or []:
                        if block.get("type") == "output_text" and block.get("text"):
                            self._text_seen = True
                            events.append(TextDelta(block["text"]))
            self._record_usage(response.get("usage") or {})
            events.extend(self._complete_turn())
            return events

        if event_type == "response.incomplete":
            response = frame.get("response") or {}
            self._record_usage(response.get("usage") or {})
            return self._complete_turn("end_turn")

        if event_type == "response.failed":
            response = frame.get("response") or {}
            error = frame.get("error") or response.get("error") or {}
            return self.fail(error.get("message") or response.get("status")
                             or "Response failed")

        if event_type == "error":
            error = frame.get("error") or {}
            return self.fail(error.get("message") or frame.get("message")
                             or "Unknown error")

        return []

    def _record_usage(self, usage: dict) -> None:
        if not usage:
            return
        details = usage.get("input_tokens_details") or {}
        self._usage = Usage(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
            cached_input_tokens=details.get("cached_tokens") or 0,
        )


_FINISH_REASONS = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
}


class ChatCompletionsDecoder(StreamDecoder):
    """OpenAI-compatible chat/completions chunks (Groq, LM Studio, ...)."""

    name = "chat_completions"

    def __init__(self) -> None:
        super().__init__()
        self._index_ids: dict[int, str] = {}

    def feed_data(self, data: str) -> list[StreamEvent]:
        if data.strip() == "[DONE]":
            if self._finished:
                return []
            return self._complete_turn()
        return super().feed_data(data)

    def feed(self, frame: dict) -> list[StreamEvent]:
        if self._finished:
            return []
        if frame.get("error"):
            error = frame["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            return self.fail(message or "Unknown error")

        events: list[StreamEvent] = []
        usage = frame.get("usage")
        if isinstance(usage, dict):
            details = usage.get("prompt_tokens_details") or {}
            self._usage = Usage(
                input_tokens=usage.get("prompt_tokens") or 0,
                output_tokens=usage.get("completion_tokens") or 0,
                cached_input_tokens=details.get("cached_tokens") or 0,
            )

        for choice in frame.get("choices") or []:
            delta = choice.get("delta") or {}
            content = delta.get("content")
            if content:
                events.append(TextDelta(content))
            for tool_delta in delta.get("tool_calls") or []:
                events.extend(self._tool_delta(tool_delta))
            finish_reason = choice.get("finish_reason")
            if finish_reason:
                self._stop_reason = _FINISH_REASONS.get(finish_reason, finish_reason)
                for call_id in list(self._pending):
                    events.extend(self._complete_call(call_id))
        return events

    def _tool_delta(self, tool_delta: dict) -> list[StreamEvent]:
        index = tool_delta.get("index", 0)
        function = tool_delta.get("function") or {}
        events: list[StreamEvent] = []
        call_id = self._index_ids.get(index)
        if call_id is None:
            call_id = tool_delta.get("id") or f"call_{index}"
            self._index_ids[index] = call_id
            events.extend(self._start_call(call_id, function.get("name", "")))
        elif function.get("name"):
            pending = self._pending.get(call_id)
            if pending is not None and not pending.name:
                pending.name = function["name"]
        events.extend(self._append_args(call_id, function.get("arguments") or ""))
        return events


DECODERS = {
    "anthropic": AnthropicDecoder,
    "openai": ResponsesDecoder,
    "openrouter": ResponsesDecoder,
    "openai_compatible": ChatCompletionsDecoder,
}


def create_decoder(provider: str) -> StreamDecoder:
    try:
        return DECODERS[provider]()
    except KeyError:
        raise ValueError(f"Unknown provider: {provider}") from None
