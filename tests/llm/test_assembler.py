"""Tests for ToolCallAssembler."""

from stream_coder.llm.assembler import ToolCallAssembler
from stream_coder.llm.events import (
    Completed,
    TextDelta,
    ToolCall,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    ToolInputParseError,
)


class TestToolCallAssembler:
    def test_fragments_are_joined(self):
        calls = ToolCallAssembler().feed_all([
            ToolCallStarted("c1", "exact_replace"),
            ToolCallArgsDelta("c1", '{"old": '),
            ToolCallArgsDelta("c1", '"a"}'),
            ToolCallCompleted("c1", "exact_replace"),
        ])

        assert calls == [ToolCall("c1", "exact_replace", {"old": "a"})]

    def test_completion_arguments_win(self):
        calls = ToolCallAssembler().feed_all([
            ToolCallStarted("c1", "x"),
            ToolCallArgsDelta("c1", '{"partial'),
            ToolCallCompleted("c1", "x", raw_arguments='{"full": true}'),
        ])

        assert calls[0].input == {"full": True}

    def test_duplicate_completion_is_ignored(self):
        assembler = ToolCallAssembler()
        events = [
            ToolCallStarted("c1", "x"),
            ToolCallCompleted("c1", "x", "{}"),
            ToolCallCompleted("c1", "x", '{"again": 1}'),
            Completed(tool_calls=(ToolCall("c1", "x", {"again": 1}),)),
        ]

        assert assembler.feed_all(events) == [ToolCall("c1", "x", {})]

    def test_delta_without_start_creates_entry(self):
        assembler = ToolCallAssembler()
        assembler.feed(ToolCallArgsDelta("orphan", "{}"))

        assert assembler.pending_ids() == ["orphan"]

        call = assembler.feed(ToolCallCompleted("orphan", "create_file"))
        assert call == ToolCall("orphan", "create_file", {})
        assert assembler.pending_ids() == []

    def test_bad_json_becomes_parse_error(self):
        calls = ToolCallAssembler().feed_all([
            ToolCallStarted("c1", "x"),
            ToolCallArgsDelta("c1", '{"broken'),
            ToolCallCompleted("c1", "x"),
        ])

        assert isinstance(calls[0].input, ToolInputParseError)
        assert not calls[0].input_ok

    def test_restated_calls_on_terminal_event(self):
        calls = ToolCallAssembler().feed_all([
            TextDelta("hi"),
            Completed(tool_calls=(ToolCall("late", "create_file", {"path": "p"}),)),
        ])

        assert calls == [ToolCall("late", "create_file", {"path": "p"})]

    def test_order_is_completion_order(self):
        calls = ToolCallAssembler().feed_all([
            ToolCallStarted("a", "one"),
            ToolCallStarted("b", "two"),
            ToolCallCompleted("b", "two", "{}"),
            ToolCallCompleted("a", "one", "{}"),
        ])

        assert [c.id for c in calls] == ["b", "a"]
