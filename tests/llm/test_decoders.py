"""Tests for the per-vendor stream decoders."""

import json

import pytest

from stream_coder.llm.decoders import (
    INCOMPLETE_TOOL_CALLS,
    AnthropicDecoder,
    ChatCompletionsDecoder,
    ResponsesDecoder,
    create_decoder,
)
from stream_coder.llm.events import (
    Completed,
    Failed,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    Usage,
)


def run(decoder, frames, finish=True):
    events = []
    for frame in frames:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        events.extend(decoder.feed_data(data))
    if finish:
        events.extend(decoder.finish())
    return events


def text_of(events):
    return "".join(e.text for e in events if isinstance(e, TextDelta))


def terminal(events):
    assert isinstance(events[-1], (Completed, Failed))
    return events[-1]


class TestAnthropicDecoder:
    def test_text_and_tool_call(self):
        frames = [
            {"type": "message_start", "message": {"usage": {
                "input_tokens": 12, "output_tokens": 1,
                "cache_read_input_tokens": 4, "cache_creation_input_tokens": 2}}},
            {"type": "content_block_start", "index": 0,
             "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "text_delta", "text": "Let me "}},
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "text_delta", "text": "edit."}},
            {"type": "content_block_stop", "index": 0},
            {"type": "content_block_start", "index": 1,
             "content_block": {"type": "tool_use", "id": "toolu_1", "name": "exact_replace"}},
            {"type": "content_block_delta", "index": 1,
             "delta": {"type": "input_json_delta", "partial_json": '{"path": "a.t'}},
            {"type": "content_block_delta", "index": 1,
             "delta": {"type": "input_json_delta", "partial_json": 'xt"}'}},
            {"type": "content_block_stop", "index": 1},
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"},
             "usage": {"output_tokens": 40}},
            {"type": "message_stop"},
        ]

        events = run(AnthropicDecoder(), frames)

        assert text_of(events) == "Let me edit."
        assert [type(e) for e in events if not isinstance(e, TextDelta)] == [
            ToolCallStarted, ToolCallArgsDelta, ToolCallArgsDelta, ToolCallCompleted, Completed,
        ]
        done = terminal(events)
        assert done.stop_reason == "tool_use"
        assert done.tool_calls[0].input == {"path": "a.txt"}
        assert done.usage == Usage(input_tokens=12, output_tokens=40,
                                   cached_input_tokens=4, cache_write_tokens=2)

    def test_thinking_deltas_are_ignored(self):
        frames = [
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "thinking_delta", "thinking": "hmm"}},
            {"type": "ping"},
            {"type": "message_stop"},
        ]

        events = run(AnthropicDecoder(), frames)

        assert len(events) == 1
        assert terminal(events).stop_reason == "end_turn"

    def test_error_frame_fails(self):
        events = run(AnthropicDecoder(), [
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        ])

        assert events == [Failed(message="Overloaded")]

    def test_transport_end_with_pending_call(self):
        frames = [
            {"type": "content_block_start", "index": 0,
             "content_block": {"type": "tool_use", "id": "toolu_9", "name": "create_file"}},
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "input_json_delta", "partial_json": '{"path":'}},
        ]

        events = run(AnthropicDecoder(), frames)

        assert terminal(events) == Failed(message=INCOMPLETE_TOOL_CALLS)

    def test_input_before_block_start(self):
        frames = [
            {"type": "content_block_delta", "index": 3,
             "delta": {"type": "input_json_delta", "partial_json": "{}"}},
            {"type": "content_block_stop", "index": 3},
            {"type": "message_stop"},
        ]

        events = run(AnthropicDecoder(), frames)

        assert terminal(events).tool_calls[0].id == "block_3"

    def test_ignores_input_after_terminal(self):
        decoder = AnthropicDecoder()
        run(decoder, [{"type": "message_stop"}], finish=False)

        assert decoder.feed_data(json.dumps({"type": "content_block_delta", "index": 0,
                                             "delta": {"type": "text_delta", "text": "x"}})) == []
        assert decoder.finish() == []


class TestResponsesDecoder:
    def test_streamed_call_restated_on_completion(self):
        frames = [
            {"type": "response.output_text.delta", "delta": "Working"},
            {"type": "response.output_item.added",
             "item": {"type": "function_call", "id": "fc_1", "name": "insert_at_line"}},
            {"type": "response.function_call_arguments.delta", "item_id": "fc_1",
             "delta": '{"line": 2}'},
            {"type": "response.function_call_arguments.done", "item_id": "fc_1",
             "arguments": '{"line": 2}'},
            {"type": "response.completed", "response": {
                "output": [
                    {"type": "message", "content": [{"type": "output_text", "text": "Working"}]},
                    {"type": "function_call", "id": "fc_1", "name": "insert_at_line",
                     "arguments": '{"line": 2}'},
                ],
                "usage": {"input_tokens": 5, "output_tokens": 7,
                          "input_tokens_details": {"cached_tokens": 3}},
            }},
        ]

        events = run(ResponsesDecoder(), frames)

        assert text_of(events) == "Working"
        completions = [e for e in events if isinstance(e, ToolCallCompleted)]
        assert len(completions) == 1
        assert completions[0].name == "insert_at_line"
        done = terminal(events)
        assert done.stop_reason == "tool_use"
        assert len(done.tool_calls) == 1
        assert done.usage == Usage(input_tokens=5, output_tokens=7, cached_input_tokens=3)

    def test_call_only_on_completion(self):
        frames = [{"type": "response.completed", "response": {"output": [
            {"type": "function_call", "id": "fc_2", "name": "create_file",
             "arguments": '{"path": "x"}'},
        ]}}]

        events = run(ResponsesDecoder(), frames)

        assert terminal(events).tool_calls[0].input == {"path": "x"}

    def test_message_text_used_without_deltas(self):
        frames = [{"type": "response.completed", "response": {"output": [
            {"type": "message", "content": [{"type": "output_text", "text": "Hi"}]},
        ]}}]

        events = run(ResponsesDecoder(), frames)

        assert text_of(events) == "Hi"
        assert terminal(events).stop_reason == "end_turn"

    def test_incomplete_ends_turn(self):
        events = run(ResponsesDecoder(), [{"type": "response.incomplete", "response": {}}])

        assert terminal(events).stop_reason == "end_turn"

    def test_failed_response(self):
        events = run(ResponsesDecoder(), [
            {"type": "response.failed", "response": {"error": {"message": "rate limited"}}},
        ])

        assert terminal(events) == Failed(message="rate limited")

    def test_garbage_frame(self):
        events = run(ResponsesDecoder(), ["not json"])

        assert isinstance(terminal(events), Failed)
        assert "Unparseable" in terminal(events).message


class TestChatCompletionsDecoder:
    def test_text_tool_calls_and_usage(self):
        frames = [
            {"choices": [{"delta": {"content": "Sure"}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "call_a", "function": {"name": "exact_replace",
                                                          "arguments": '{"old":'}},
            ]}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": ' "x"}'}},
            ]}}]},
            {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
            {"choices": [], "usage": {"prompt_tokens": 9, "completion_tokens": 3}},
            "[DONE]",
        ]

        events = run(ChatCompletionsDecoder(), frames)

        assert text_of(events) == "Sure"
        done = terminal(events)
        assert done.stop_reason == "tool_use"
        assert done.tool_calls[0].input == {"old": "x"}
        assert done.usage == Usage(input_tokens=9, output_tokens=3)

    def test_missing_call_id_uses_index(self):
        frames = [
            {"choices": [{"delta": {"tool_calls": [
                {"index": 1, "function": {"name": "create_file", "arguments": "{}"}},
            ]}}]},
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
            "[DONE]",
        ]

        done = terminal(run(ChatCompletionsDecoder(), frames))

        assert done.tool_calls[0].id == "call_1"
        assert done.stop_reason == "end_turn"

    def test_length_finish_reason(self):
        frames = [{"choices": [{"delta": {"content": "x"}, "finish_reason": "length"}]}]

        assert terminal(run(ChatCompletionsDecoder(), frames)).stop_reason == "max_tokens"

    def test_pending_call_without_finish(self):
        frames = [{"choices": [{"delta": {"tool_calls": [
            {"index": 0, "id": "c", "function": {"name": "x", "arguments": "{"}},
        ]}}]}]

        assert terminal(run(ChatCompletionsDecoder(), frames)).message == INCOMPLETE_TOOL_CALLS

    def test_error_chunk(self):
        events = run(ChatCompletionsDecoder(), [{"error": {"message": "bad model"}}])

        assert terminal(events) == Failed(message="bad model")


class TestCancelAndFactory:
    def test_cancel_reports_cancelled_completion(self):
        decoder = ChatCompletionsDecoder()
        run(decoder, [{"choices": [{"delta": {"content": "par"}}]}], finish=False)

        events = decoder.cancel("timeout")

        assert events == [Completed(stop_reason="cancelled", cancel_reason="timeout")]
        assert decoder.finished

    @pytest.mark.parametrize("provider,cls", [
        ("anthropic", AnthropicDecoder),
        ("openai", ResponsesDecoder),
        ("openrouter", ResponsesDecoder),
        ("openai_compatible", ChatCompletionsDecoder),
    ])
    def test_create_decoder(self, provider, cls):
        assert isinstance(create_decoder(provider), cls)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_decoder("carrier-pigeon")
