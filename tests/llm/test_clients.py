"""Tests for the provider clients: request shape, streaming and retry policy."""

import json
from unittest.mock import patch

import pytest
import requests

from stream_coder.llm import (
    AnthropicClient,
    CancelToken,
    OpenAIClient,
    OpenAICompatibleClient,
    OpenRouterClient,
)
from stream_coder.llm.base import error_message_from_response, is_retryable_error
from stream_coder.llm.events import Completed, Failed
from stream_coder.llm.openai_client import normalize_schema

TOOLS = [{
    "name": "exact_replace",
    "description": "Replace text",
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "opts": {"type": "object", "properties": {"n": {"type": "integer"}}},
        },
        "required": ["path"],
    },
}]


class FakeResponse:
    def __init__(self, status_code=200, lines=None, body=None):
        self.status_code = status_code
        self._lines = lines or []
        self._body = body
        self.closed = False

    @property
    def text(self):
        return json.dumps(self._body) if self._body is not None else ""

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body

    def iter_lines(self, decode_unicode=False):
        return iter(self._lines)

    def close(self):
        self.closed = True


def sse(*frames):
    lines = []
    for frame in frames:
        lines.append("data: " + (frame if isinstance(frame, str) else json.dumps(frame)))
        lines.append("")
    return lines


ANTHROPIC_OK = sse(
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "done"}},
    {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 3}},
    {"type": "message_stop"},
)


def client(cls=AnthropicClient, **kwargs):
    kwargs.setdefault("retry_delay", 0.0)
    return cls(base_url="https://api.test/v1/", model="m-1", api_key="sk-test", **kwargs)


class TestRequestShape:
    def test_anthropic_payload(self):
        c = client()
        payload = c._build_payload([{"role": "user", "content": "hi"}], TOOLS, "be brief")

        assert c._url() == "https://api.test/v1/messages"
        assert c._headers()["x-api-key"] == "sk-test"
        assert c._headers()["anthropic-version"] == "2023-06-01"
        assert payload["system"] == "be brief"
        assert payload["stream"] is True
        assert payload["tools"][0]["input_schema"] == TOOLS[0]["input_schema"]

    def test_openai_responses_payload(self):
        c = client(OpenAIClient)
        payload = c._build_payload([{"role": "user", "content": "hi"}], TOOLS, "sys")

        assert c._url() == "https://api.test/v1/responses"
        assert c._headers()["Authorization"] == "Bearer sk-test"
        assert payload["instructions"] == "sys"
        assert payload["parallel_tool_calls"] is True
        tool = payload["tools"][0]
        assert tool["type"] == "function"
        assert tool["parameters"]["additionalProperties"] is False
        assert tool["parameters"]["properties"]["opts"]["additionalProperties"] is False

    def test_compatible_payload_without_key(self):
        c = OpenAICompatibleClient(base_url="http://localhost:1234/v1", model="local")
        payload = c._build_payload([{"role": "user", "content": "hi"}], TOOLS, "sys")

        assert "Authorization" not in c._headers()
        assert c._url() == "http://localhost:1234/v1/chat/completions"
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert payload["stream_options"] == {"include_usage": True}
        assert payload["tools"][0]["function"]["name"] == "exact_replace"

    def test_openrouter_headers(self):
        c = client(OpenRouterClient, app_url="https://example.org")

        headers = c._headers()
        assert headers["HTTP-Referer"] == "https://example.org"
        assert headers["X-Title"] == "stream-coder"
        assert c._url() == "https://api.test/v1/responses"


class TestNormalizeSchema:
    def test_does_not_mutate_input(self):
        normalize_schema(TOOLS[0]["input_schema"])

        assert "additionalProperties" not in TOOLS[0]["input_schema"]

    def test_array_items_and_required(self):
        schema = normalize_schema({
            "type": "object",
            "properties": {"edits": {"type": "array", "items": {
                "type": "object", "properties": {"tool": {"type": "string"}},
                "additionalProperties": True}}},
            "required": ["edits"],
        })

        assert schema["required"] == ["edits"]
        assert schema["properties"]["edits"]["items"]["additionalProperties"] is False

    def test_empty_schema(self):
        assert normalize_schema({}) == {"type": "object", "properties": {},
                                        "additionalProperties": False}


class TestStreamTurn:
    def test_successful_turn(self):
        seen = []
        response = FakeResponse(lines=ANTHROPIC_OK)

        with patch("stream_coder.llm.base.requests.post", return_value=response) as post:
            result = client().stream_turn([{"role": "user", "content": "go"}],
                                          on_event=seen.append)

        assert result.ok
        assert result.text == "done"
        assert result.usage.output_tokens == 3
        assert response.closed
        assert post.call_args.kwargs["stream"] is True
        assert isinstance(seen[-1], Completed)

    def test_retries_transient_errors_before_stream(self):
        responses = [FakeResponse(status_code=503),
                     FakeResponse(status_code=429),
                     FakeResponse(lines=ANTHROPIC_OK)]

        with patch("stream_coder.llm.base.requests.post", side_effect=responses) as post:
            result = client(max_retries=3).stream_turn([])

        assert result.ok
        assert post.call_count == 3

    def test_connection_errors_are_retried(self):
        side_effect = [requests.ConnectionError("Connection refused"),
                       FakeResponse(lines=ANTHROPIC_OK)]

        with patch("stream_coder.llm.base.requests.post", side_effect=side_effect):
            result = client().stream_turn([])

        assert result.text == "done"

    def test_non_retryable_status_fails_once(self):
        seen = []
        bad = FakeResponse(status_code=401, body={"error": {"message": "invalid x-api-key"}})

        with patch("stream_coder.llm.base.requests.post", return_value=bad) as post:
            result = client().stream_turn([], on_event=seen.append)

        assert post.call_count == 1
        assert not result.ok
        assert result.error == "anthropic API error: 401: invalid x-api-key"
        assert result.error_kind == "stream_transport_error"
        assert seen == [Failed(message=result.error)]
        assert bad.closed

    def test_retries_exhausted(self):
        with patch("stream_coder.llm.base.requests.post",
                   return_value=FakeResponse(status_code=500)) as post:
            result = client(max_retries=2).stream_turn([])

        assert post.call_count == 2
        assert result.error_kind == "stream_transport_error"

    def test_mid_stream_failure_is_not_retried(self):
        lines = sse({"type": "content_block_delta", "index": 0,
                     "delta": {"type": "text_delta", "text": "par"}},
                    {"type": "error", "error": {"message": "Overloaded"}})

        with patch("stream_coder.llm.base.requests.post",
                   return_value=FakeResponse(lines=lines)) as post:
            result = client().stream_turn([])

        assert post.call_count == 1
        assert result.text == "par"
        assert result.error == "Overloaded"

    def test_cancelled_before_request(self):
        token = CancelToken()
        token.cancel()

        with patch("stream_coder.llm.base.requests.post") as post:
            result = client().stream_turn([], cancel=token)

        post.assert_not_called()
        assert result.cancelled
        assert result.cancel_reason == "user"

    def test_openai_compatible_turn(self):
        lines = sse({"choices": [{"delta": {"content": "ok"}, "finish_reason": "stop"}]},
                    "[DONE]")

        with patch("stream_coder.llm.base.requests.post",
                   return_value=FakeResponse(lines=lines)):
            result = client(OpenAICompatibleClient).stream_turn([])

        assert result.text == "ok"
        assert result.stop_reason == "end_turn"


class TestErrorHelpers:
    @pytest.mark.parametrize("message", [
        "anthropic API error: 429",
        "anthropic API error: 503",
        "Connection reset by peer",
        "Read timed out",
        "Stream ended with incomplete tool calls - possible timeout",
    ])
    def test_retryable(self, message):
        assert is_retryable_error(message)

    @pytest.mark.parametrize("message", [
        "anthropic API error: 400: bad request",
        "anthropic API error: 401",
        "",
    ])
    def test_not_retryable(self, message):
        assert not is_retryable_error(message)

    def test_message_without_body(self):
        response = FakeResponse(status_code=502)

        assert error_message_from_response(response, "openai") == "openai API error: 502"

    def test_message_from_string_error(self):
        response = FakeResponse(status_code=400, body={"error": "model not found"})

        assert error_message_from_response(response, "openai_compatible") == \
            "openai_compatible API error: 400: model not found"
