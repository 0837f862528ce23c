"""
OpenAI LLM clients.

``OpenAIClient`` speaks the Responses API; ``OpenAICompatibleClient``
works with any provider that implements the OpenAI chat/completions API
(Groq, Together.ai, LM Studio, Ollama's OpenAI endpoint, ...).
"""

from __future__ import annotations

import copy

from .base import LLMClient
from .decoders import ChatCompletionsDecoder, ResponsesDecoder, StreamDecoder


def normalize_schema(schema: dict) -> dict:
    """Strict-mode friendly copy of a JSON schema.

    Every object schema gets ``additionalProperties: false``; nested
    properties and array items are normalized too.  ``required`` is left
    as authored so optional fields stay optional.
    """
    schema = copy.deepcopy(schema) if schema else {"type": "object", "properties": {}}
    _normalize_in_place(schema)
    return schema


def _normalize_in_place(node) -> None:
    if not isinstance(node, dict):
        return
    if node.get("type") == "object" or "properties" in node:
        node["type"] = "object"
        node.setdefault("properties", {})
        node["additionalProperties"] = False
    for child in node.get("properties", {}).values():
        _normalize_in_place(child)
    if "items" in node:
        _normalize_in_place(node["items"])


class _BearerClient(LLMClient):

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }


class OpenAIClient(_BearerClient):
    """Responses API client (``POST /responses`` with ``stream: true``)."""

    provider = "openai"

    def create_decoder(self) -> StreamDecoder:
        return ResponsesDecoder()

    def _url(self) -> str:
        return f"{self.base_url}/responses"

    def _build_payload(self, messages: list[dict], tools: list[dict],
                       system: str) -> dict:
        payload = {
            "model": self.model,
            "input": messages,
            "max_output_tokens": self.max_tokens,
            "stream": True,
        }
        if system:
            payload["instructions"] = system
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": normalize_schema(tool.get("input_schema", {})),
                }
                for tool in tools
            ]
            payload["parallel_tool_calls"] = True
        return payload


class OpenAICompatibleClient(_BearerClient):
    """chat/completions client for OpenAI-compatible servers."""

    provider = "openai_compatible"

    def create_decoder(self) -> StreamDecoder:
        return ChatCompletionsDecoder()

    def _url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict:
        headers = super()._headers()
        if not self.api_key:
            # Local servers usually run without auth.
            headers.pop("Authorization")
        return headers

    def _build_payload(self, messages: list[dict], tools: list[dict],
                       system: str) -> dict:
        chat = list(messages)
        if system:
            chat.insert(0, {"role": "system", "content": system})
        payload = {
            "model": self.model,
            "messages": chat,
            "max_tokens": self.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool["name"],
                        "description": tool.get("description", ""),
                        "parameters": tool.get("input_schema", {"type": "object"}),
                    },
                }
                for tool in tools
            ]
        return payload
