"""
Anthropic Claude LLM client: streams the Anthropic Messages API.
"""

from __future__ import annotations

from .base import LLMClient
from .decoders import AnthropicDecoder, StreamDecoder


class AnthropicClient(LLMClient):

    provider = "anthropic"
    ANTHROPIC_VERSION = "2023-06-01"

    def create_decoder(self) -> StreamDecoder:
        return AnthropicDecoder()

    def _url(self) -> str:
        return f"{self.base_url}/messages"

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.ANTHROPIC_VERSION,
        }

    def _build_payload(self, messages: list[dict], tools: list[dict],
                       system: str) -> dict:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "stream": True,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "input_schema": tool.get("input_schema", {"type": "object"}),
                }
                for tool in tools
            ]
        return payload
