"""
OpenRouter client: OpenRouter's Responses-compatible endpoint.
"""

from __future__ import annotations

from .openai_client import OpenAIClient


class OpenRouterClient(OpenAIClient):

    provider = "openrouter"

    def __init__(self, base_url: str, model: str, api_key: str = "",
                 app_url: str = "", app_title: str = "stream-coder", **kwargs):
        super().__init__(base_url, model, api_key, **kwargs)
        self.app_url = app_url
        self.app_title = app_title

    def _headers(self) -> dict:
        headers = super()._headers()
        if self.app_url:
            headers["HTTP-Referer"] = self.app_url
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers
