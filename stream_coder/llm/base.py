"""
Base LLM client: streaming transport, cancellation and retry policy shared
by every provider.
"""

from __future__ import annotations

import logging
import random
import re
from abc import ABC, abstractmethod
from typing import Callable, Optional

import requests

from .cancellation import CancelToken
from .decoders import StreamDecoder
from .events import Completed, Failed, StreamEvent, TurnResult
from .sse import iter_sse_data
from .stream import drive_stream

logger = logging.getLogger(__name__)

_NOT_STARTED = "not_started"

_RETRYABLE_PATTERNS = [
    re.compile(r"econnrefused|econnreset|etimedout|connection (?:refused|reset|aborted)"
               r"|timed? ?out|fetch failed|max retries exceeded", re.IGNORECASE),
    re.compile(r"\b429\b|rate.?limit|too many requests", re.IGNORECASE),
    re.compile(r"\b5\d{2}\b|overloaded|service unavailable|internal server error",
               re.IGNORECASE),
    re.compile(r"incomplete.*tool.*call|possible.*timeout", re.IGNORECASE),
]


def is_retryable_error(message: str) -> bool:
    """True for transient failures worth another attempt."""
    return any(p.search(message or "") for p in _RETRYABLE_PATTERNS)


def error_message_from_response(response, provider: str) -> str:
    """Extract a human-readable message from an HTTP error response."""
    fallback = f"{provider} API error: {response.status_code}"
    try:
        body = response.text
    except (requests.RequestException, AttributeError):
        return fallback
    try:
        data = response.json()
    except ValueError:
        return body.strip() or fallback
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"{fallback}: {error['message']}"
        if isinstance(error, str) and error:
            return f"{fallback}: {error}"
    return fallback


class LLMClient(ABC):
    """Streams one model turn into normalized events.

    Subclasses provide the request (``_url``, ``_headers``,
    ``_build_payload``) and the decoder for their protocol; this class
    owns the transport, cancellation, timeout and retry policy.
    """

    provider = "base"

    def __init__(self, base_url: str, model: str, api_key: str = "",
                 max_retries: int = 3, retry_delay: float = 2.0,
                 stream_timeout: float = 600.0, connect_timeout: float = 10.0,
                 read_timeout: float = 120.0, max_tokens: int = 8192):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.stream_timeout = stream_timeout
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_tokens = max_tokens

    # ── Public entry point ──

    def stream_turn(self, messages: list[dict], tools: Optional[list[dict]] = None,
                    system: str = "", cancel: Optional[CancelToken] = None,
                    on_event: Optional[Callable[[StreamEvent], None]] = None,
                    ) -> TurnResult:
        """Stream one turn with timeout, cancellation and retry.

        Retries with jittered exponential backoff happen only for
        retryable errors raised before the stream opened, so a caller
        never sees a turn's events twice.
        """
        token = CancelToken.with_timeout(self.stream_timeout, parent=cancel)
        payload = self._build_payload(messages, tools or [], system)
        try:
            return self._stream_with_retry(payload, token, on_event)
        finally:
            token.release()

    def _stream_with_retry(self, payload: dict, token: CancelToken,
                           on_event: Optional[Callable[[StreamEvent], None]],
                           ) -> TurnResult:
        result = TurnResult()

        for attempt in range(1, self.max_retries + 1):
            result = self._attempt(payload, token, on_event)
            if result.error_kind != _NOT_STARTED:
                return result
            if attempt == self.max_retries or not is_retryable_error(result.error):
                break
            wait = self.retry_delay * (2 ** (attempt - 1))
            wait += wait * 0.1 * random.random()
            if "429" in result.error:
                wait *= 2
            logger.warning("[%s] Attempt %d/%d failed (%s); retrying in %.1fs",
                           self.provider, attempt, self.max_retries,
                           result.error, wait)
            if token.wait(wait):
                return self._cancelled_before_stream(token, on_event)

        result.error_kind = "stream_transport_error"
        if on_event is not None:
            on_event(Failed(message=result.error, kind=result.error_kind))
        return result

    # ── Transport ──

    def _attempt(self, payload: dict, token: CancelToken,
                 forward: Optional[Callable[[StreamEvent], None]]) -> TurnResult:
        if token.cancelled:
            return self._cancelled_before_stream(token, forward)

        logger.debug("[%s] POST %s model=%s", self.provider, self._url(), self.model)
        try:
            response = requests.post(
                self._url(), headers=self._headers(), json=payload, stream=True,
                timeout=(self.connect_timeout, self.read_timeout),
            )
        except requests.RequestException as exc:
            if token.cancelled:
                return self._cancelled_before_stream(token, forward)
            return self._deferred_failure(f"{self.provider} request failed: {exc}")

        if response.status_code >= 400:
            message = error_message_from_response(response, self.provider)
            response.close()
            logger.warning("[%s] %s", self.provider, message)
            return self._deferred_failure(message)

        token.add_callback(response.close)
        frames = iter_sse_data(response.iter_lines(decode_unicode=True))
        result = drive_stream(self.create_decoder(), frames, token,
                              on_event=forward, close=response.close)
        if result.ok:
            logger.debug("[%s] Turn finished: stop=%s tool_calls=%d chars=%d",
                         self.provider, result.stop_reason,
                         len(result.tool_calls), len(result.text))
        return result

    @staticmethod
    def _deferred_failure(message: str) -> TurnResult:
        # Reported to the caller only once retries are exhausted.
        return TurnResult(error=message, error_kind=_NOT_STARTED)

    @staticmethod
    def _cancelled_before_stream(token: CancelToken, on_event) -> TurnResult:
        reason = token.reason or "user"
        if on_event is not None:
            on_event(Completed(stop_reason="cancelled", cancel_reason=reason))
        return TurnResult(stop_reason="cancelled", cancel_reason=reason)

    # ── Subclass hooks ──

    @abstractmethod
    def create_decoder(self) -> StreamDecoder:
        """Fresh decoder for this provider's protocol."""

    @abstractmethod
    def _url(self) -> str:
        ...

    @abstractmethod
    def _headers(self) -> dict:
        ...

    @abstractmethod
    def _build_payload(self, messages: list[dict], tools: list[dict],
                       system: str) -> dict:
        """Vendor request body; *tools* use the neutral
        ``{name, description, input_schema}`` shape."""


