"""
Pulls SSE payloads from a transport, one read at a time,
through a decoder and folds the resulting events into a ``TurnResult``.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

import requests

from .cancellation import CancelToken
from .decoders import StreamDecoder
from .events import Completed, Failed, StreamEvent, TextDelta, TurnResult

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], None]


def drive_stream(
    decoder: StreamDecoder,
    frames: Iterable[str],
    cancel: CancelToken | None = None,
    on_event: EventCallback | None = None,
    close: Callable[[], None] | None = None,
) -> TurnResult:
    """Run one turn to its terminal event.

    Parameters
    ----------
    decoder:
        Fresh decoder for the backend protocol.
    frames:
        Iterator of SSE ``data`` payloads; each ``next()`` is one transport
        read.
    cancel:
        Observed before and after every read.  When tripped the decoder
        reports a ``cancelled`` completion, the frame just read (if any) is
        dropped and no further data is read.
    on_event:
        Receives every normalized event, in order, as it is decoded.
    close:
        Releases the transport; always called exactly once.

    Returns
    -------
    TurnResult
        Text and tool calls assembled so far, plus usage/stop reason on
        completion or ``error`` on failure.
    """
    result = TurnResult()
    text_parts: list[str] = []

    def emit(events: list[StreamEvent]) -> None:
        for event in events:
            if isinstance(event, TextDelta):
                text_parts.append(event.text)
            elif isinstance(event, Completed):
                result.usage = event.usage
                result.stop_reason = event.stop_reason
                result.cancel_reason = event.cancel_reason
            elif isinstance(event, Failed):
                result.error = event.message
                result.error_kind = event.kind
            if on_event is not None:
                on_event(event)

    iterator = iter(frames)
    try:
        while not decoder.finished:
            if cancel is not None and cancel.cancelled:
                emit(decoder.cancel(cancel.reason))
                break
            try:
                data = next(iterator)
            except StopIteration:
                data = None
            # A read that returns after the token tripped is discarded.
            if cancel is not None and cancel.cancelled:
                emit(decoder.cancel(cancel.reason))
                break
            if data is None:
                emit(decoder.finish())
                break
            emit(decoder.feed_data(data))
    except (requests.RequestException, OSError) as exc:
        if cancel is not None and cancel.cancelled:
            emit(decoder.cancel(cancel.reason))
        else:
            logger.warning("[Stream] Transport error: %s", exc)
            emit(decoder.fail(f"Stream transport error: {exc}"))
    finally:
        if close is not None:
            try:
                close()
            except Exception as exc:
                logger.debug("[Stream] Transport close failed: %s", exc)

    result.text = "".join(text_parts)
    result.tool_calls = decoder.tool_calls
    return result
