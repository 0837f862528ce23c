"""
Server-sent-event framing.

Turns the line iterator of a streaming HTTP response into one ``data``
payload per event.  Comment lines (``:``) and ``event:``/``id:`` fields
are ignored; multi-line ``data`` fields are joined with newlines.
"""

from __future__ import annotations

from typing import Iterable, Iterator


def iter_sse_data(lines: Iterable[str | bytes]) -> Iterator[str]:
    """Yield the ``data`` payload of each SSE event in *lines*."""
    data_lines: list[str] = []
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            value = line[5:]
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)
    if data_lines:
        yield "\n".join(data_lines)
