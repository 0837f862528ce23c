"""
Edit operations: pure transformations from original content to new
content.  Each ``apply`` either returns the new text or raises a typed
:class:`~stream_coder.errors.EditError`; none of them touch the disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..errors import (
    AmbiguousAnchor,
    AnchorNotFound,
    AnchorOrderInvalid,
    InvalidEditArguments,
    LineOutOfRange,
    NoMatch,
    OccurrenceCountMismatch,
)
from .diagnostics import diagnose_no_match
from .diff import preserve_trailing_newline

MAX_ANCHOR_CANDIDATES = 10
ANCHOR_PREVIEW_CHARS = 60

ANCHOR_MODES = ("insert_before", "insert_after", "replace_line", "replace_between")


# ── Line helpers ──

def split_lines(content: str) -> tuple[list[str], bool]:
    """Logical lines of *content* and whether it ends with a newline.

    ``"a\\nb\\n"`` has two lines, not three.
    """
    if content == "":
        return [], False
    trailing = content.endswith("\n")
    body = content[:-1] if trailing else content
    return body.split("\n"), trailing


def join_lines(lines: list[str], trailing_newline: bool) -> str:
    if not lines:
        return ""
    return "\n".join(lines) + ("\n" if trailing_newline else "")


def content_lines(content: str) -> list[str]:
    """Lines to splice in; one trailing newline is a terminator, not a blank line."""
    if content == "":
        return []
    if content.endswith("\n"):
        content = content[:-1]
    return content.split("\n")


def find_line(lines: list[str], text: str, start: int = 0) -> int:
    """0-based index of the first line at or after *start* containing *text*, or -1."""
    for i in range(start, len(lines)):
        if text in lines[i]:
            return i
    return -1


def line_preview(line: str) -> str:
    if len(line) > ANCHOR_PREVIEW_CHARS:
        return line[:ANCHOR_PREVIEW_CHARS] + "..."
    return line


def _require_text(value, name: str) -> None:
    if not isinstance(value, str) or value == "":
        raise InvalidEditArguments(f"'{name}' must be a non-empty string")


def _locate_block(lines: list[str], start_anchor: str, end_anchor: str,
                  start: int) -> int:
    """End line index for a block opening at *start*; searched strictly after it."""
    end = find_line(lines, end_anchor, start + 1)
    if end == -1:
        raise AnchorNotFound(
            f"Block end not found: \"{end_anchor}\" (searching after line "
            f"{start + 1}). Use search_text to locate the correct anchor.",
            anchor=end_anchor,
        )
    if end <= start:
        raise AnchorOrderInvalid(start + 1, end + 1)
    return end


def _splice_block(lines: list[str], start: int, end: int, new: list[str],
                  inclusive: bool) -> list[str]:
    if inclusive:
        return lines[:start] + new + lines[end + 1:]
    return lines[:start + 1] + new + lines[end:]


# ── Operations ──

@dataclass(frozen=True)
class ExactReplace:
    """Replace every non-overlapping occurrence of ``old`` with ``new``."""
    old: str
    new: str
    expected_occurrences: Optional[int] = None

    def apply(self, content: str) -> str:
        _require_text(self.old, "old")
        found = content.count(self.old)
        if found == 0:
            raise NoMatch(diagnose_no_match(content, self.old).format())
        if self.expected_occurrences is not None and found != self.expected_occurrences:
            raise OccurrenceCountMismatch(found, self.expected_occurrences)
        return preserve_trailing_newline(content, content.replace(self.old, self.new))


@dataclass(frozen=True)
class BlockReplace:
    """Replace the lines between two anchors (or including them)."""
    start_anchor: str
    end_anchor: str
    content: str
    inclusive: bool = False

    def apply(self, content: str) -> str:
        _require_text(self.start_anchor, "startAnchor")
        _require_text(self.end_anchor, "endAnchor")
        lines, trailing = split_lines(content)
        start = find_line(lines, self.start_anchor)
        if start == -1:
            raise AnchorNotFound(
                f"Block start not found: \"{self.start_anchor}\". Use "
                "search_text to locate the correct anchor.",
                anchor=self.start_anchor,
            )
        end = _locate_block(lines, self.start_anchor, self.end_anchor, start)
        new_lines = _splice_block(lines, start, end, content_lines(self.content),
                                  self.inclusive)
        return preserve_trailing_newline(content, join_lines(new_lines, trailing))


@dataclass(frozen=True)
class InsertAtLine:
    """Insert before 1-based ``line``; ``line_count + 1`` appends."""
    line: int
    content: str

    def apply(self, content: str) -> str:
        if isinstance(self.line, bool) or not isinstance(self.line, int):
            raise InvalidEditArguments("'line' must be an integer")
        lines, trailing = split_lines(content)
        if self.line < 1 or self.line > len(lines) + 1:
            raise LineOutOfRange(self.line, len(lines))
        index = self.line - 1
        new_lines = lines[:index] + content_lines(self.content) + lines[index:]
        if not lines:
            # Inserting into an empty file yields a newline-terminated file.
            trailing = True
        return join_lines(new_lines, trailing)


@dataclass(frozen=True)
class AnchorEdit:
    """Edit relative to a line containing ``anchor``.

    Modes: ``insert_before``, ``insert_after``, ``replace_line`` and
    ``replace_between`` (up to the first line after it containing
    ``anchor_end``).  When the anchor matches several lines an explicit
    1-based ``occurrence`` is required.
    """
    mode: str
    anchor: str
    content: str
    anchor_end: Optional[str] = None
    occurrence: Optional[int] = None
    inclusive: bool = False

    def apply(self, content: str) -> str:
        if self.mode not in ANCHOR_MODES:
            raise InvalidEditArguments(
                f"Invalid mode: \"{self.mode}\". Use "
                + ", ".join(f"'{m}'" for m in ANCHOR_MODES) + "."
            )
        _require_text(self.anchor, "anchor")
        if self.mode == "replace_between":
            _require_text(self.anchor_end, "anchorEnd")

        lines, trailing = split_lines(content)
        matches = [i for i, line in enumerate(lines) if self.anchor in line]
        if not matches:
            raise AnchorNotFound(
                f"Anchor text not found: \"{self.anchor}\". Use search_text or "
                "read_around to locate the correct anchor.",
                anchor=self.anchor,
            )
        if self.occurrence is None:
            if len(matches) > 1:
                candidates = [(i + 1, line_preview(lines[i]))
                              for i in matches[:MAX_ANCHOR_CANDIDATES]]
                raise AmbiguousAnchor(self.anchor, candidates, total=len(matches))
            target = matches[0]
        else:
            if self.occurrence < 1:
                raise InvalidEditArguments("'occurrence' must be at least 1")
            if self.occurrence > len(matches):
                raise AnchorNotFound(
                    f"Occurrence {self.occurrence} requested but only "
                    f"{len(matches)} match(es) found.",
                    anchor=self.anchor,
                )
            target = matches[self.occurrence - 1]

        new = content_lines(self.content)
        if self.mode == "insert_before":
            new_lines = lines[:target] + new + lines[target:]
        elif self.mode == "insert_after":
            new_lines = lines[:target + 1] + new + lines[target + 1:]
        elif self.mode == "replace_line":
            new_lines = lines[:target] + new + lines[target + 1:]
        else:
            end = _locate_block(lines, self.anchor, self.anchor_end, target)
            new_lines = _splice_block(lines, target, end, new, self.inclusive)
        return preserve_trailing_newline(content, join_lines(new_lines, trailing))


@dataclass(frozen=True)
class CreateFile:
    """Write a new file; replacing an existing one needs ``overwrite``."""
    content: str
    overwrite: bool = False


@dataclass(frozen=True)
class FileWrite:
    """Raw write from a FILEBLOCK session: ``create`` overwrites, ``append`` appends."""
    content: str
    mode: str = "create"


EditOperation = Union[ExactReplace, BlockReplace, InsertAtLine, AnchorEdit]
WriteOperation = Union[CreateFile, FileWrite]
