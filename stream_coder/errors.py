"""
Error taxonomy for the streaming edit pipeline.

Edit and apply errors are raised inside operations and converted into
result objects at the tool boundary; stream errors are reported through
``Failed`` events and ``TurnResult.error``.
"""

from __future__ import annotations


class StreamCoderError(Exception):
    """Base class for all pipeline errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Edit errors
# ---------------------------------------------------------------------------

class EditError(StreamCoderError):
    """An edit operation could not produce new content."""

    kind = "edit_error"


class PathEscapesRoot(EditError):
    kind = "path_escapes_root"

    def __init__(self, path: str):
        super().__init__(f"Path escapes repository root: {path}")
        self.path = path


class FileNotFound(EditError):
    kind = "file_not_found"

    def __init__(self, path: str, detail: str = ""):
        message = f"File not found: {path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.path = path


class NotAFile(EditError):
    kind = "not_a_file"

    def __init__(self, path: str):
        super().__init__(f"Not a regular file: {path}")
        self.path = path


class FileAlreadyExists(EditError):
    kind = "file_exists"

    def __init__(self, path: str):
        super().__init__(
            f"File already exists: {path}. Set overwrite to true to replace it."
        )
        self.path = path


class NoMatch(EditError):
    """Search text occurs zero times; carries advisory diagnostics."""

    kind = "no_match"

    def __init__(self, diagnostics: str = ""):
        message = ("Text not found in file. Use read_file to verify the "
                   "exact content you want to replace.")
        if diagnostics:
            message += "\n\n" + diagnostics
        super().__init__(message)
        self.diagnostics = diagnostics


class OccurrenceCountMismatch(EditError):
    kind = "occurrence_count_mismatch"

    def __init__(self, found: int, expected: int):
        super().__init__(
            f"Expected {expected} occurrence(s) but found {found}. "
            "Use read_file to verify."
        )
        self.found = found
        self.expected = expected


class AnchorNotFound(EditError):
    kind = "anchor_not_found"

    def __init__(self, message: str, anchor: str = ""):
        super().__init__(message)
        self.anchor = anchor


class AmbiguousAnchor(AnchorNotFound):
    kind = "ambiguous_anchor"

    def __init__(self, anchor: str, candidates: list[tuple[int, str]],
                 total: int | None = None):
        total = total if total is not None else len(candidates)
        lines = "\n".join(f"  line {n}: {preview}" for n, preview in candidates)
        super().__init__(
            f"Multiple matches ({total}) found for anchor "
            f"\"{anchor}\". Specify occurrence (1-{total}) or use "
            f"a more specific anchor.\n{lines}",
            anchor=anchor,
        )
        self.candidates = candidates
        self.total = total


class AnchorOrderInvalid(EditError):
    kind = "anchor_order_invalid"

    def __init__(self, start_line: int, end_line: int):
        super().__init__(
            f"Block end (line {end_line}) must come after block start "
            f"(line {start_line})."
        )
        self.start_line = start_line
        self.end_line = end_line


class LineOutOfRange(EditError):
    kind = "line_out_of_range"

    def __init__(self, line: int, line_count: int):
        bound = line_count + 1
        if line < 1:
            message = (f"Line number must be between 1 and {bound}, "
                       f"got {line}")
        else:
            message = (f"Line {line} exceeds file length ({line_count} lines). "
                       f"Use {bound} to append.")
        super().__init__(message)
        self.line = line
        self.max_line = bound


class InvalidEditArguments(EditError):
    kind = "invalid_arguments"


# ---------------------------------------------------------------------------
# Stream errors
# ---------------------------------------------------------------------------

class StreamError(StreamCoderError):
    kind = "stream_error"


class StreamTransportError(StreamError):
    kind = "stream_transport_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamCancelled(StreamError):
    kind = "stream_cancelled"

    def __init__(self, message: str = "Stream cancelled"):
        super().__init__(message)


class StreamTimedOut(StreamCancelled):
    kind = "stream_timed_out"

    def __init__(self, timeout: float):
        super().__init__(f"Stream timed out after {timeout:.0f}s")
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Apply errors
# ---------------------------------------------------------------------------

class ApplyError(StreamCoderError):
    kind = "apply_error"


class ApplyWriteFailed(ApplyError):
    kind = "apply_write_failed"

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to stage {path}: {reason}")
        self.path = path


class ApplyRenameFailed(ApplyError):
    kind = "apply_rename_failed"

    def __init__(self, path: str, reason: str, written: list[str]):
        message = f"Failed to move staged content onto {path}: {reason}"
        if written:
            message += (f" ({len(written)} file(s) already written: "
                        f"{', '.join(written)})")
        super().__init__(message)
        self.path = path
        self.written = written
