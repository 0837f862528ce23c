"""
Edit engine: turns edit instructions into diffs and an apply payload.

Nothing is written here.  Each call reads the current file content,
runs the pure operation from :mod:`.operations`, diffs the result and
returns an :class:`EditResult`; the payload is handed to
:class:`~stream_coder.editing.atomic.AtomicApplier` by the caller.
Errors raised by operations are converted to failed results at this
boundary.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from ..errors import (
    EditError,
    FileAlreadyExists,
    FileNotFound,
    InvalidEditArguments,
    NotAFile,
)
from .atomic import KIND_CREATE, KIND_REPLACE, ApplyEntry
from .diff import FileDiff, compute_create_file_diff, compute_unified_diff
from .metrics import log_edit_metric
from .operations import (
    AnchorEdit,
    BlockReplace,
    CreateFile,
    EditOperation,
    ExactReplace,
    FileWrite,
    InsertAtLine,
    WriteOperation,
)
from .paths import read_text, resolve_safe_path

logger = logging.getLogger(__name__)

AnyOperation = Union[EditOperation, WriteOperation]


@dataclass
class EditResult:
    """Outcome of preparing one or more edits."""
    ok: bool = False
    diffs: list[FileDiff] = field(default_factory=list)
    apply_payload: list[ApplyEntry] = field(default_factory=list)
    error: str = ""
    kind: str = ""
    details: dict = field(default_factory=dict)

    @property
    def stats(self) -> dict:
        return {
            "filesChanged": len(self.diffs),
            "totalLinesAdded": sum(d.lines_added for d in self.diffs),
            "totalLinesRemoved": sum(d.lines_removed for d in self.diffs),
        }

    def to_dict(self) -> dict:
        if not self.ok:
            data = {"ok": False, "error": self.error, "kind": self.kind}
            data.update(self.details)
            return data
        return {
            "ok": True,
            "diffsByFile": [d.to_dict() for d in self.diffs],
            "applyPayload": [e.to_dict() for e in self.apply_payload],
            "stats": self.stats,
        }

    @classmethod
    def failure(cls, exc: EditError, **details) -> "EditResult":
        extra = dict(details)
        if getattr(exc, "candidates", None):
            extra["candidates"] = [{"line": n, "preview": p} for n, p in exc.candidates]
        return cls(ok=False, error=exc.message, kind=exc.kind, details=extra)


@dataclass
class _FileState:
    path: str
    original: Optional[str]
    current: Optional[str]


class EditEngine:
    """Prepare file edits confined to *root*.

    Parameters
    ----------
    root:
        Directory every edit path is resolved against; paths escaping it
        are rejected.
    record_metrics:
        Append one record per prepared edit to the edit metrics journal.
    """

    def __init__(self, root: str, record_metrics: bool = False) -> None:
        self.root = os.path.abspath(root)
        self.record_metrics = record_metrics

    # ── Single edits ──

    def exact_replace(self, path: str, old: str, new: str,
                      expected_occurrences: Optional[int] = None) -> EditResult:
        return self.prepare(path, ExactReplace(old, new, expected_occurrences))

    def block_replace(self, path: str, start_anchor: str, end_anchor: str,
                      content: str, inclusive: bool = False) -> EditResult:
        return self.prepare(path, BlockReplace(start_anchor, end_anchor, content, inclusive))

    def insert_at_line(self, path: str, line: int, content: str) -> EditResult:
        return self.prepare(path, InsertAtLine(line, content))

    def anchor_edit(self, path: str, mode: str, anchor: str, content: str,
                    anchor_end: Optional[str] = None, occurrence: Optional[int] = None,
                    inclusive: bool = False) -> EditResult:
        return self.prepare(path, AnchorEdit(mode, anchor, content, anchor_end,
                                             occurrence, inclusive))

    def create_file(self, path: str, content: str, overwrite: bool = False) -> EditResult:
        return self.prepare(path, CreateFile(content, overwrite))

    def prepare_file_write(self, path: str, content: str, mode: str = "create") -> EditResult:
        """Prepare the write implied by a completed FILEBLOCK session."""
        return self.prepare(path, FileWrite(content, mode))

    def prepare(self, path: str, operation: AnyOperation) -> EditResult:
        result = self.prepare_batch([(path, operation)])
        result.details.pop("errors", None)
        return result

    # ── Batches ──

    def prepare_batch(self, edits: Sequence[tuple[str, AnyOperation]]) -> EditResult:
        """Prepare several edits as one unit.

        Edits to the same file are applied in order, each seeing the
        result of the previous ones, and produce one consolidated diff
        per file.  If any edit fails the whole batch fails and reports
        every failing edit.
        """
        if not edits:
            return EditResult.failure(InvalidEditArguments("No edits provided"))

        files: dict[str, _FileState] = {}
        errors: list[str] = []
        first_error: Optional[EditError] = None

        for index, (path, operation) in enumerate(edits, 1):
            try:
                target = resolve_safe_path(self.root, path)
                state = files.get(target)
                if state is None:
                    original = self._read_optional(path, target)
                    state = files[target] = _FileState(path, original, original)
                state.current = self._transform(path, state.current, operation)
            except EditError as exc:
                logger.info("[Edit] %s on %s failed: %s",
                            type(operation).__name__, path, exc.message)
                errors.append(exc.message if len(edits) == 1
                              else f"Edit {index} ({path}): {exc.message}")
                first_error = first_error or exc
                self._record(path, type(operation).__name__, ok=False, error_kind=exc.kind)

        if first_error is not None:
            result = EditResult.failure(first_error, errors=errors)
            if len(edits) > 1:
                result.error = "Batch validation failed:\n" + "\n".join(errors)
            return result

        result = EditResult(ok=True)
        for state in files.values():
            if state.original is None:
                diff = compute_create_file_diff(state.current, state.path)
                kind = KIND_CREATE
            else:
                diff = compute_unified_diff(state.original, state.current, state.path)
                kind = KIND_REPLACE
            result.diffs.append(diff)
            result.apply_payload.append(ApplyEntry(
                path=state.path,
                content=state.current,
                original_content=state.original,
                kind=kind,
            ))
            self._record(state.path, kind, ok=True, diff=diff)
        logger.debug("[Edit] Prepared %d edit(s): %s", len(edits), result.stats)
        return result

    # ── Internals ──

    @staticmethod
    def _read_optional(path: str, target: str) -> Optional[str]:
        if not os.path.exists(target):
            return None
        if not os.path.isfile(target):
            raise NotAFile(path)
        try:
            return read_text(target)
        except (OSError, UnicodeDecodeError) as exc:
            raise FileNotFound(path, f"cannot read: {exc}") from exc

    @staticmethod
    def _transform(path: str, current: Optional[str], operation: AnyOperation) -> str:
        if isinstance(operation, CreateFile):
            if current is not None and not operation.overwrite:
                raise FileAlreadyExists(path)
            return operation.content
        if isinstance(operation, FileWrite):
            if operation.mode == "append":
                if current is None:
                    raise FileNotFound(path, "cannot append to a missing file")
                return current + operation.content
            if operation.mode != "create":
                raise InvalidEditArguments(f"Unknown write mode: {operation.mode}")
            return operation.content
        if current is None:
            raise FileNotFound(path)
        return operation.apply(current)

    def _record(self, path: str, operation: str, ok: bool, error_kind: str = "",
                diff: Optional[FileDiff] = None) -> None:
        if not self.record_metrics:
            return
        entry = {"file": path, "operation": operation, "success": ok}
        if error_kind:
            entry["error_kind"] = error_kind
        if diff is not None:
            entry["lines_added"] = diff.lines_added
            entry["lines_removed"] = diff.lines_removed
        log_edit_metric(entry, project_root=self.root)
