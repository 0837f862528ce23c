"""
Atomic applier: writes a batch of prepared edits with temp-then-rename.

Phase 1 stages every entry in a scratch directory; if any staging write
fails, all temp files are removed and no target is touched.  Phase 2
renames the staged files onto their targets, falling back to copy+delete
when the scratch directory is on another filesystem.  A failure during
phase 2 leaves earlier renames in place; the outcome lists them.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..errors import ApplyError, ApplyRenameFailed, ApplyWriteFailed, EditError
from .paths import resolve_safe_path

logger = logging.getLogger(__name__)

KIND_CREATE = "create"
KIND_REPLACE = "replace"


@dataclass
class ApplyEntry:
    """One file's new content, with the content it was computed from."""
    path: str
    content: str
    original_content: Optional[str] = None
    kind: str = KIND_REPLACE

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "path": self.path,
            "content": self.content,
            "originalContent": self.original_content,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ApplyEntry":
        return cls(
            path=data["path"],
            content=data["content"],
            original_content=data.get("originalContent"),
            kind=data.get("type", KIND_REPLACE),
        )


@dataclass
class ApplyOutcome:
    """Result of an apply batch."""
    ok: bool = False
    error: str = ""
    kind: str = ""
    written: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True, "written": list(self.written)}
        return {"ok": False, "error": self.error, "kind": self.kind,
                "written": list(self.written)}


@dataclass
class _Staged:
    path: str
    target: str
    temp: str


class AtomicApplier:
    """Apply an ``ApplyPayload`` all-or-nothing (up to the rename phase)."""

    def __init__(self, scratch_dir: Optional[str] = None) -> None:
        self._scratch_dir = scratch_dir

    def apply(self, root: str, payload: Iterable[ApplyEntry | dict]) -> ApplyOutcome:
        """Write every entry of *payload* under *root*.

        Parameters
        ----------
        root:
            Edit root; every entry path must resolve inside it.
        payload:
            ``ApplyEntry`` objects (or their dict form), applied in order.

        Returns
        -------
        ApplyOutcome
            ``ok`` on success; otherwise ``error``/``kind`` and the paths
            that were already written.
        """
        staged: list[_Staged] = []
        written: list[str] = []
        try:
            for entry in payload:
                staged.append(self._stage(root, _as_entry(entry)))
            for item in staged:
                self._commit(item, written)
        except (ApplyError, EditError) as exc:
            self._cleanup(staged)
            logger.warning("[Apply] %s", exc.message)
            return ApplyOutcome(ok=False, error=exc.message, kind=exc.kind,
                                written=written)

        logger.info("[Apply] Wrote %d file(s)", len(written))
        return ApplyOutcome(ok=True, written=written)

    # ── Phases ──

    def _stage(self, root: str, entry: ApplyEntry) -> _Staged:
        target = resolve_safe_path(root, entry.path)
        temp = None
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            fd, temp = tempfile.mkstemp(prefix="stream-coder-edit-",
                                        dir=self._scratch_dir)
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(entry.content)
            _match_mode(temp, target)
        except (OSError, TypeError, ValueError) as exc:
            if temp is not None:
                _remove_quietly(temp)
            raise ApplyWriteFailed(entry.path, str(exc)) from exc
        return _Staged(path=entry.path, target=target, temp=temp)

    def _commit(self, item: _Staged, written: list[str]) -> None:
        try:
            try:
                os.replace(item.temp, item.target)
            except OSError as exc:
                if exc.errno != errno.EXDEV:
                    raise
                shutil.copyfile(item.temp, item.target)
                os.unlink(item.temp)
        except OSError as exc:
            raise ApplyRenameFailed(item.path, str(exc), list(written)) from exc
        written.append(item.path)
        logger.debug("[Apply] %s", item.path)

    @staticmethod
    def _cleanup(staged: list[_Staged]) -> None:
        for item in staged:
            if os.path.exists(item.temp):
                _remove_quietly(item.temp)


def _as_entry(entry) -> ApplyEntry:
    """Coerce one payload item, rejecting anything without str path and content."""
    if isinstance(entry, dict):
        path, content = entry.get("path"), entry.get("content")
    else:
        path, content = getattr(entry, "path", None), getattr(entry, "content", None)
    label = path if isinstance(path, str) and path else "<payload entry>"
    if not isinstance(path, str) or not path:
        raise ApplyWriteFailed(label, "entry has no path")
    if not isinstance(content, str):
        raise ApplyWriteFailed(label, "content must be a string")
    if isinstance(entry, ApplyEntry):
        return entry
    return ApplyEntry.from_dict(entry)


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except OSError as exc:
        logger.debug("[Apply] Could not remove temp file %s: %s", path, exc)


def _match_mode(temp: str, target: str) -> None:
    # mkstemp creates 0600 files; keep the target's mode, or the umask default.
    if os.path.exists(target):
        shutil.copymode(target, temp)
        return
    umask = os.umask(0)
    os.umask(umask)
    os.chmod(temp, 0o666 & ~umask)
