"""
Path resolution and file reading confined to an edit root.
"""

from __future__ import annotations

import logging
import os

from ..errors import PathEscapesRoot

logger = logging.getLogger(__name__)


def resolve_safe_path(root: str, path: str) -> str:
    """Resolve *path* (relative to *root*, or absolute) inside *root*.

    Symlinks are resolved before the containment check, so a link that
    points outside the root is rejected as well.

    Raises
    ------
    PathEscapesRoot
        If the resolved path is not *root* itself or below it.
    """
    if not path or "\x00" in path:
        raise PathEscapesRoot(path)
    real_root = os.path.realpath(root)
    candidate = path if os.path.isabs(path) else os.path.join(real_root, path)
    resolved = os.path.realpath(candidate)
    try:
        inside = os.path.commonpath([real_root, resolved]) == real_root
    except ValueError:
        # Different drives on Windows.
        inside = False
    if not inside or resolved == real_root:
        logger.warning("[Edit] Rejected path outside root: %s", path)
        raise PathEscapesRoot(path)
    return resolved


def read_text(resolved: str) -> str:
    """Read a file verbatim (no newline translation)."""
    with open(resolved, "r", encoding="utf-8", newline="") as f:
        return f.read()
