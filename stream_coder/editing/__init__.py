"""Diffed, atomically-applied file edits."""

from .atomic import ApplyEntry, ApplyOutcome, AtomicApplier
from .diff import FileDiff, apply_diff, compute_create_file_diff, compute_unified_diff
from .engine import EditEngine, EditResult
from .metrics import log_edit_metric, read_edit_stats
from .operations import AnchorEdit, BlockReplace, CreateFile, ExactReplace, FileWrite, InsertAtLine
from .tools import EditTools

__all__ = [
    "ApplyEntry", "ApplyOutcome", "AtomicApplier",
    "FileDiff", "apply_diff", "compute_create_file_diff", "compute_unified_diff",
    "EditEngine", "EditResult",
    "log_edit_metric", "read_edit_stats",
    "AnchorEdit", "BlockReplace", "CreateFile", "ExactReplace", "FileWrite", "InsertAtLine",
    "EditTools",
]
