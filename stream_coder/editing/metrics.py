"""
Edit metrics: an append-only JSONL journal of edit outcomes under
``<project_root>/.stream_coder/edit_metrics.jsonl``.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from datetime import datetime, timezone
from typing import Iterator

logger = logging.getLogger(__name__)

JOURNAL_PATH = os.path.join(".stream_coder", "edit_metrics.jsonl")


def journal_path(project_root: str | None = None) -> str:
    return os.path.join(project_root or os.getcwd(), JOURNAL_PATH)


def log_edit_metric(data: dict, project_root: str | None = None) -> None:
    """Append one record; the journal is advisory, so write failures only warn."""
    record = {"timestamp": datetime.now(timezone.utc).isoformat(), **data}
    path = journal_path(project_root)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
    except OSError as exc:
        logger.warning("[Edit] Failed to write metrics: %s", exc)


def _records(path: str) -> Iterator[dict]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            for number, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("[Edit] Skipping bad metrics line %d", number)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("[Edit] Failed to read metrics: %s", exc)


def read_edit_stats(last_n: int = 50, project_root: str | None = None) -> dict:
    """Rolling statistics over the most recent journal records.

    Parameters
    ----------
    last_n:
        Number of most recent records to include; ``0`` means all.
    project_root:
        Directory holding the journal. Defaults to CWD.

    Returns
    -------
    dict
        ``total_edits``, ``success_rate`` (percent), ``lines_added``,
        ``lines_removed``, ``failure_kinds`` and ``operations``
        (name -> count, most common first).
    """
    records = list(_records(journal_path(project_root)))
    if last_n > 0:
        records = records[-last_n:]

    failed = [r for r in records if not r.get("success")]
    total = len(records)
    return {
        "total_edits": total,
        "success_rate": (total - len(failed)) / total * 100 if total else 0.0,
        "lines_added": sum(r.get("lines_added", 0) for r in records),
        "lines_removed": sum(r.get("lines_removed", 0) for r in records),
        "failure_kinds": dict(Counter(r.get("error_kind", "unknown")
                                      for r in failed).most_common()),
        "operations": dict(Counter(r.get("operation", "unknown")
                                   for r in records).most_common()),
    }
