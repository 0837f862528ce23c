"""
Line-granularity unified diffs for review, plus exact reconstruction.

Content is split on ``"\\n"`` only, so ``"\\r"`` and a missing final
newline survive the round trip ``apply_diff(a, compute_unified_diff(a, b))
== b``.  This is not a general patch tool: hunks are produced by a greedy
two-cursor walk, not a minimal edit script.
"""

from __future__ import annotations

from dataclasses import dataclass

CONTEXT_LINES = 3
LOOKAHEAD = 100

DEV_NULL = "/dev/null"


class DiffApplyError(ValueError):
    """The diff does not match the content it is applied to."""


@dataclass
class FileDiff:
    """Unified diff for one file.

    ``lines_added`` / ``lines_removed`` equal the number of ``+`` / ``-``
    body lines of ``diff`` (the ``---`` / ``+++`` file headers excluded).
    """
    path: str
    diff: str
    lines_added: int = 0
    lines_removed: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.lines_added or self.lines_removed)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "diff": self.diff,
            "linesAdded": self.lines_added,
            "linesRemoved": self.lines_removed,
        }


@dataclass
class _Hunk:
    orig_start: int
    mod_start: int
    lines: list
    orig_count: int = 0
    mod_count: int = 0

    def header(self) -> str:
        return (f"@@ -{_range_start(self.orig_start, self.orig_count)},{self.orig_count} "
                f"+{_range_start(self.mod_start, self.mod_count)},{self.mod_count} @@")


def _range_start(index: int, count: int) -> int:
    # Empty ranges name the line *after which* the change sits.
    return index + 1 if count else index


def _offset(lines: list[str], start: int, value: str) -> int | None:
    end = min(len(lines), start + LOOKAHEAD)
    for k in range(start, end):
        if lines[k] == value:
            return k - start
    return None


def preserve_trailing_newline(original: str, modified: str) -> str:
    """Give *modified* the same trailing-newline presence as *original*."""
    if original.endswith("\n") and not modified.endswith("\n"):
        return modified + "\n"
    if not original.endswith("\n") and modified.endswith("\n"):
        return modified[:-1]
    return modified


def compute_unified_diff(original: str, modified: str, path: str) -> FileDiff:
    """Diff *original* against *modified*.

    At each divergent position the walk deletes the original line if it
    does not reappear within the lookahead window of the modified side,
    inserts the modified line if it does not reappear on the original
    side, and otherwise takes whichever resynchronizes sooner (a paired
    replace when neither reappears).  A hunk opens with up to
    ``CONTEXT_LINES`` of leading context and closes after
    ``CONTEXT_LINES`` consecutive unchanged lines.
    """
    a = original.split("\n")
    b = modified.split("\n")

    hunks: list[_Hunk] = []
    current: _Hunk | None = None
    trailing = 0
    # First original index not yet covered by a closed hunk.
    covered = 0
    added = removed = 0
    i = j = 0

    while i < len(a) or j < len(b):
        ol = a[i] if i < len(a) else None
        ml = b[j] if j < len(b) else None

        if ol is not None and ml is not None and ol == ml:
            if current is not None:
                current.lines.append(" " + ol)
                current.orig_count += 1
                current.mod_count += 1
                trailing += 1
                if trailing >= CONTEXT_LINES:
                    hunks.append(current)
                    current = None
                    covered = i + 1
            i += 1
            j += 1
            continue

        if current is None:
            lead = min(CONTEXT_LINES, i - covered)
            current = _Hunk(orig_start=i - lead, mod_start=j - lead,
                            lines=[" " + line for line in a[i - lead:i]],
                            orig_count=lead, mod_count=lead)
        trailing = 0

        if ml is None:
            action = "delete"
        elif ol is None:
            action = "insert"
        else:
            da = _offset(a, i, ml)
            db = _offset(b, j, ol)
            if da is None and db is None:
                action = "replace"
            elif db is None:
                action = "delete"
            elif da is None:
                action = "insert"
            else:
                action = "delete" if da <= db else "insert"

        if action in ("delete", "replace"):
            current.lines.append("-" + ol)
            current.orig_count += 1
            removed += 1
            i += 1
        if action in ("insert", "replace"):
            current.lines.append("+" + ml)
            current.mod_count += 1
            added += 1
            j += 1

    if current is not None:
        hunks.append(current)

    out = [f"--- a/{path}", f"+++ b/{path}"]
    for hunk in hunks:
        out.append(hunk.header())
        out.extend(hunk.lines)
    return FileDiff(path=path, diff="\n".join(out),
                    lines_added=added, lines_removed=removed)


def compute_create_file_diff(content: str, path: str) -> FileDiff:
    """Diff for a file that does not exist yet."""
    lines = content.split("\n")
    out = [f"--- {DEV_NULL}", f"+++ b/{path}", f"@@ -0,0 +1,{len(lines)} @@"]
    out.extend("+" + line for line in lines)
    return FileDiff(path=path, diff="\n".join(out),
                    lines_added=len(lines), lines_removed=0)


def apply_diff(original: str, diff: str) -> str:
    """Reconstruct the modified content from *original* and *diff*.

    Accepts the output of :func:`compute_unified_diff` and
    :func:`compute_create_file_diff`.  Context and removed lines are
    verified against *original*.

    Raises
    ------
    DiffApplyError
        If a hunk header is malformed or a line does not match.
    """
    diff_lines = diff.split("\n")
    source = original.split("\n")
    pos = 0
    k = 0

    # File headers: everything before the first hunk.
    while k < len(diff_lines) and not diff_lines[k].startswith("@@"):
        if diff_lines[k] == f"--- {DEV_NULL}":
            source = []
        k += 1

    result: list[str] = []
    while k < len(diff_lines):
        orig_start, orig_count, mod_count = _parse_header(diff_lines[k])
        k += 1
        index = orig_start - 1 if orig_count else orig_start
        if index < pos or index > len(source):
            raise DiffApplyError(f"Hunk start {orig_start} out of order or range")
        result.extend(source[pos:index])
        pos = index

        seen_orig = seen_mod = 0
        while seen_orig < orig_count or seen_mod < mod_count:
            if k >= len(diff_lines):
                raise DiffApplyError("Diff ended inside a hunk")
            line = diff_lines[k]
            k += 1
            tag, text = line[:1], line[1:]
            if tag in (" ", "-"):
                if pos >= len(source) or source[pos] != text:
                    raise DiffApplyError(f"Line {pos + 1} does not match: {text!r}")
                pos += 1
                seen_orig += 1
                if tag == " ":
                    result.append(text)
                    seen_mod += 1
            elif tag == "+":
                result.append(text)
                seen_mod += 1
            else:
                raise DiffApplyError(f"Unexpected diff line: {line!r}")

    result.extend(source[pos:])
    return "\n".join(result)


def _parse_header(line: str) -> tuple[int, int, int]:
    try:
        _, old, new, _ = line.split(" ", 3)
        orig_start, orig_count = (int(x) for x in old[1:].split(","))
        _, mod_count = (int(x) for x in new[1:].split(","))
    except ValueError as exc:
        raise DiffApplyError(f"Malformed hunk header: {line!r}") from exc
    return orig_start, orig_count, mod_count
