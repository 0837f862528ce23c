"""
Match diagnostics for failed exact replacements.

When the search text occurs nowhere in the file these helpers explain the
likely cause: a whitespace difference, a close-but-not-equal line (near
miss), or lines that merely share vocabulary.  The output is advisory
text only; nothing here is ever used to apply an edit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

LEVENSHTEIN_CAP = 200
MAX_NEAR_MISSES = 3
MAX_WORD_MATCHES = 3
PREVIEW_CHARS = 80

_WORD_RE = re.compile(r"\w+")


@dataclass
class NearMiss:
    line: int
    text: str
    distance: int
    hint: str


@dataclass
class MatchDiagnostics:
    whitespace_issues: list[str] = field(default_factory=list)
    near_misses: list[NearMiss] = field(default_factory=list)
    word_matches: list[tuple[int, str]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.whitespace_issues or self.near_misses or self.word_matches)

    def format(self) -> str:
        parts: list[str] = []
        if self.whitespace_issues:
            parts.append("Whitespace mismatch:")
            parts.extend(f"  - {issue}" for issue in self.whitespace_issues)
        if self.near_misses:
            parts.append("Similar lines:")
            for miss in self.near_misses:
                parts.append(f"  line {miss.line} (distance {miss.distance}): "
                             f"{_preview(miss.text)}")
                parts.append(f"    {miss.hint}")
        elif self.word_matches:
            parts.append("Lines sharing words with the search text:")
            parts.extend(f"  line {n}: {_preview(text)}" for n, text in self.word_matches)
        return "\n".join(parts)


def _preview(text: str) -> str:
    text = text.strip()
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + "..."
    return text


# ── Edit distance ──

def levenshtein(a: str, b: str) -> int:
    """Edit distance, approximated for inputs longer than the cap.

    Beyond ``LEVENSHTEIN_CAP`` characters the quadratic computation is
    replaced by the length difference plus mismatched positions over the
    common length.
    """
    if a == b:
        return 0
    if len(a) > LEVENSHTEIN_CAP or len(b) > LEVENSHTEIN_CAP:
        mismatched = sum(1 for x, y in zip(a, b) if x != y)
        return abs(len(a) - len(b)) + mismatched
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def near_miss_threshold(first_line: str) -> int:
    return max(5, int(0.3 * len(first_line)))


def describe_difference(expected: str, found: str) -> str:
    """Human-readable hint for how *found* differs from *expected*."""
    if len(expected) == len(found):
        positions = [i for i, (x, y) in enumerate(zip(expected, found)) if x != y]
        if len(positions) == 1:
            p = positions[0]
            return (f"Differs at column {p + 1}: expected {expected[p]!r}, "
                    f"found {found[p]!r}")
        return f"{len(positions)} characters differ"
    delta = len(found) - len(expected)
    word = "longer" if delta > 0 else "shorter"
    return (f"Length mismatch: line is {abs(delta)} character(s) {word} "
            f"than the search text ({len(found)} vs {len(expected)})")


# ── Individual checks ──

def whitespace_issues(content: str, search: str) -> list[str]:
    issues: list[str] = []

    if "\r\n" in content and "\r\n" not in search and "\n" in search:
        if search.replace("\n", "\r\n") in content:
            issues.append("File uses CRLF line endings but the search text uses LF.")
    elif "\r\n" in search and "\r\n" not in content:
        if search.replace("\r\n", "\n") in content:
            issues.append("Search text uses CRLF line endings but the file uses LF.")

    tabs_to_spaces = search.replace("\t", "    ")
    spaces_to_tabs = search.replace("    ", "\t")
    if "\t" in search and tabs_to_spaces != search and tabs_to_spaces in content:
        issues.append("Search text is indented with tabs but the file uses spaces.")
    elif "    " in search and spaces_to_tabs != search and spaces_to_tabs in content:
        issues.append("Search text is indented with spaces but the file uses tabs.")

    file_lines = {line.rstrip("\r") for line in content.split("\n")}
    for n, line in enumerate(search.split("\n"), 1):
        line = line.rstrip("\r")
        stripped = line.rstrip(" \t")
        if stripped != line and stripped and stripped in file_lines and line not in file_lines:
            issues.append(f"Line {n} of the search text has trailing whitespace "
                          "that the file does not.")
            break
    return issues


def find_near_misses(content: str, search: str) -> list[NearMiss]:
    """Up to three lines close to the search text's first line.

    Distances are strictly ascending: of several lines at the same
    distance only the first is kept.
    """
    first_line = next((line.strip() for line in search.split("\n") if line.strip()), "")
    if not first_line:
        return []
    threshold = near_miss_threshold(first_line)
    best: dict[int, NearMiss] = {}
    for n, line in enumerate(content.split("\n"), 1):
        trimmed = line.strip()
        if not trimmed:
            continue
        if abs(len(trimmed) - len(first_line)) > threshold:
            continue
        distance = levenshtein(first_line, trimmed)
        if 0 < distance <= threshold and distance not in best:
            best[distance] = NearMiss(
                line=n,
                text=line,
                distance=distance,
                hint=describe_difference(first_line, trimmed),
            )
    return [best[d] for d in sorted(best)][:MAX_NEAR_MISSES]


def find_word_overlap(content: str, search: str) -> list[tuple[int, str]]:
    words = {w for w in _WORD_RE.findall(search.lower()) if len(w) > 2}
    if not words:
        return []
    needed = (len(words) + 1) // 2
    matches: list[tuple[int, str]] = []
    for n, line in enumerate(content.split("\n"), 1):
        line_words = set(_WORD_RE.findall(line.lower()))
        if len(words & line_words) >= needed:
            matches.append((n, line))
            if len(matches) >= MAX_WORD_MATCHES:
                break
    return matches


def diagnose_no_match(content: str, search: str) -> MatchDiagnostics:
    """Run every check; word overlap only when no near miss was found."""
    diagnostics = MatchDiagnostics(
        whitespace_issues=whitespace_issues(content, search),
        near_misses=find_near_misses(content, search),
    )
    if not diagnostics.near_misses:
        diagnostics.word_matches = find_word_overlap(content, search)
    return diagnostics
