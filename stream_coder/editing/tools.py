"""
Model-facing edit tools: names, JSON schemas and dict results on top of
:class:`EditEngine` and :class:`AtomicApplier`.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from ..errors import EditError, InvalidEditArguments
from .atomic import AtomicApplier
from .engine import EditEngine, EditResult
from .operations import (
    ANCHOR_MODES,
    AnchorEdit,
    BlockReplace,
    CreateFile,
    ExactReplace,
    InsertAtLine,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT_BYTES = 50_000

_PATH = {"type": "string",
         "description": "Path to the file (relative to the project root or absolute)"}

TOOL_SCHEMAS: dict[str, dict] = {
    "exact_replace": {
        "description": ("Replace exact text in a file. 'old' must match exactly, "
                        "including whitespace. Read the file first."),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH,
                "old": {"type": "string", "description": "Exact text to find"},
                "new": {"type": "string", "description": "Replacement text"},
                "expectedOccurrences": {
                    "type": "integer",
                    "description": "If given, the number of occurrences must match exactly",
                },
            },
            "required": ["path", "old", "new"],
        },
    },
    "block_replace": {
        "description": ("Replace the lines between the first line containing "
                        "startAnchor and the next line after it containing "
                        "endAnchor. Anchor lines are kept unless inclusive is true."),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH,
                "startAnchor": {"type": "string", "description": "Text on the block's first line"},
                "endAnchor": {"type": "string", "description": "Text on the block's last line"},
                "content": {"type": "string", "description": "Replacement content"},
                "inclusive": {"type": "boolean", "description": "Replace the anchor lines too"},
            },
            "required": ["path", "startAnchor", "endAnchor", "content"],
        },
    },
    "insert_at_line": {
        "description": ("Insert content before a 1-based line. Use 1 to prepend "
                        "or line count + 1 to append."),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH,
                "line": {"type": "integer", "description": "Line to insert before"},
                "content": {"type": "string", "description": "Content to insert"},
            },
            "required": ["path", "line", "content"],
        },
    },
    "anchor_edit": {
        "description": ("Edit relative to a line containing 'anchor': insert_before, "
                        "insert_after, replace_line, or replace_between (up to "
                        "anchorEnd). Give occurrence when the anchor matches "
                        "several lines."),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH,
                "mode": {"type": "string", "enum": list(ANCHOR_MODES)},
                "anchor": {"type": "string", "description": "Text to find in a line"},
                "anchorEnd": {"type": "string",
                              "description": "End anchor for replace_between"},
                "content": {"type": "string", "description": "Content to insert or replace with"},
                "occurrence": {"type": "integer",
                               "description": "Which match of the anchor to use (1-based)"},
                "inclusive": {"type": "boolean",
                              "description": "replace_between: replace the anchor lines too"},
            },
            "required": ["path", "mode", "anchor", "content"],
        },
    },
    "create_file": {
        "description": ("Create a file with the given content. Fails if it exists "
                        "unless overwrite is true."),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH,
                "content": {"type": "string", "description": "Full file content"},
                "overwrite": {"type": "boolean", "description": "Replace an existing file"},
            },
            "required": ["path", "content"],
        },
    },
    "apply_batch": {
        "description": ("Prepare several edits as one unit. If any edit fails, none "
                        "are applied. Later edits to a file see earlier ones."),
        "input_schema": {
            "type": "object",
            "properties": {
                "edits": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "tool": {"type": "string",
                                     "description": "exact_replace, block_replace, "
                                                    "insert_at_line, anchor_edit or create_file"},
                            "args": {"type": "object",
                                     "description": "Arguments for that tool"},
                        },
                        "required": ["tool", "args"],
                    },
                },
            },
            "required": ["edits"],
        },
    },
}


def _str(args: dict, key: str, required: bool = True, default: str = "") -> str:
    value = args.get(key)
    if value is None:
        if required:
            raise InvalidEditArguments(f"Missing required argument '{key}'")
        return default
    if not isinstance(value, str):
        raise InvalidEditArguments(f"Argument '{key}' must be a string")
    return value


def _int(args: dict, key: str, required: bool = True) -> Optional[int]:
    value = args.get(key)
    if value is None:
        if required:
            raise InvalidEditArguments(f"Missing required argument '{key}'")
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEditArguments(f"Argument '{key}' must be an integer")
    return value


def _bool(args: dict, key: str) -> bool:
    value = args.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidEditArguments(f"Argument '{key}' must be a boolean")
    return value


def _build_operation(name: str, args: dict):
    """Map a tool call to ``(path, operation)``."""
    if name not in TOOL_SCHEMAS or name == "apply_batch":
        raise InvalidEditArguments(
            f"Unknown edit tool \"{name}\". Use exact_replace, block_replace, "
            "insert_at_line, anchor_edit or create_file."
        )
    if not isinstance(args, dict):
        raise InvalidEditArguments("Tool arguments must be a JSON object")
    path = _str(args, "path")
    if name == "exact_replace":
        return path, ExactReplace(_str(args, "old"), _str(args, "new"),
                                  _int(args, "expectedOccurrences", required=False))
    if name == "block_replace":
        return path, BlockReplace(_str(args, "startAnchor"), _str(args, "endAnchor"),
                                  _str(args, "content"), _bool(args, "inclusive"))
    if name == "insert_at_line":
        return path, InsertAtLine(_int(args, "line"), _str(args, "content"))
    if name == "anchor_edit":
        return path, AnchorEdit(
            mode=_str(args, "mode"),
            anchor=_str(args, "anchor"),
            content=_str(args, "content"),
            anchor_end=_str(args, "anchorEnd", required=False, default=None),
            occurrence=_int(args, "occurrence", required=False),
            inclusive=_bool(args, "inclusive"),
        )
    return path, CreateFile(_str(args, "content"), _bool(args, "overwrite"))


class EditTools:
    """Dispatch edit tool calls by name; never raises.

    Every call returns ``{"ok": True, "diffsByFile", "applyPayload",
    "stats"}`` or ``{"ok": False, "error", "kind"}``.
    """

    def __init__(self, engine: EditEngine, applier: Optional[AtomicApplier] = None,
                 max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES) -> None:
        self.engine = engine
        self.applier = applier or AtomicApplier()
        self.max_input_bytes = max_input_bytes
        self._handlers: dict[str, Callable[[dict], EditResult]] = {
            name: (lambda args, name=name: self._single(name, args))
            for name in TOOL_SCHEMAS if name != "apply_batch"
        }
        self._handlers["apply_batch"] = self._batch

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    def schemas(self) -> list[dict]:
        """Neutral ``{name, description, input_schema}`` tool schemas."""
        return [{"name": name, **schema} for name, schema in TOOL_SCHEMAS.items()]

    def execute(self, name: str, args) -> dict:
        handler = self._handlers.get(name)
        if handler is None:
            return {"ok": False, "error": f"Unknown tool: {name}", "kind": "unknown_tool"}

        if not isinstance(args, dict):
            exc = InvalidEditArguments("Tool arguments must be a JSON object")
            return EditResult.failure(exc).to_dict()

        size = len(json.dumps(args, ensure_ascii=False).encode("utf-8"))
        if size > self.max_input_bytes:
            logger.warning("[Edit] %s input too large: %d bytes", name, size)
            return {
                "ok": False,
                "kind": "input_too_large",
                "error": (f"Tool input too large ({round(size / 1000)}KB > "
                          f"{round(self.max_input_bytes / 1000)}KB limit). For new "
                          "files, use <FILEBLOCK path=\"...\">content</FILEBLOCK> "
                          "in your response text instead."),
            }

        try:
            result = handler(args)
        except EditError as exc:
            result = EditResult.failure(exc)
        return result.to_dict()

    def apply(self, payload) -> dict:
        """Write a prepared ``applyPayload`` under the engine root."""
        if not isinstance(payload, (list, tuple)):
            return {"ok": False, "kind": "apply_write_failed", "written": [],
                    "error": "applyPayload must be a list of entries"}
        return self.applier.apply(self.engine.root, payload).to_dict()

    # ── Handlers ──

    def _single(self, name: str, args: dict) -> EditResult:
        path, operation = _build_operation(name, args)
        return self.engine.prepare(path, operation)

    def _batch(self, args: dict) -> EditResult:
        if not isinstance(args, dict):
            raise InvalidEditArguments("Tool arguments must be a JSON object")
        edits = args.get("edits")
        if not isinstance(edits, list) or not edits:
            raise InvalidEditArguments("No edits provided")
        prepared = []
        errors = []
        for index, edit in enumerate(edits, 1):
            if not isinstance(edit, dict):
                edit = {}
            tool = edit.get("tool") or edit.get("toolName") or ""
            try:
                prepared.append(_build_operation(tool, edit.get("args")))
            except EditError as exc:
                errors.append(f"Edit {index} ({tool or '?'}): {exc.message}")
        if errors:
            return EditResult(ok=False, kind=InvalidEditArguments.kind,
                              error="Batch validation failed:\n" + "\n".join(errors),
                              details={"errors": errors})
        return self.engine.prepare_batch(prepared)
