"""Tests for the model-facing edit tool surface."""

import pytest

from stream_coder.editing import AtomicApplier, EditEngine, EditTools


@pytest.fixture
def tools(tmp_path):
    (tmp_path / "a.txt").write_text("alpha\nbeta\ngamma\n")
    scratch = tmp_path / ".scratch"
    scratch.mkdir()
    return EditTools(EditEngine(str(tmp_path)), AtomicApplier(str(scratch)))


class TestSchemas:
    def test_names(self, tools):
        assert tools.names == ["exact_replace", "block_replace", "insert_at_line",
                               "anchor_edit", "create_file", "apply_batch"]

    def test_schema_shape(self, tools):
        for schema in tools.schemas():
            assert set(schema) == {"name", "description", "input_schema"}
            assert schema["input_schema"]["type"] == "object"


class TestExecute:
    def test_exact_replace(self, tools):
        result = tools.execute("exact_replace", {"path": "a.txt", "old": "beta", "new": "BETA"})

        assert result["ok"] is True
        assert result["stats"]["filesChanged"] == 1

    def test_unknown_tool(self, tools):
        assert tools.execute("rm_rf", {}) == {
            "ok": False, "error": "Unknown tool: rm_rf", "kind": "unknown_tool",
        }

    def test_missing_argument(self, tools):
        result = tools.execute("exact_replace", {"path": "a.txt", "old": "beta"})

        assert result["kind"] == "invalid_arguments"
        assert "'new'" in result["error"]

    def test_non_dict_arguments(self, tools):
        assert tools.execute("create_file", ["a"])["kind"] == "invalid_arguments"

    def test_integral_float_is_accepted(self, tools):
        result = tools.execute("insert_at_line", {"path": "a.txt", "line": 4.0, "content": "d"})

        assert result["ok"] is True

    def test_wrong_type(self, tools):
        result = tools.execute("insert_at_line", {"path": "a.txt", "line": "4", "content": "d"})

        assert result["kind"] == "invalid_arguments"

    def test_input_too_large_points_to_fileblock(self, tools):
        tools.max_input_bytes = 100

        result = tools.execute("create_file", {"path": "big.txt", "content": "x" * 500})

        assert result["kind"] == "input_too_large"
        assert "<FILEBLOCK" in result["error"]

    def test_anchor_edit(self, tools):
        result = tools.execute("anchor_edit", {
            "path": "a.txt", "mode": "insert_after", "anchor": "alpha", "content": "a2",
        })

        assert result["applyPayload"][0]["content"] == "alpha\na2\nbeta\ngamma\n"


class TestBatch:
    def test_batch_prepares_then_applies(self, tools, tmp_path):
        result = tools.execute("apply_batch", {"edits": [
            {"tool": "exact_replace", "args": {"path": "a.txt", "old": "alpha", "new": "A"}},
            {"toolName": "create_file", "args": {"path": "new.txt", "content": "n\n"}},
        ]})

        assert result["ok"] is True
        assert (tmp_path / "a.txt").read_text() == "alpha\nbeta\ngamma\n"

        outcome = tools.apply(result["applyPayload"])

        assert outcome == {"ok": True, "written": ["a.txt", "new.txt"]}
        assert (tmp_path / "a.txt").read_text() == "A\nbeta\ngamma\n"
        assert (tmp_path / "new.txt").read_text() == "n\n"

    def test_batch_argument_errors_are_collected(self, tools):
        result = tools.execute("apply_batch", {"edits": [
            {"tool": "exact_replace", "args": {"path": "a.txt"}},
            {"tool": "apply_batch", "args": {}},
            {"tool": "create_file", "args": {"path": "ok.txt", "content": ""}},
        ]})

        assert result["ok"] is False
        assert len(result["errors"]) == 2
        assert result["errors"][1].startswith("Edit 2 (apply_batch): Unknown edit tool")

    def test_empty_batch(self, tools):
        assert tools.execute("apply_batch", {"edits": []})["kind"] == "invalid_arguments"


class TestApply:
    def test_malformed_payload_entry(self, tools, tmp_path):
        outcome = tools.apply([{"content": "x"}])

        assert outcome["ok"] is False
        assert outcome["kind"] == "apply_write_failed"
        assert list((tmp_path / ".scratch").iterdir()) == []

    def test_payload_must_be_a_list(self, tools):
        outcome = tools.apply({"path": "a.txt", "content": "x"})

        assert outcome["ok"] is False
        assert outcome["kind"] == "apply_write_failed"
