"""Tests for benchhost.host.results — raw results, merging and persistence."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from benchhost.errors import ResultFormatError
from benchhost.host.results import (
    ToolchainResult,
    add_record,
    load_and_merge,
    load_results,
    merge_results,
    read_results,
    results_from_dict,
    save_results,
)

from host_test_helpers import make_result


class TestToolchainResult(unittest.TestCase):
    def test_to_dict_is_sparse(self) -> None:
        d = ToolchainResult(scenes=[{"a": {"time": [1]}}]).to_dict()
        self.assertEqual(d, {"paramDef": [], "scenes": [{"a": {"time": [1]}}]})

    def test_to_dict_uses_wire_names(self) -> None:
        d = make_result(param_def=[("size", [1, 2])], builder="None", executor="in-process").to_dict()
        self.assertEqual(d["paramDef"], [["size", [1, 2]]])
        self.assertEqual(d["builder"], "None")
        self.assertEqual(d["executor"], "in-process")
        self.assertIn("meta", d)

    def test_from_dict_accepts_param_mapping(self) -> None:
        result = ToolchainResult.from_dict({"paramDef": {"size": [1, 2]}, "scenes": [{}, {}]})
        self.assertEqual(result.param_def, [("size", [1, 2])])

    def test_from_dict_rejects_bad_shapes(self) -> None:
        for data in ([], {"paramDef": [1]}, {"scenes": {}}, {"scenes": [1]}):
            with self.subTest(data=data):
                with self.assertRaises(ResultFormatError):
                    ToolchainResult.from_dict(data)  # type: ignore[arg-type]

    def test_from_dict_defaults(self) -> None:
        result = ToolchainResult.from_dict({})
        self.assertEqual(result.scenes, [])
        self.assertIsNone(result.builder)
        self.assertIsNone(result.baseline)


class TestMerge(unittest.TestCase):
    def test_concatenates_in_order(self) -> None:
        a, b, c = make_result(name="a"), make_result(name="b"), make_result(name="c")
        raw = merge_results({"x.py": [a]}, {"x.py": [b], "y.py": [c]})
        self.assertEqual([r.name for r in raw["x.py"]], ["a", "b"])
        self.assertEqual([r.name for r in raw["y.py"]], ["c"])

    def test_never_deduplicates(self) -> None:
        a = make_result()
        raw = merge_results({"x.py": [a]}, {"x.py": [a]})
        self.assertEqual(len(raw["x.py"]), 2)

    def test_add_record_tags_and_strips_prefix(self) -> None:
        raw: dict = {}
        record = add_record(
            raw, "./bench/x.py", {"scenes": [{}]}, builder="None", executor="node"
        )
        self.assertIn("bench/x.py", raw)
        self.assertEqual((record.builder, record.executor), ("None", "node"))


class TestPersistence(unittest.TestCase):
    def test_save_and_load(self) -> None:
        raw = {"x.py": [make_result(executor="node")]}
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "reports" / "result.json"
            save_results(path, raw)
            data = json.loads(path.read_text())
            self.assertEqual(data["x.py"][0]["executor"], "node")
            loaded = load_results(path)
        assert loaded is not None
        self.assertEqual(loaded["x.py"][0].scenes, raw["x.py"][0].scenes)

    def test_missing_required(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(FileNotFoundError):
                load_results(Path(tmpdir) / "nope.json")

    def test_missing_optional(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertIsNone(load_results(Path(tmpdir) / "nope.json", required=False))

    def test_invalid_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "bad.json"
            path.write_text("{not json")
            with self.assertRaises(ResultFormatError):
                load_results(path)

    def test_results_from_dict_rejects_non_lists(self) -> None:
        with self.assertRaises(ResultFormatError):
            results_from_dict({"x.py": {}})
        with self.assertRaises(ResultFormatError):
            results_from_dict([])

    def test_load_and_merge(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            first = Path(tmpdir) / "1.json"
            second = Path(tmpdir) / "2.json"
            save_results(first, {"x.py": [make_result(executor="node")]})
            save_results(second, {"x.py": [make_result(executor="bun")]})
            raw = load_and_merge([first, second])
        self.assertEqual([r.executor for r in raw["x.py"]], ["node", "bun"])

    def test_load_and_merge_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            first = Path(tmpdir) / "1.json"
            save_results(first, {"x.py": [make_result()]})
            with self.assertRaises(FileNotFoundError):
                load_and_merge([first, Path(tmpdir) / "2.json"])

    def test_read_results(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "result.json"
            save_results(path, {"x.py": [make_result(name="x")]})
            raw = read_results(path)
            with self.assertRaises(FileNotFoundError):
                read_results(Path(tmpdir) / "nope.json")
        self.assertEqual(raw["x.py"][0].name, "x")


if __name__ == "__main__":
    unittest.main()
