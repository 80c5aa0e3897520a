"""Tests for benchhost.report.summary."""

from __future__ import annotations

import unittest

from benchhost.errors import ResultFormatError
from benchhost.report.summary import (
    MetricAnalysis,
    Summary,
    expand_params,
    paired,
)

from host_test_helpers import make_result


class TestExpandParams(unittest.TestCase):
    def test_last_variable_varies_fastest(self) -> None:
        combos = list(expand_params([("a", [1, 2]), ("b", ["x", "y"])]))
        self.assertEqual(
            combos,
            [{"a": 1, "b": "x"}, {"a": 1, "b": "y"}, {"a": 2, "b": "x"}, {"a": 2, "b": "y"}],
        )

    def test_no_params_is_one_empty_combination(self) -> None:
        self.assertEqual(list(expand_params([])), [{}])

    def test_paired_rejects_length_mismatch(self) -> None:
        with self.assertRaises(ResultFormatError):
            list(paired([{}, {}], [{}]))


class TestSummary(unittest.TestCase):
    def test_one_row_per_case_and_scene(self) -> None:
        result = make_result(
            [{"a": {"time": [1]}, "b": {"time": [2]}}, {"a": {"time": [3]}, "b": {"time": [4]}}],
            param_def=[("size", [10, 20])],
        )
        summary = Summary([result])
        self.assertEqual(len(summary.rows), 4)
        self.assertEqual(summary.rows[2].variables, {"Name": "a", "size": 20})
        self.assertEqual(summary.rows[3].metrics, {"time": [4]})
        self.assertEqual(summary.vars, {"Name": {"a", "b"}, "size": {10, 20}})

    def test_scene_count_must_match_params(self) -> None:
        result = make_result([{"a": {}}], param_def=[("size", [10, 20])])
        with self.assertRaises(ResultFormatError):
            Summary([result])

    def test_builder_and_executor_are_variables(self) -> None:
        summary = Summary([make_result(builder="None", executor="in-process")])
        self.assertEqual(
            list(summary.rows[0].variables), ["Name", "Builder", "Executor"]
        )

    def test_default_time_metric(self) -> None:
        summary = Summary([make_result(meta={})])
        meta = summary.meta["time"]
        self.assertEqual(meta.format, "{duration.ms}")
        self.assertEqual(meta.analysis, MetricAnalysis.STATISTICS)
        self.assertTrue(meta.lower_is_better)

    def test_first_metric_definition_wins_with_warning(self) -> None:
        first = make_result(executor="a")
        second = make_result(
            executor="b",
            meta={"time": {"key": "time", "format": "{number}", "analysis": 0}},
        )
        summary = Summary.combine([first], [second])
        self.assertEqual(summary.meta["time"].format, "{duration.ms}")
        self.assertEqual(len(summary.notes), 1)
        self.assertEqual(summary.notes[0].type, "warn")
        self.assertIn('"time"', summary.notes[0].text)

    def test_note_bound_to_case(self) -> None:
        result = make_result(
            [{"foo": {}, "bar": {}}],
            notes=[{"type": "info", "caseId": 1, "text": "hi"}, {"type": "warn", "text": "w"}],
        )
        summary = Summary([result])
        self.assertIs(summary.notes[0].row, summary.rows[1])
        self.assertIsNone(summary.notes[1].row)

    def test_find_by_identity(self) -> None:
        current = Summary([make_result(executor="node")])
        previous = Summary([make_result([{"foo": {"time": [9]}}], executor="node")])
        match = previous.find(current.rows[0])
        self.assertIsNotNone(match)
        self.assertEqual(match.metrics, {"time": [9]})

    def test_find_no_match(self) -> None:
        current = Summary([make_result(executor="node")])
        previous = Summary([make_result(executor="bun")])
        self.assertIsNone(previous.find(current.rows[0]))

    def test_split_groups_by_other_variables(self) -> None:
        result = make_result(
            [{"A": {}, "B": {}}, {"A": {}, "B": {}}],
            param_def=[("size", [1, 2])],
        )
        groups = Summary([result]).split("Name")
        self.assertEqual(len(groups), 2)
        self.assertEqual([r.name for r in groups[0]], ["A", "B"])
        self.assertEqual({r.get("size") for r in groups[1]}, {2})

    def test_baseline_taken_from_results(self) -> None:
        summary = Summary([make_result(baseline={"type": "Name", "value": "foo"})])
        self.assertEqual(summary.baseline, {"type": "Name", "value": "foo"})
        self.assertTrue(summary.has_value("Name", "foo"))
        self.assertFalse(summary.has_value("Name", "bar"))


if __name__ == "__main__":
    unittest.main()
