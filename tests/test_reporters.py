"""Tests for benchhost.report.reporters."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

import click

from benchhost.report.reporters import raw_reporter, render_text, text_reporter

from host_test_helpers import make_logger, make_result


def sample_result():
    return {
        "bench/a.py": [
            make_result(
                [{"foo": {"time": [0, 1, 1, 1]}, "bar": {"time": [1, 2, 2, 2]}}],
                notes=[{"type": "info", "caseId": 1, "text": "Slow case"}, {"type": "warn", "text": "Noisy"}],
            )
        ],
    }


class TestRenderText(unittest.TestCase):
    def test_plain(self) -> None:
        text = render_text(sample_result(), None, colored=False, std_dev=False)
        lines = text.splitlines()
        self.assertEqual(lines[0], "Text reporter: Format benchmark results of 1 suites:")
        self.assertIn("Suite: bench/a.py", lines)
        self.assertIn("| No. | Name |     time |", lines)
        self.assertIn("Hints:", lines)
        self.assertIn("[No.1] bar: Slow case", lines)
        self.assertIn("Warnings:", lines)
        self.assertIn("Noisy", lines)
        self.assertNotIn("\x1b[", text)

    def test_colored_table_stays_aligned(self) -> None:
        text = render_text(sample_result(), None, colored=True, std_dev=False)
        self.assertIn("\x1b[", text)
        plain = render_text(sample_result(), None, colored=False, std_dev=False)
        self.assertEqual(click.unstyle(text), plain)

    def test_diff_against_previous(self) -> None:
        previous = {"bench/a.py": [make_result([{"foo": {"time": [0.375]}}])]}
        text = render_text(sample_result(), previous, colored=False, std_dev=False)
        self.assertIn("time.diff", text)
        self.assertIn("+100.00%", text)

    def test_flex_unit(self) -> None:
        text = render_text(sample_result(), None, colored=False, std_dev=False, flex_unit=True)
        self.assertIn("1.75 ms", text)


class TestReporters(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = make_logger("benchhost.test.reporters")

    def test_raw_reporter_saves_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out" / "result.json"
            with self.assertLogs(self.logger, "INFO"):
                raw_reporter(path)(sample_result(), None, self.logger)
            data = json.loads(path.read_text())
        self.assertEqual(list(data), ["bench/a.py"])
        self.assertEqual(data["bench/a.py"][0]["scenes"][0]["foo"]["time"], [0, 1, 1, 1])

    def test_text_reporter_writes_uncolored_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "reports" / "report.md"
            reporter = text_reporter(console=False, file=path, ratio_style="value")
            with self.assertLogs(self.logger, "INFO"):
                reporter(sample_result(), None, self.logger)
            text = path.read_text()
        self.assertIn("Suite: bench/a.py", text)
        self.assertNotIn("\x1b[", text)


if __name__ == "__main__":
    unittest.main()
