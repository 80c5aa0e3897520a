"""Assemble summary tables from toolchain results.

A table is a list of columns: the row number, the visible variables, and for
every metric its raw value followed by the derived columns its analysis kind
allows (standard deviation, percentiles, baseline ratio, diff against a
previous run). Rows are grouped by the baseline variable when a baseline is
set, so every group is compared against its own reference row.

:meth:`SummaryTable.from_results` keeps cells as raw numbers;
:meth:`SummaryTable.format` turns them into display strings with units.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Literal, Sequence

from benchhost.errors import BaselineNotFoundError, MetricShapeError
from benchhost.formatting import format_markdown_table
from benchhost.host.results import ToolchainResult
from benchhost.report.stats import (
    TukeyOutlierDetector,
    mean,
    outlier_mode_for,
    quantile_sorted,
    standard_deviation,
)
from benchhost.report.summary import (
    BUILTIN_VARS,
    FlattenedRow,
    MetricAnalysis,
    MetricMeta,
    Summary,
)
from benchhost.report.units import parse_format

log = logging.getLogger("benchhost.report")

RatioStyle = Literal["percentage", "value", "trend"]
Outliers = Literal["all", "worst", "best"]

# Semantic colors, named after click.style() foreground colors.
IMPROVED = "green"
REGRESSED = "red"
NOT_APPLICABLE = "bright_black"
USER_VARIABLE = "bright_magenta"

# (text, color) -> styled text
Stainer = Callable[[str, "str | None"], str]

# A cell value, or a (value, color) pair.
Cell = Any


def _no_color(text: str, color: str | None) -> str:
    return text


def _to_number(value: Any) -> float | None:
    if isinstance(value, list):
        return mean(value)
    return value


def _divide(a: float, b: float) -> float:
    if b == 0:
        return float("nan") if a == 0 else math.copysign(float("inf"), a)
    return a / b


def style_ratio(ratio: float, style: RatioStyle, lower_is_better: bool) -> tuple[str, str | None]:
    """Render a ratio and pick its color.

    A ratio of exactly 1 is neutral; otherwise it is improved when it moves
    in the direction the metric prefers.
    """
    if not math.isfinite(ratio):
        return "N/A", NOT_APPLICABLE
    if ratio == 1:
        color = None
    else:
        color = IMPROVED if (ratio < 1) == lower_is_better else REGRESSED

    if style == "trend":
        return f"{ratio * 100:.2f}%", color
    if style == "value":
        return f"{ratio:.2f}x", color
    if style == "percentage":
        delta = (ratio - 1) * 100
        return (f"+{delta:.2f}%" if delta > 0 else f"{delta:.2f}%"), color
    raise ValueError(f"Unknown ratio style: {style!r}")


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


class Column:
    """Base column: a header, an optional format template and a cell getter."""

    name: Cell = ""
    format: str | None = None

    def prepare(self, rows: Sequence[FlattenedRow]) -> None:
        """Called once per group before its cells are computed."""

    def get_value(self, row: FlattenedRow) -> Cell:
        raise NotImplementedError


class RowNumberColumn(Column):
    name = "No."

    def __init__(self) -> None:
        self._next = 0

    def get_value(self, row: FlattenedRow) -> Cell:
        row.number = self._next
        self._next += 1
        return str(row.number)


class VariableColumn(Column):
    def __init__(self, variable: str) -> None:
        self.variable = variable
        self.name = variable if variable in BUILTIN_VARS else (variable, USER_VARIABLE)

    def get_value(self, row: FlattenedRow) -> Cell:
        return row.get(self.variable)


class RawMetricColumn(Column):
    def __init__(self, meta: MetricMeta) -> None:
        self.meta = meta
        self.name = meta.key
        self.format = meta.format

    def get_value(self, row: FlattenedRow) -> Cell:
        return _to_number(row.metric(self.meta.key))


class StatisticsColumn(Column):
    """A column computed from the sorted samples of a statistics metric."""

    def __init__(self, meta: MetricMeta) -> None:
        self.meta = meta
        self.format = meta.format

    def calculate(self, values: list[float]) -> float:
        raise NotImplementedError

    def get_value(self, row: FlattenedRow) -> Cell:
        values = row.metric(self.meta.key)
        if isinstance(values, list):
            return self.calculate(values)
        if values is not None:
            raise MetricShapeError(self.meta.key, values)
        return None


class StdDevColumn(StatisticsColumn):
    def __init__(self, meta: MetricMeta) -> None:
        super().__init__(meta)
        self.name = f"{meta.key}.SD"

    def calculate(self, values: list[float]) -> float:
        return standard_deviation(values)


class PercentileColumn(StatisticsColumn):
    def __init__(self, meta: MetricMeta, p: float) -> None:
        super().__init__(meta)
        self.p = p
        self.name = f"{meta.key}.p{p}"

    def calculate(self, values: list[float]) -> float:
        return quantile_sorted(values, self.p / 100)


class BaselineColumn(Column):
    """Ratio of each row to the group's reference row."""

    def __init__(self, meta: MetricMeta, variable: str, value: Any, style: RatioStyle) -> None:
        self.meta = meta
        self.variable = variable
        self.value = value
        self.style = style
        self.name = f"{meta.key}.ratio"
        self._reference = 0.0

    def _number(self, row: FlattenedRow) -> float:
        value = _to_number(row.metric(self.meta.key))
        return value if isinstance(value, (int, float)) else 0.0

    def prepare(self, rows: Sequence[FlattenedRow]) -> None:
        # A group without the reference row gets N/A everywhere.
        self._reference = 0.0
        for row in rows:
            if row.get(self.variable) == self.value:
                self._reference = self._number(row)
                return

    def get_value(self, row: FlattenedRow) -> Cell:
        ratio = _divide(self._number(row), self._reference)
        return style_ratio(ratio, self.style, self.meta.lower_is_better)


class DifferenceColumn(Column):
    """Ratio of each row to the same row of a previous run."""

    def __init__(self, previous: Summary, meta: MetricMeta, style: RatioStyle) -> None:
        self.previous = previous
        self.meta = meta
        self.style = style
        self.name = f"{meta.key}.diff"

    def get_value(self, row: FlattenedRow) -> Cell:
        match = self.previous.find(row)
        if match is None:
            return None
        p = _to_number(match.metric(self.meta.key))
        c = _to_number(row.metric(self.meta.key))
        if p is None or c is None:
            return None
        return style_ratio(_divide(c, p), self.style, self.meta.lower_is_better)


# ---------------------------------------------------------------------------
# Preprocessing
# ---------------------------------------------------------------------------


def preprocess(summary: Summary, outliers: Outliers | Literal[False] = "all") -> None:
    """Sort sample lists and remove outliers of statistics metrics.

    The raw metrics of each row are left untouched; the processed values go
    to :attr:`FlattenedRow.processed`. Every removal adds an info note.

    Raises:
        MetricShapeError: If a statistics metric holds a scalar.
    """
    for row in summary.rows:
        processed = dict(row.metrics)
        row.processed = processed
        for meta in summary.meta.values():
            value = processed.get(meta.key)
            statistics = meta.analysis == MetricAnalysis.STATISTICS
            if not isinstance(value, list):
                if statistics and value is not None:
                    raise MetricShapeError(meta.key, value)
                continue
            value = sorted(value)
            processed[meta.key] = value
            if outliers and statistics:
                _remove_outliers(summary, row, processed, meta, outliers)


def _remove_outliers(
    summary: Summary,
    row: FlattenedRow,
    processed: dict[str, Any],
    meta: MetricMeta,
    outliers: Outliers,
) -> None:
    before = processed[meta.key]
    mode = outlier_mode_for(outliers, meta.lower_is_better)
    after = TukeyOutlierDetector(before).filter(before, mode)
    processed[meta.key] = after

    removed = len(before) - len(after)
    if removed:
        log.debug("Removed %d outliers of %s from %s", removed, meta.key, row.name)
        summary.add_note("info", f"{removed} outliers were removed.", row)


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------


class FormattedTable(list):
    """Rows of display strings, header first."""

    def to_markdown(self, string_length: Callable[[str], int] = len) -> str:
        """Render as the source of a right-aligned markdown table."""
        return format_markdown_table(list(self), string_length=string_length, align="r")


class SummaryTable:
    """Cells of one suite's report, plus the hints and warnings it raised.

    Attributes:
        cells: Header row followed by body rows of raw values.
        hints: Messages of info notes.
        warnings: Messages of warn notes.
    """

    def __init__(self, summary: Summary, columns: list[Column], groups: list[list[FlattenedRow]]):
        self.formats = [c.format for c in columns]
        self.cells: list[list[Any]] = []
        self.colors: list[list[str | None]] = []
        self.hints: list[str] = []
        self.warnings: list[str] = []
        self._group_ends: list[int] = []

        self._add_row([c.name for c in columns])
        for group in groups:
            for column in columns:
                column.prepare(group)
            for row in group:
                self._add_row([column.get_value(row) for column in columns])
            self._group_ends.append(len(self.cells))

        for note in summary.notes:
            scope = ""
            if note.row is not None:
                scope = f"[No.{note.row.number}] {note.row.name}: "
            target = self.hints if note.type == "info" else self.warnings
            target.append(scope + note.text)

    def _add_row(self, values: list[Cell]) -> None:
        row: list[Any] = []
        colors: list[str | None] = []
        for value in values:
            if isinstance(value, tuple):
                row.append(value[0])
                colors.append(value[1])
            else:
                row.append(value)
                colors.append(None)
        self.cells.append(row)
        self.colors.append(colors)

    @classmethod
    def from_results(
        cls,
        results: Sequence[ToolchainResult],
        diff: Sequence[ToolchainResult] | None = None,
        *,
        std_dev: bool = True,
        percentiles: Sequence[float] = (),
        outliers: Outliers | Literal[False] = "all",
        ratio_style: RatioStyle = "percentage",
        show_single: bool = False,
        baseline: dict[str, Any] | None = None,
    ) -> SummaryTable:
        """Build the table of one suite.

        Args:
            results: Results of the suite, one per toolchain.
            diff: Results of a previous run, for ``.diff`` columns.
            std_dev: Add ``.SD`` columns to statistics metrics.
            percentiles: Add a ``.pN`` column per value to statistics metrics.
            outliers: Which outliers to remove, or False to keep them all.
            ratio_style: How ratio cells are written.
            show_single: Also show variables that have only one value.
            baseline: ``{"type": variable, "value": value}``, overriding the
                baseline carried by the results.

        Raises:
            BaselineNotFoundError: If the baseline variable or value does not
                occur in the results.
            MetricShapeError: If a statistics metric holds a scalar.
        """
        summary = Summary(results)
        previous = Summary(diff or ())
        baseline = baseline or summary.baseline

        if baseline is not None:
            variable, value = baseline["type"], baseline["value"]
            if variable not in summary.vars:
                raise BaselineNotFoundError(
                    variable, value, f"Baseline variable {variable!r} is not in the results."
                )
            if not summary.has_value(variable, value):
                raise BaselineNotFoundError(variable, value)

        columns: list[Column] = [RowNumberColumn()]
        for name, values in summary.vars.items():
            if name == "Name" or show_single or len(values) > 1:
                columns.append(VariableColumn(name))

        for meta in summary.meta.values():
            columns.append(RawMetricColumn(meta))
            if meta.analysis == MetricAnalysis.NONE:
                continue
            if meta.analysis == MetricAnalysis.STATISTICS:
                if std_dev:
                    columns.append(StdDevColumn(meta))
                for p in percentiles:
                    columns.append(PercentileColumn(meta, p))
            if baseline is not None:
                columns.append(
                    BaselineColumn(meta, baseline["type"], baseline["value"], ratio_style)
                )
            if meta.key in previous.meta:
                columns.append(DifferenceColumn(previous, meta, ratio_style))

        preprocess(summary, outliers)
        preprocess(previous, outliers)

        groups = summary.split(baseline["type"]) if baseline is not None else [summary.rows]
        return cls(summary, columns, groups)

    def format(self, flex_unit: bool = False, stainer: Stainer | None = None) -> FormattedTable:
        """Convert cells to display strings.

        Formatted columns are rendered with units, chosen per group; groups
        are separated by an empty row. Every cell then goes through
        *stainer* with its color, or None.

        Raises:
            TypeError: If a formatted column holds a string.
        """
        stain = stainer or _no_color
        width = len(self.formats)
        table = FormattedTable()
        table.append([stain(_text(v), c) for v, c in zip(self.cells[0], self.colors[0])])

        offset = 1
        for end in self._group_ends:
            body = [list(r) for r in self.cells[offset:end]]
            for i, template in enumerate(self.formats):
                if template:
                    _format_column(body, i, template, flex_unit)
            for j, row in enumerate(body):
                colors = self.colors[offset + j]
                table.append([stain(_text(row[i]), colors[i]) for i in range(width)])
            table.append([""] * width)
            offset = end

        if len(table) > 1:
            table.pop()
        return table


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _format_column(body: list[list[Any]], column: int, template: str, flex: bool) -> None:
    numbers: list[float] = []
    for row in body:
        value = row[column]
        if isinstance(value, str):
            raise TypeError(f'Cannot apply number format to "{value}"')
        if value is not None:
            numbers.append(value)

    formatter = parse_format(template).formatter(numbers, flex)
    for row in body:
        value = row[column]
        row[column] = "" if value is None else formatter(value)
