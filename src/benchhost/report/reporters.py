"""Built-in reporters.

A reporter is a callable ``reporter(result, previous, logger)`` invoked after
a run (or by ``benchhost report``) with the merged raw result, the result of
the previous run if one was loaded, and the host logger. It may return an
awaitable.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal, Sequence, Union

import click

from benchhost.host.results import RawResult, save_results
from benchhost.report.table import Outliers, RatioStyle, SummaryTable

Reporter = Callable[[RawResult, Union[RawResult, None], logging.Logger], Union[Awaitable[None], None]]


def raw_reporter(file: str | Path = "reports/result.json") -> Reporter:
    """Save the raw result as JSON, for later ``report`` or ``--diff`` use."""
    path = Path(file)

    def report_raw(result: RawResult, previous: RawResult | None, logger: logging.Logger) -> None:
        save_results(path, result)
        logger.info("Raw result saved to %s", path)

    return report_raw


def _console_stain(text: str, color: str | None) -> str:
    return click.style(text, fg=color) if color else text


def render_text(
    result: RawResult,
    previous: RawResult | None,
    *,
    colored: bool,
    **table_options: Any,
) -> str:
    """Render every suite of *result* as a markdown table with notes."""
    flex_unit = table_options.pop("flex_unit", False)
    stainer = _console_stain if colored else None

    def paint(text: str, **style: Any) -> str:
        return click.style(text, **style) if colored else text

    lines = [paint(f"Text reporter: Format benchmark results of {len(result)} suites:", fg="bright_blue")]
    for file, records in result.items():
        diff = previous.get(file) if previous else None
        table = SummaryTable.from_results(records, diff, **table_options)
        formatted = table.format(flex_unit=flex_unit, stainer=stainer)

        lines.append("")
        lines.append(paint("Suite: ", fg="bright_green") + file)
        lines.append(formatted.to_markdown(lambda s: len(click.unstyle(s))))
        if table.hints:
            lines.append("")
            lines.append(paint("Hints:", fg="cyan"))
            lines.extend(paint(h, fg="cyan") for h in table.hints)
        if table.warnings:
            lines.append("")
            lines.append(paint("Warnings:", fg="bright_yellow"))
            lines.extend(paint(w, fg="bright_yellow") for w in table.warnings)
    return "\n".join(lines)


def text_reporter(
    console: bool = True,
    file: str | Path | None = None,
    *,
    std_dev: bool = True,
    percentiles: Sequence[float] = (),
    outliers: Outliers | Literal[False] = "all",
    ratio_style: RatioStyle = "percentage",
    flex_unit: bool = False,
    show_single: bool = False,
    baseline: dict[str, Any] | None = None,
) -> Reporter:
    """Format results as markdown tables.

    Args:
        console: Print the report, colored, to stdout.
        file: Also write the report, uncolored, to this file.
        std_dev: Show ``.SD`` columns.
        percentiles: Percentile columns to show, e.g. ``[75, 99]``.
        outliers: ``"all"``, ``"worst"``, ``"best"`` or False.
        ratio_style: ``"percentage"``, ``"value"`` or ``"trend"``.
        flex_unit: Let every cell of a column choose its own unit.
        show_single: Also show variables with a single value.
        baseline: Overrides the baseline declared by suites.
    """
    options: dict[str, Any] = {
        "std_dev": std_dev,
        "percentiles": list(percentiles),
        "outliers": outliers,
        "ratio_style": ratio_style,
        "flex_unit": flex_unit,
        "show_single": show_single,
        "baseline": baseline,
    }

    def report_text(result: RawResult, previous: RawResult | None, logger: logging.Logger) -> None:
        if console:
            click.echo(render_text(result, previous, colored=True, **options))
        if file is not None:
            path = Path(file)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_text(result, previous, colored=False, **options) + "\n", encoding="utf-8")
            logger.info("Text report saved to %s", path)

    return report_text
