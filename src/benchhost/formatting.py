"""Shared text formatting helpers for benchhost.

Provides functions for formatting durations, thousands separators and
markdown tables used by the host and the text reporter.
"""

from __future__ import annotations

import re
from typing import Callable

_THOUSANDS_RE = re.compile(r"\B(?=(\d{3})+(?!\d))")


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Examples: ``'820 ms'``, ``'8s'``, ``'1m 23s'``, ``'1h 12m 34s'``.
    Durations of a second or more are whole seconds (truncated, not rounded).
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    total = int(seconds)
    if total >= 3600:
        h = total // 3600
        m = (total % 3600) // 60
        s = total % 60
        return f"{h}h {m:2d}m {s:2d}s"
    if total >= 60:
        m = total // 60
        s = total % 60
        return f"{m}m {s:2d}s"
    return f"{total}s"


def separate_thousands(text: str) -> str:
    """Insert commas into the integer part of the first number in *text*.

    ``'1750 us'`` becomes ``'1,750 us'``; the fraction part is untouched.
    """
    match = re.search(r"\d+", text)
    if match is None:
        return text
    integer = _THOUSANDS_RE.sub(",", match.group())
    return text[: match.start()] + integer + text[match.end() :]


def format_markdown_table(
    rows: list[list[str]],
    *,
    string_length: Callable[[str], int] = len,
    align: str = "r",
) -> str:
    """Format rows as a markdown table, the first row being the header.

    Column widths are computed with *string_length* so that cells containing
    ANSI escape codes can still be aligned. Empty rows are rendered as
    separator lines of blank cells.

    Args:
        rows: Header followed by body rows, each a list of cell strings.
        string_length: Visible width of a cell.
        align: ``'l'`` or ``'r'`` for every column.

    Returns:
        The markdown source of the table.
    """
    if not rows:
        return ""

    ncols = len(rows[0])
    proc_rows: list[list[str]] = []
    for row in rows:
        padded = ["" if c is None else str(c) for c in row] + [""] * (ncols - len(row))
        proc_rows.append(padded[:ncols])

    widths = [3] * ncols
    for row in proc_rows:
        for ci, cell in enumerate(row):
            widths[ci] = max(widths[ci], string_length(cell))

    def _format_cell(text: str, width: int) -> str:
        pad = " " * (width - string_length(text))
        return pad + text if align == "r" else text + pad

    def _line(cells: list[str]) -> str:
        return "| " + " | ".join(_format_cell(cells[i], widths[i]) for i in range(ncols)) + " |"

    if align == "r":
        rule = ["-" * (w - 1) + ":" for w in widths]
    else:
        rule = [":" + "-" * (w - 1) for w in widths]

    lines = [_line(proc_rows[0]), "| " + " | ".join(rule) + " |"]
    for row in proc_rows[1:]:
        lines.append(_line(row))
    return "\n".join(lines)
