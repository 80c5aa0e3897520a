"""Unit conversion for formatted metric columns.

A metric declares a format template such as ``{duration.ms}`` or
``{dataSize.KiB}/s``: the kind selects a :class:`UnitConvertor`, the optional
unit names the unit the raw values are expressed in, and any trailing text is
appended verbatim after the converted value.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, Sequence

from benchhost.formatting import separate_thousands

FormatFn = Callable[[float], str]

_FORMAT_RE = re.compile(r"^\{(\w+)(?:\.(\w+))?}")


def _trim(value: float, precision: int) -> str:
    """Round to *precision* decimals and drop trailing zeros: 1.50 -> '1.5'."""
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


class UnitConvertor:
    """Scale values between the units of one dimension.

    Args:
        name: The format kind, e.g. ``"duration"``.
        units: Unit names, smallest first.
        fractions: Size of each unit expressed in the smallest one.
        base: Unit assumed when a template does not name one.
    """

    def __init__(
        self,
        name: str,
        units: Sequence[str],
        fractions: Sequence[float],
        base: str,
    ) -> None:
        if len(units) != len(fractions):
            raise ValueError("units and fractions must have the same length")
        self.name = name
        self.units = list(units)
        self.fractions = list(fractions)
        self.base = base

    def _index(self, unit: str | None) -> int:
        unit = self.base if unit is None else unit
        try:
            return self.units.index(unit)
        except ValueError:
            raise ValueError(f"Unknown {self.name} unit: {unit!r}") from None

    def suit(self, value: float) -> int:
        """Index of the largest unit in which ``|value| >= 1``.

        *value* is expressed in the smallest unit.
        """
        magnitude = abs(value)
        for i in range(len(self.fractions) - 1, -1, -1):
            if magnitude >= self.fractions[i]:
                return i
        return 0

    def _render(self, value: float, index: int, precision: int) -> str:
        unit = self.units[index]
        text = _trim(value / self.fractions[index], precision)
        return f"{text} {unit}" if unit else text

    def format_div(self, value: float, unit: str | None = None, precision: int = 2) -> str:
        """Format one value in the unit that suits it best."""
        scaled = value * self.fractions[self._index(unit)]
        return self._render(scaled, self.suit(scaled), precision)

    def homogeneous(
        self,
        values: Sequence[float],
        unit: str | None = None,
        precision: int = 2,
    ) -> FormatFn:
        """Return a formatter that renders every value in one shared unit.

        The shared unit is the coarsest one that keeps every non-zero finite
        value at 1 or above; zero and non-finite values do not vote.
        """
        x = self.fractions[self._index(unit)]
        suits = [self.suit(v * x) for v in values if v and math.isfinite(v)]
        index = min(suits) if suits else self._index(unit)

        def format_value(value: float) -> str:
            return self._render(value * x, index, precision)

        return format_value


decimal_prefix = UnitConvertor(
    "number",
    ["", "K", "M", "G", "T", "P"],
    [1, 1e3, 1e6, 1e9, 1e12, 1e15],
    base="",
)

duration_fmt = UnitConvertor(
    "duration",
    ["ns", "us", "ms", "s", "m", "h", "d"],
    [1, 1e3, 1e6, 1e9, 6e10, 3.6e12, 8.64e13],
    base="ns",
)

data_size_iec = UnitConvertor(
    "dataSize",
    ["B", "KiB", "MiB", "GiB", "TiB", "PiB"],
    [1, 1024, 1024**2, 1024**3, 1024**4, 1024**5],
    base="B",
)

CONVERTORS: dict[str, UnitConvertor] = {
    "number": decimal_prefix,
    "duration": duration_fmt,
    "dataSize": data_size_iec,
}


@dataclass
class MetricFormat:
    """A parsed ``{kind.unit}suffix`` template."""

    convertor: UnitConvertor
    unit: str | None
    suffix: str

    def formatter(self, values: Sequence[float], flex: bool = False) -> FormatFn:
        """Build the cell formatter for one column of *values*."""
        if flex:
            convertor, unit = self.convertor, self.unit
            return lambda v: separate_thousands(convertor.format_div(v, unit)) + self.suffix
        fixed = self.convertor.homogeneous(values, self.unit)
        return lambda v: separate_thousands(fixed(v)) + self.suffix


def parse_format(template: str) -> MetricFormat:
    """Parse a metric format template.

    Raises:
        ValueError: If the template does not start with ``{kind}`` or
            ``{kind.unit}``, or names an unknown kind or unit.
    """
    match = _FORMAT_RE.match(template)
    if match is None or match.group(1) not in CONVERTORS:
        raise ValueError(f"Invalid metric format: {template}")
    convertor = CONVERTORS[match.group(1)]
    unit = match.group(2)
    if unit is not None:
        convertor._index(unit)
    return MetricFormat(convertor, unit, template[match.end() :])
