"""Statistical helpers for summarizing benchmark samples.

Provides mean, population standard deviation, sorted-sample quantiles and
Tukey's outlier fences, all in pure Python with no external dependencies.

Quantiles use the sorted-quantile method: for ``idx = n * p``, a
fractional index selects ``x[ceil(idx) - 1]``; an integral index selects
``x[idx]`` for odd ``n`` and the average of ``x[idx - 1]`` and ``x[idx]`` for
even ``n``. This differs from the linear interpolation used by numpy and is
what the outlier fences are computed with.

References:
    Tukey's fences: Tukey, J. W. (1977). "Exploratory Data Analysis."
"""

from __future__ import annotations

import math
from typing import Literal, Sequence

OutlierMode = Literal["upper", "lower", "all"]


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; NaN for an empty sample."""
    if not values:
        return float("nan")
    return math.fsum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (divides by n, not n-1).

    Returns 0.0 for a single value and NaN for an empty sample.
    """
    n = len(values)
    if n == 0:
        return float("nan")
    if n == 1:
        return 0.0
    m = mean(values)
    return math.sqrt(math.fsum((v - m) ** 2 for v in values) / n)


def quantile_sorted(sorted_values: Sequence[float], p: float) -> float:
    """Compute the p-th quantile of an ascending sample.

    Assumes sorted_values is already sorted in ascending order.

    Raises:
        ValueError: If *p* is outside ``[0, 1]``.
    """
    if not 0 <= p <= 1:
        raise ValueError(f"Quantiles must be between 0 and 1, got {p}")
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if p == 1:
        return sorted_values[-1]
    if p == 0:
        return sorted_values[0]

    idx = n * p
    if idx % 1 != 0:
        return sorted_values[math.ceil(idx) - 1]
    idx = int(idx)
    if n % 2 == 0:
        return (sorted_values[idx - 1] + sorted_values[idx]) / 2
    return sorted_values[idx]


# ---------------------------------------------------------------------------
# Outlier detection
# ---------------------------------------------------------------------------


class TukeyOutlierDetector:
    """Detect outliers using Tukey's fences.

    A value is an outlier if it falls below ``Q1 - k*IQR`` or above
    ``Q3 + k*IQR``. The fences are fixed at construction time, so the same
    detector can filter several series against one reference distribution.

    Args:
        values: The reference sample (any order).
        k: IQR multiplier (default 1.5 for standard outliers,
           use 3.0 for extreme outliers).
    """

    def __init__(self, values: Sequence[float], k: float = 1.5) -> None:
        sorted_v = sorted(values)
        self.q1 = quantile_sorted(sorted_v, 0.25)
        self.q3 = quantile_sorted(sorted_v, 0.75)
        iqr = self.q3 - self.q1
        self.lower_fence = self.q1 - k * iqr
        self.upper_fence = self.q3 + k * iqr

    def is_outlier(self, value: float, mode: OutlierMode = "all") -> bool:
        """Whether *value* lies beyond the fence(s) selected by *mode*."""
        if mode == "upper":
            return value > self.upper_fence
        if mode == "lower":
            return value < self.lower_fence
        return value < self.lower_fence or value > self.upper_fence

    def filter(self, values: Sequence[float], mode: OutlierMode = "all") -> list[float]:
        """Return *values* without outliers, preserving order."""
        return [v for v in values if not self.is_outlier(v, mode)]


def outlier_mode_for(selection: str, lower_is_better: bool) -> OutlierMode:
    """Map a "worst"/"best"/"all" selection onto a fence side.

    Removing the "worst" outliers drops the statistically bad tail: high
    values when lower is better, low values otherwise. "best" drops the
    opposite tail.
    """
    if selection == "all":
        return "all"
    if selection not in ("worst", "best"):
        raise ValueError(f"Unknown outlier selection: {selection!r}")
    return "lower" if (selection == "best") == lower_is_better else "upper"
