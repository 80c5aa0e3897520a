"""Flatten toolchain results into comparable rows.

Each :class:`~benchhost.host.results.ToolchainResult` describes a parameter
matrix (``param_def``) and one scene per combination. A :class:`Summary`
expands the matrix, pairs every combination with its scene, and produces one
:class:`FlattenedRow` per (scene, case). Rows from several results can be
combined into one summary; a row is identified by the values of all its
variables, which is how a current run is matched against a previous one.
"""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Iterator, Sequence

from benchhost.errors import ResultFormatError
from benchhost.host.results import Metrics, ToolchainResult

log = logging.getLogger("benchhost.report")

BUILTIN_VARS = ("Name", "Builder", "Executor")


class MetricAnalysis(IntEnum):
    """How much analysis a metric supports."""

    NONE = 0
    COMPARE = 1
    STATISTICS = 2


@dataclass(frozen=True)
class MetricMeta:
    """Display and analysis metadata of one metric."""

    key: str
    format: str | None = None
    analysis: MetricAnalysis = MetricAnalysis.NONE
    lower_is_better: bool = False

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> MetricMeta:
        try:
            analysis = MetricAnalysis(int(data.get("analysis") or 0))
        except ValueError as exc:
            raise ResultFormatError(f"Unknown analysis kind of metric {key!r}") from exc
        return cls(
            key=data.get("key", key),
            format=data.get("format"),
            analysis=analysis,
            lower_is_better=bool(data.get("lowerIsBetter", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"key": self.key, "analysis": int(self.analysis)}
        if self.format is not None:
            d["format"] = self.format
        if self.lower_is_better:
            d["lowerIsBetter"] = True
        return d


TIME_METRIC = MetricMeta(
    key="time",
    format="{duration.ms}",
    analysis=MetricAnalysis.STATISTICS,
    lower_is_better=True,
)


@dataclass(eq=False)
class FlattenedRow:
    """One (case, parameter combination) observation.

    Attributes:
        variables: ``Name``, ``Builder``, ``Executor`` (when known) and every
            parameter, in that order.
        metrics: Raw metric values as reported by the suite.
        processed: Metric values after sorting and outlier removal; set by
            table preprocessing, falls back to *metrics* until then.
        number: Row number assigned when the row is placed in a table.
    """

    variables: dict[str, Any]
    metrics: Metrics
    processed: Metrics | None = None
    number: int | None = None

    @property
    def name(self) -> str:
        return str(self.variables["Name"])

    def get(self, variable: str, default: Any = None) -> Any:
        return self.variables.get(variable, default)

    def metric(self, key: str) -> Any:
        source = self.metrics if self.processed is None else self.processed
        return source.get(key)

    def identity(self) -> str:
        return identity_of(self.variables)


@dataclass
class Note:
    """An advisory message, optionally attributed to a row."""

    type: str
    text: str
    row: FlattenedRow | None = None


def identity_of(variables: dict[str, Any]) -> str:
    """Canonical key of a variable assignment, independent of key order."""
    return json.dumps(variables, sort_keys=True, default=str)


def _hashable(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return json.dumps(value, sort_keys=True, default=str)
    return value


def paired(
    combinations: Iterable[dict[str, Any]],
    scenes: Sequence[dict[str, Metrics]],
    *,
    suite: str = "",
) -> Iterator[tuple[dict[str, Any], dict[str, Metrics]]]:
    """Zip parameter combinations with scenes, failing on a length mismatch.

    Raises:
        ResultFormatError: If the two sequences have different lengths.
    """
    combos = list(combinations)
    if len(combos) != len(scenes):
        raise ResultFormatError(
            f"Suite {suite!r} has {len(scenes)} scenes but its parameters "
            f"define {len(combos)} combinations"
        )
    return zip(combos, scenes)


def expand_params(param_def: Sequence[tuple[str, Sequence[Any]]]) -> Iterator[dict[str, Any]]:
    """Cartesian product of a parameter definition; the last variable varies fastest."""
    keys = [k for k, _ in param_def]
    for values in itertools.product(*(v for _, v in param_def)):
        yield dict(zip(keys, values))


class Summary:
    """Rows, variable domains, metric metadata and notes of result sets.

    Args:
        results: Toolchain results of one suite, usually one per
            builder × executor pair.
    """

    def __init__(self, results: Iterable[ToolchainResult] = ()) -> None:
        self.rows: list[FlattenedRow] = []
        self.vars: dict[str, set[Any]] = {}
        self.meta: dict[str, MetricMeta] = {}
        self.notes: list[Note] = []
        self.baseline: dict[str, Any] | None = None
        self._index: dict[str, FlattenedRow] = {}
        for result in results:
            self.add(result)

    @classmethod
    def combine(cls, *result_sets: Iterable[ToolchainResult]) -> Summary:
        """Build one summary from several result sets, in order."""
        summary = cls()
        for results in result_sets:
            for result in results:
                summary.add(result)
        return summary

    # -- building --------------------------------------------------------

    def add(self, result: ToolchainResult) -> None:
        """Flatten *result* and append its rows, metadata and notes."""
        if self.baseline is None and result.baseline is not None:
            self.baseline = result.baseline

        declared = result.meta or {TIME_METRIC.key: TIME_METRIC.to_dict()}
        for key, raw_meta in declared.items():
            self._register_meta(MetricMeta.from_dict(key, raw_meta), result)

        added: list[FlattenedRow] = []
        combos = expand_params(result.param_def)
        for combo, scene in paired(combos, result.scenes, suite=result.name):
            for case_name, metrics in scene.items():
                variables: dict[str, Any] = {"Name": case_name}
                if result.builder is not None:
                    variables["Builder"] = result.builder
                if result.executor is not None:
                    variables["Executor"] = result.executor
                variables.update(combo)
                row = FlattenedRow(variables, dict(metrics))
                self._add_row(row)
                added.append(row)

        for raw_note in result.notes:
            row = None
            case_id = raw_note.get("caseId")
            if case_id is not None:
                if not 0 <= case_id < len(added):
                    raise ResultFormatError(f"Note refers to unknown case {case_id}")
                row = added[case_id]
            self.add_note(raw_note.get("type", "info"), raw_note.get("text", ""), row)

    def _register_meta(self, meta: MetricMeta, result: ToolchainResult) -> None:
        existing = self.meta.get(meta.key)
        if existing is None:
            self.meta[meta.key] = meta
        elif existing != meta:
            source = "/".join(filter(None, (result.builder, result.executor))) or result.name
            log.debug("Conflicting metadata of metric %s from %s", meta.key, source)
            self.add_note(
                "warn", f'Metric "{meta.key}" is redefined by {source}, the first definition is used.'
            )

    def _add_row(self, row: FlattenedRow) -> None:
        self.rows.append(row)
        self._index.setdefault(row.identity(), row)
        for name, value in row.variables.items():
            self.vars.setdefault(name, set()).add(_hashable(value))

    def add_note(self, type: str, text: str, row: FlattenedRow | None = None) -> None:
        self.notes.append(Note(type, text, row))

    # -- queries ---------------------------------------------------------

    def has_value(self, variable: str, value: Any) -> bool:
        """Whether any row assigns *value* to *variable*."""
        return _hashable(value) in self.vars.get(variable, ())

    def find(self, row: FlattenedRow) -> FlattenedRow | None:
        """Return the row of this summary with the same identity as *row*."""
        return self._index.get(row.identity())

    def split(self, variable: str) -> list[list[FlattenedRow]]:
        """Group rows that agree on every variable except *variable*.

        Groups appear in order of their first row; rows keep their order
        within a group.
        """
        groups: dict[str, list[FlattenedRow]] = {}
        for row in self.rows:
            others = {k: v for k, v in row.variables.items() if k != variable}
            groups.setdefault(identity_of(others), []).append(row)
        return list(groups.values())
