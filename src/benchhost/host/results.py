"""Raw benchmark result data structures, merging and JSON persistence.

Hierarchy::

    RawResult (one run, or several merged runs)
      → suite file → list[ToolchainResult]   (one per builder × executor)
        → paramDef: ordered (variable, values) pairs
        → scenes: one {case: {metric: value}} per parameter combination
        → meta / notes / baseline: metric metadata and suite notes

Files produced::

    result.json  — {suite file: [ToolchainResult, ...]}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from benchhost.errors import ResultFormatError

log = logging.getLogger("benchhost")

# A case's metrics: scalar or list of samples, keyed by metric name.
Metrics = dict[str, Any]


@dataclass
class ToolchainResult:
    """Results of one suite built by one builder and run by one executor."""

    scenes: list[dict[str, Metrics]] = field(default_factory=list)
    param_def: list[tuple[str, list[Any]]] = field(default_factory=list)
    name: str = ""
    builder: str | None = None
    executor: str | None = None
    meta: dict[str, dict[str, Any]] = field(default_factory=dict)
    notes: list[dict[str, Any]] = field(default_factory=list)
    baseline: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (sparse: omits empty fields)."""
        d: dict[str, Any] = {
            "paramDef": [[k, list(v)] for k, v in self.param_def],
            "scenes": self.scenes,
        }
        if self.name:
            d["name"] = self.name
        if self.builder is not None:
            d["builder"] = self.builder
        if self.executor is not None:
            d["executor"] = self.executor
        if self.meta:
            d["meta"] = self.meta
        if self.notes:
            d["notes"] = self.notes
        if self.baseline is not None:
            d["baseline"] = self.baseline
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolchainResult:
        """Deserialize from a dict.

        ``paramDef`` may be a list of ``[name, values]`` pairs or a mapping.

        Raises:
            ResultFormatError: If the record does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise ResultFormatError(f"Result record must be an object, got {type(data).__name__}")

        raw_params = data.get("paramDef", [])
        if isinstance(raw_params, dict):
            raw_params = list(raw_params.items())
        try:
            param_def = [(str(k), list(v)) for k, v in raw_params]
        except (TypeError, ValueError) as exc:
            raise ResultFormatError(f"Invalid paramDef: {raw_params!r}") from exc

        scenes = data.get("scenes", [])
        if not isinstance(scenes, list) or not all(isinstance(s, dict) for s in scenes):
            raise ResultFormatError("'scenes' must be a list of objects")

        return cls(
            scenes=scenes,
            param_def=param_def,
            name=data.get("name", ""),
            builder=data.get("builder"),
            executor=data.get("executor"),
            meta=data.get("meta", {}),
            notes=data.get("notes", []),
            baseline=data.get("baseline"),
        )


RawResult = dict[str, list[ToolchainResult]]


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def merge_results(raw: RawResult, more: RawResult) -> RawResult:
    """Append every per-file record list of *more* onto *raw*.

    Creates missing keys; records are never deduplicated, so
    ``merge(A, B)[file] == A[file] + B[file]``. Mutates and returns *raw*.
    """
    for file, records in more.items():
        raw.setdefault(file, []).extend(records)
    return raw


def add_record(
    raw: RawResult,
    file: str,
    record: ToolchainResult | dict[str, Any],
    *,
    builder: str,
    executor: str,
) -> ToolchainResult:
    """Tag *record* with its provenance and append it under *file*.

    A leading ``./`` left by include-pattern normalization is stripped
    from the key.
    """
    if isinstance(record, dict):
        record = ToolchainResult.from_dict(record)
    record.builder = builder
    record.executor = executor
    if file.startswith("./"):
        file = file[2:]
    raw.setdefault(file, []).append(record)
    return record


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


def results_to_dict(raw: RawResult) -> dict[str, list[dict[str, Any]]]:
    """Convert a raw result to its JSON-compatible form."""
    return {file: [r.to_dict() for r in records] for file, records in raw.items()}


def results_from_dict(data: Any) -> RawResult:
    """Build a raw result from its JSON form.

    Raises:
        ResultFormatError: If *data* is not a mapping of lists.
    """
    if not isinstance(data, dict):
        raise ResultFormatError(f"Result file must contain an object, got {type(data).__name__}")
    raw: RawResult = {}
    for file, records in data.items():
        if not isinstance(records, list):
            raise ResultFormatError(f"Results of '{file}' must be a list")
        raw[file] = [ToolchainResult.from_dict(r) for r in records]
    return raw


def save_results(path: Path, raw: RawResult) -> None:
    """Write a raw result as JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(results_to_dict(raw), indent=2) + "\n", encoding="utf-8")
    log.info("Wrote %d suite results to %s", len(raw), path)


def read_results(path: Path) -> RawResult:
    """Read a raw result saved by :func:`save_results`.

    Raises:
        FileNotFoundError: If the file is missing.
        ResultFormatError: If the file is not a valid result.
    """
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ResultFormatError(f"{path} is not valid JSON: {exc}") from exc
    return results_from_dict(data)


def load_results(path: Path, *, required: bool = True) -> RawResult | None:
    """Like :func:`read_results`, but a missing file may be tolerated.

    Args:
        path: The JSON file.
        required: If False, a missing file yields ``None`` instead of an error.
    """
    try:
        return read_results(path)
    except FileNotFoundError:
        if required:
            raise
        log.debug("Optional result file %s not found", path)
        return None


def load_and_merge(paths: list[Path]) -> RawResult:
    """Read several result files and merge them in order."""
    raw: RawResult = {}
    for path in paths:
        merge_results(raw, read_results(path))
    return raw
