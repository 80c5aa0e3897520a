"""Run suites inside an executor and report through a dispatch function.

This is the executor-side half of the message channel: results, log lines
and errors are passed to ``dispatch`` as plain messages (see
:mod:`benchhost.host.channel`).
"""

from __future__ import annotations

import importlib.util
import itertools
import json
import re
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

from benchhost.client.profiling import ProfilingContext, build_profilers
from benchhost.client.suite import BenchmarkSuite, Scene, call_maybe_async, define_suite, run_hooks
from benchhost.errors import SuiteCaseError

INDEX_FILE = "index.json"

Dispatch = Callable[[Any], None]

_PRIMITIVES = (str, int, float, bool, type(None))


def write_index(root: Path, files: Sequence[str]) -> Path:
    """Record the absolute path of every suite file of a build."""
    path = root / INDEX_FILE
    path.write_text(json.dumps([str(Path(f).resolve()) for f in files]), encoding="utf-8")
    return path


def load_index(root: str | Path) -> list[str]:
    return json.loads((Path(root) / INDEX_FILE).read_text(encoding="utf-8"))


def load_suite(path: str | Path) -> BenchmarkSuite:
    """Import a suite file and return its ``suite`` attribute.

    A bare setup function is accepted as a suite without options.

    Raises:
        TypeError: If the module does not define ``suite``.
    """
    path = Path(path)
    module_name = "benchhost_suite_" + re.sub(r"\W", "_", path.stem)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import suite file {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    finally:
        sys.modules.pop(module_name, None)

    suite = getattr(module, "suite", None)
    if isinstance(suite, BenchmarkSuite):
        return suite
    if callable(suite):
        return define_suite(suite)
    raise TypeError(f"{path} does not define a benchmark suite")


def display_value(value: Any) -> Any:
    """Make a parameter value JSON friendly, keeping primitives as is."""
    if isinstance(value, _PRIMITIVES):
        return value
    return getattr(value, "__name__", None) or repr(value)


def param_string(params: dict[str, Any]) -> str:
    return ", ".join(f"{k}={display_value(v)}" for k, v in params.items())


async def run_suite(
    suite: BenchmarkSuite,
    dispatch: Dispatch,
    pattern: str = "",
    name: str = "",
) -> dict[str, Any]:
    """Run every scene of *suite* through its profilers and return its result record.

    Raises:
        SuiteCaseError: If ``setup``, a case, a hook or a profiler fails in a scene.
    """
    include = re.compile(pattern)
    keys = list(suite.params)
    scenes: list[dict[str, Any]] = []
    ctx = ProfilingContext(suite, dispatch, build_profilers(suite))
    case_id = 0

    if suite.before_all is not None:
        await call_maybe_async(suite.before_all)
    try:
        await ctx.emit("on_start")
        combos = list(itertools.product(*suite.params.values()))
        for index, values in enumerate(combos):
            params = dict(zip(keys, values))
            scene = Scene(params, include)
            try:
                await call_maybe_async(suite.setup, scene)
                for case in scene.cases:
                    case.id = case_id
                    case_id += 1
                ctx.info(f"Scene {index + 1} of {len(combos)}, {len(scene.cases)} cases.")
                metrics: dict[str, Any] = {}
                try:
                    await ctx.emit("on_scene", scene)
                    for case in scene.cases:
                        metrics[case.name] = {}
                        await ctx.emit("on_case", case, metrics[case.name])
                finally:
                    await run_hooks(scene.teardown_hooks)
            except Exception as exc:
                raise SuiteCaseError(param_string(params), exc) from exc
            scenes.append(metrics)
        await ctx.emit("on_finish")
    finally:
        if suite.after_all is not None:
            await call_maybe_async(suite.after_all)

    record: dict[str, Any] = {
        "name": suite.name or name,
        "paramDef": [[k, [display_value(v) for v in suite.params[k]]] for k in keys],
        "scenes": scenes,
        "meta": ctx.meta,
        "notes": ctx.notes,
    }
    if suite.baseline is not None:
        record["baseline"] = suite.baseline
    return record


async def run_suites(dispatch: Dispatch, files: Sequence[str], pattern: str = "") -> None:
    """Run suite files in order and dispatch their records as one list.

    Any failure is dispatched instead of the records; it is not raised.
    """
    records = []
    try:
        for file in files:
            dispatch({"level": "debug", "log": f"Running suite {file}"})
            suite = load_suite(file)
            records.append(await run_suite(suite, dispatch, pattern, Path(file).stem))
    except Exception as exc:
        dispatch(exc)
        return
    dispatch(records)
