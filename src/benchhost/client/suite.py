"""Suite definitions: what a benchmark file declares.

A suite file exposes a module-level ``suite``::

    from benchhost.client import define_suite

    def setup(scene):
        data = list(range(scene.params["size"]))
        scene.bench("sum", lambda: sum(data))
        scene.bench("loop", lambda: [x for x in data])

    suite = define_suite(setup, params={"size": [100, 10_000]})

``setup`` runs once per parameter combination (a scene) and registers the
cases of that scene.
"""

from __future__ import annotations

import inspect
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Pattern, Union

HookFn = Callable[[], Union[Awaitable[Any], Any]]
Workload = Callable[[], Any]

RE_ANY = re.compile("")


async def call_maybe_async(fn: Callable[..., Any], *args: Any) -> Any:
    """Call *fn* and await the result if it is awaitable."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_hooks(hooks: list[HookFn]) -> None:
    for hook in hooks:
        await call_maybe_async(hook)


class BenchCase:
    """One named workload of a scene."""

    def __init__(self, scene: Scene, name: str, fn: Workload, is_async: bool) -> None:
        self.name = name
        self.fn = fn
        self.is_async = is_async
        self.before_hooks = scene.before_iteration_hooks
        self.after_hooks = scene.after_iteration_hooks
        # Unique within a suite run, assigned by the runner.
        self.id = -1

    async def call(self) -> Any:
        """Run the workload once between the iteration hooks and return its result."""
        await run_hooks(self.before_hooks)
        try:
            result = self.fn()
            return await result if self.is_async else result
        finally:
            await run_hooks(self.after_hooks)

    async def invoke(self) -> int:
        """Run the workload once between the iteration hooks.

        Returns:
            Duration of the workload alone, in nanoseconds.
        """
        await run_hooks(self.before_hooks)
        try:
            if self.is_async:
                start = time.perf_counter_ns()
                await self.fn()
            else:
                start = time.perf_counter_ns()
                self.fn()
            return time.perf_counter_ns() - start
        finally:
            await run_hooks(self.after_hooks)


class Scene:
    """Cases and hooks registered by ``setup`` for one parameter combination.

    Args:
        params: The parameter values of this scene.
        include: Cases whose name does not match are skipped.
    """

    def __init__(self, params: dict[str, Any] | None = None, include: Pattern[str] = RE_ANY):
        self.params = params or {}
        self.include = include
        self.cases: list[BenchCase] = []
        self.teardown_hooks: list[HookFn] = []
        self.before_iteration_hooks: list[HookFn] = []
        self.after_iteration_hooks: list[HookFn] = []
        self._names: set[str] = set()

    def before_iteration(self, fn: HookFn) -> None:
        self.before_iteration_hooks.append(fn)

    def after_iteration(self, fn: HookFn) -> None:
        self.after_iteration_hooks.append(fn)

    def teardown(self, fn: HookFn) -> None:
        self.teardown_hooks.append(fn)

    def bench(self, name: str, fn: Workload) -> None:
        self._add(name, fn, False)

    def bench_async(self, name: str, fn: Callable[[], Awaitable[Any]]) -> None:
        self._add(name, fn, True)

    def _add(self, name: str, fn: Workload, is_async: bool) -> None:
        if not name or not name.strip():
            raise ValueError("Case name cannot be blank.")
        if name in self._names:
            raise ValueError(f'Case "{name}" already exists.')
        self._names.add(name)
        if self.include.search(name):
            self.cases.append(BenchCase(self, name, fn, is_async))


@dataclass
class ValidateOptions:
    """Checks run on every case before it is measured.

    Attributes:
        equality: All cases of a scene must return equal values.
        check: Called with the return value and the scene params; a False
            result or an exception fails the scene.
    """

    equality: bool = False
    check: Callable[[Any, dict[str, Any]], Any] | None = None


@dataclass
class BenchmarkSuite:
    """A suite and its run options.

    Attributes:
        setup: Called with each :class:`Scene`; may be async.
        params: Parameter name to candidate values; every combination is a scene.
        baseline: ``{"type": variable, "value": value}`` for ratio columns.
        samples: Timed samples per case.
        iterations: Workload invocations per sample.
        warmup: Untimed invocations before sampling.
        name: Shown in reports; defaults to the file name.
        before_all: Hook run once before the first scene.
        after_all: Hook run once after the last scene.
        profilers: Extra :class:`~benchhost.client.profiling.Profiler`
            objects; falsy entries are ignored.
        timing: Measure the ``time`` metric.
        validate: Run each case once and check its result first; True for
            the default checks, or :class:`ValidateOptions` (or a dict of
            them).
    """

    setup: Callable[[Scene], Any]
    params: dict[str, list[Any]] = field(default_factory=dict)
    baseline: dict[str, Any] | None = None
    samples: int = 10
    iterations: int = 1
    warmup: int = 0
    name: str = ""
    before_all: HookFn | None = None
    after_all: HookFn | None = None
    profilers: list[Any] = field(default_factory=list)
    timing: bool = True
    validate: ValidateOptions | dict[str, Any] | bool | None = None

    def __post_init__(self) -> None:
        if self.validate is True:
            self.validate = ValidateOptions()
        elif isinstance(self.validate, dict):
            try:
                self.validate = ValidateOptions(**self.validate)
            except TypeError as exc:
                raise ValueError(f"Invalid validate option: {exc}") from exc
        elif not self.validate:
            self.validate = None
        elif not isinstance(self.validate, ValidateOptions):
            raise ValueError(f"Invalid validate option: {self.validate!r}")
        self.profilers = [p for p in self.profilers if p]
        if self.samples < 1:
            raise ValueError(f"samples must be at least 1, got {self.samples}")
        if self.iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {self.iterations}")
        if self.warmup < 0:
            raise ValueError(f"warmup cannot be negative, got {self.warmup}")
        for key, values in self.params.items():
            if not isinstance(values, (list, tuple)) or not values:
                raise ValueError(f"Parameter '{key}' must have at least one value")
        if self.baseline is not None and {"type", "value"} - set(self.baseline):
            raise ValueError("baseline needs 'type' and 'value'")


def define_suite(
    setup: Callable[[Scene], Any],
    params: dict[str, list[Any]] | None = None,
    baseline: dict[str, Any] | None = None,
    samples: int = 10,
    iterations: int = 1,
    **options: Any,
) -> BenchmarkSuite:
    """Declare a suite; see :class:`BenchmarkSuite` for the options."""
    return BenchmarkSuite(
        setup,
        params=dict(params or {}),
        baseline=baseline,
        samples=samples,
        iterations=iterations,
        **options,
    )
