"""Profilers: the measurements taken while a suite runs.

A suite run drives a list of :class:`Profiler` objects through the same
sequence of hooks:

* ``on_start(ctx)`` once, before the first scene; define metrics here;
* ``on_scene(ctx, scene)`` for each scene, after its setup;
* ``on_case(ctx, case, metrics)`` for every case of the scene; store the
  measured values in *metrics* under the keys of defined metrics;
* ``on_finish(ctx)`` once, after the last scene.

Hooks may be coroutines. The built-in profilers are
:class:`ExecutionValidator` (suite option ``validate``) and
:class:`TimeProfiler` (option ``timing``, enabled by default); suites add
their own through ``profilers``::

    class SizeProfiler(Profiler):
        def on_start(self, ctx):
            ctx.define_metric("size", "{dataSize}")

        async def on_case(self, ctx, case, metrics):
            metrics["size"] = len(await case.call())
"""

from __future__ import annotations

from typing import Any, Callable

from benchhost.client.suite import BenchCase, BenchmarkSuite, Scene, ValidateOptions, call_maybe_async
from benchhost.report.summary import TIME_METRIC, MetricAnalysis, MetricMeta


class Profiler:
    """Base class of profilers; override the hooks you need."""

    def on_start(self, ctx: ProfilingContext) -> Any:
        pass

    def on_scene(self, ctx: ProfilingContext, scene: Scene) -> Any:
        pass

    def on_case(self, ctx: ProfilingContext, case: BenchCase, metrics: dict[str, Any]) -> Any:
        pass

    def on_finish(self, ctx: ProfilingContext) -> Any:
        pass


class ProfilingContext:
    """State shared by the profilers of one suite run.

    Attributes:
        suite: The running suite.
        dispatch: Sink for log messages to the host.
        profilers: Profilers in call order.
        meta: Metric key to its metadata, as sent in the result record.
        notes: Notes for the result record.
    """

    def __init__(
        self,
        suite: BenchmarkSuite,
        dispatch: Callable[[Any], None],
        profilers: list[Profiler],
    ) -> None:
        self.suite = suite
        self.dispatch = dispatch
        self.profilers = profilers
        self.meta: dict[str, dict[str, Any]] = {}
        self.notes: list[dict[str, Any]] = []

    def define_metric(
        self,
        key: str,
        format: str | None = None,
        analysis: MetricAnalysis | int = MetricAnalysis.NONE,
        lower_is_better: bool = False,
    ) -> None:
        """Declare a metric that profilers will report.

        Raises:
            ValueError: If *key* is already defined or *analysis* is unknown.
        """
        if key in self.meta:
            raise ValueError(f'Metric "{key}" is already defined.')
        meta = MetricMeta(key, format, MetricAnalysis(analysis), lower_is_better)
        self.meta[key] = meta.to_dict()

    def note(self, type: str, text: str, case: BenchCase | None = None) -> None:
        """Attach an ``info`` or ``warn`` note to the result, optionally to a case."""
        note: dict[str, Any] = {"type": type, "text": text}
        if case is not None:
            note["caseId"] = case.id
        self.notes.append(note)

    def log(self, level: str, message: str) -> None:
        self.dispatch({"level": level, "log": message})

    def info(self, message: str) -> None:
        self.log("info", message)

    def warn(self, message: str) -> None:
        self.log("warn", message)

    async def emit(self, hook: str, *args: Any) -> None:
        """Call *hook* of every profiler in order."""
        for profiler in self.profilers:
            await call_maybe_async(getattr(profiler, hook), self, *args)


async def measure(suite: BenchmarkSuite, case: BenchCase) -> list[float]:
    """Take ``suite.samples`` samples of *case*, in milliseconds per invocation."""
    for _ in range(suite.warmup):
        await case.invoke()
    samples = []
    for _ in range(suite.samples):
        elapsed = 0
        for _ in range(suite.iterations):
            elapsed += await case.invoke()
        samples.append(elapsed / suite.iterations / 1e6)
    return samples


class TimeProfiler(Profiler):
    """Measure how long each case runs."""

    def on_start(self, ctx: ProfilingContext) -> None:
        ctx.define_metric(
            TIME_METRIC.key,
            TIME_METRIC.format,
            TIME_METRIC.analysis,
            TIME_METRIC.lower_is_better,
        )

    async def on_case(self, ctx: ProfilingContext, case: BenchCase, metrics: dict[str, Any]) -> None:
        samples = await measure(ctx.suite, case)
        metrics[TIME_METRIC.key] = samples
        if not any(samples):
            ctx.note("warn", "The duration is below the timer resolution.", case)


class ExecutionValidator(Profiler):
    """Run every case of a scene once before it is measured.

    Errors of the workload surface before any sample is taken. The return
    values are passed to ``check``, and with ``equality`` all cases of a
    scene must return equal values.
    """

    def __init__(self, options: ValidateOptions) -> None:
        self.options = options

    async def on_scene(self, ctx: ProfilingContext, scene: Scene) -> None:
        returned: list[tuple[str, Any]] = []
        for case in scene.cases:
            value = await case.call()
            check = self.options.check
            if check is not None and await call_maybe_async(check, value, scene.params) is False:
                raise AssertionError(f'"{case.name}" returned an unexpected value: {value!r}')
            returned.append((case.name, value))

        if self.options.equality and returned:
            first_name, first = returned[0]
            for name, value in returned[1:]:
                if value != first:
                    raise AssertionError(
                        f'"{first_name}" and "{name}" returned different values: {first!r} != {value!r}'
                    )


def build_profilers(suite: BenchmarkSuite) -> list[Profiler]:
    """Profilers of *suite* in call order: validator, timing, then the suite's own."""
    profilers: list[Profiler] = []
    if isinstance(suite.validate, ValidateOptions):
        profilers.append(ExecutionValidator(suite.validate))
    if suite.timing:
        profilers.append(TimeProfiler())
    profilers.extend(p for p in suite.profilers if p)
    return profilers
