"""Run benchmark jobs and hand the results to reporters.

Orchestrates:
1. Job generation: toolchains are added to a :class:`JobGenerator`, which
   builds every builder's matched files once.
2. Execution: for each job, the executor is started, runs each artifact in
   turn, and is closed even if a build fails.
3. Collection: records are tagged with their builder and executor and merged
   into one raw result, keyed by suite file.
4. Reporting: every reporter receives the raw result and, if configured, the
   result of a previous run.
5. Cleanup: the temp directory is removed after reporting, unless disabled.

Jobs run one after another, as do the builds of one job, so at most one
executor session is alive at a time.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Sequence

from benchhost.errors import ResultFormatError, SuiteCaseError
from benchhost.formatting import format_duration
from benchhost.host.channel import MessageChannel
from benchhost.host.config import HostConfig
from benchhost.host.results import RawResult, add_record, load_and_merge, load_results
from benchhost.host.toolchain import BuildArtifact, Job, JobGenerator, RunFilter, resolve_re

log = logging.getLogger("benchhost.host")


class ExecutionCoordinator:
    """Run jobs and accumulate their records.

    Args:
        temp_dir: Scratch directory passed to executors.
        pattern: Source of the case-name regex passed to executors.
        logger: Receives progress and executor log messages.
        log_level: Executor log messages below this level are dropped.
    """

    def __init__(
        self,
        temp_dir: str | Path,
        pattern: str = "",
        logger: logging.Logger | None = None,
        log_level: str | int = "debug",
    ):
        self.temp_dir = str(temp_dir)
        self.pattern = pattern
        self.log = logger or log
        self.log_level = log_level
        self.result: RawResult = {}

    async def run(self, jobs: Sequence[Job]) -> RawResult:
        """Run every job in order and return the accumulated raw result."""
        for job in jobs:
            await self.run_job(job)
        return self.result

    async def run_job(self, job: Job) -> None:
        """Run all builds of one job within a single executor session.

        A :class:`SuiteCaseError` is logged with its scene and replaced by
        its cause; other errors propagate unchanged.
        """
        executor = job.executor
        builder = ""
        self.log.info('Running suites with executor "%s"', job.executor_name)

        try:
            await executor.start()
            for build in job.builds:
                builder = build.builder_name
                self.log.info('%d suites from builder "%s"', len(build.files), builder)
                await self.run_build(job.executor_name, executor, build)
        except SuiteCaseError as e:
            self.log.error("Failed to run suite with (builder=%s, executor=%s)", builder, job.executor_name)
            self.log.error("At scene {%s}", e.param_str)
            raise e.cause from None
        except Exception:
            self.log.error("Failed to run suite with (builder=%s, executor=%s)", builder, job.executor_name)
            raise
        finally:
            await executor.close()

    async def run_build(self, executor_name: str, executor: Any, build: BuildArtifact) -> None:
        channel = MessageChannel(self.log, self.log_level)
        ctx = channel.context(self.temp_dir, self.pattern, build.files, build.root)
        running = asyncio.ensure_future(executor.run(ctx))
        try:
            records, _ = await asyncio.gather(ctx.result, running)
        finally:
            for future in (ctx.result, running):
                if not future.done():
                    future.cancel()

        if len(records) != len(build.files):
            raise ResultFormatError(
                f"Executor {executor_name} returned {len(records)} records "
                f"for {len(build.files)} suite files"
            )
        for file, record in zip(build.files, records):
            add_record(self.result, file, record, builder=build.builder_name, executor=executor_name)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def run_reporters(
    config: HostConfig,
    result: RawResult,
    logger: logging.Logger,
) -> None:
    """Call every reporter, loading the diff baseline first if configured."""
    previous = None
    if config.diff:
        previous = load_results(Path(config.diff), required=False)
        if previous is None:
            logger.warning("Diff file %s not found, no diff columns", config.diff)
    for reporter in config.reporters:
        outcome = reporter(result, previous, logger)
        if inspect.isawaitable(outcome):
            await outcome


def remove_temp_dir(path: str | Path, logger: logging.Logger) -> None:
    """Delete the temp tree; a failure is logged and otherwise ignored."""
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.error("Failed to remove temp directory %s: %s", path, exc)


async def start(
    config: HostConfig,
    filter: RunFilter | None = None,
    shared: str | None = None,
    logger: logging.Logger | None = None,
) -> RawResult | None:
    """Build, run and report every toolchain of *config*.

    Args:
        config: Normalized host configuration.
        filter: Narrows files, tools and cases.
        shared: ``"i/n"`` to run only the i-th of n file shards.
        logger: Defaults to the ``benchhost.host`` logger.

    Returns:
        The raw result, or None if no file matched the includes.
    """
    logger = logger or log
    filter = filter or RunFilter()
    started = time.monotonic()
    temp_dir = Path(config.temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)

    generator = JobGenerator(temp_dir, filter, logger)
    for toolchain in config.toolchains:
        generator.add(toolchain)
    await generator.build(shared)
    jobs = generator.get_jobs()

    if not jobs:
        logger.warning("No files match the includes, please check your config.")
        if config.clean_temp_dir:
            remove_temp_dir(temp_dir, logger)
        return None

    count = sum(len(job.builds) for job in jobs)
    logger.info("%d jobs for %d executors.", count, len(jobs))

    coordinator = ExecutionCoordinator(
        temp_dir, resolve_re(filter.name).pattern, logger, log_level=config.log_level
    )
    result = await coordinator.run(jobs)

    # Build output is kept when a run fails, only cleaned after reporting.
    await run_reporters(config, result, logger)
    if config.clean_temp_dir:
        remove_temp_dir(temp_dir, logger)

    logger.info("Global total time: %s.", format_duration(time.monotonic() - started))
    return result


async def report(
    config: HostConfig,
    files: Sequence[str | Path],
    logger: logging.Logger | None = None,
) -> RawResult:
    """Merge saved raw results and pass them to the reporters."""
    logger = logger or log
    result = load_and_merge([Path(f) for f in files])
    logger.debug("Loaded %d suites from %d files", len(result), len(files))
    await run_reporters(config, result, logger)
    return result
