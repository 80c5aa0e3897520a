"""Toolchains: builders, executors and the job matrix built from them.

A toolchain pairs include patterns with builders and executors. Every
executor of a toolchain runs the artifacts of every builder of the same
toolchain. The :class:`JobGenerator` accumulates toolchains, builds each
builder's files once, and hands out one :class:`Job` per executor.

The same builder or executor instance may appear in several toolchains; the
:class:`ToolRegistry` gives it one handle so its work is not duplicated, and
rejects an instance that is given two different names.
"""

from __future__ import annotations

import asyncio
import glob
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Pattern, Sequence, TypeVar, Union

from benchhost.errors import BuildError, ConfigurationError
from benchhost.formatting import format_duration

if TYPE_CHECKING:
    from benchhost.host.channel import ExecutionContext

log = logging.getLogger("benchhost.host")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Tool contracts
# ---------------------------------------------------------------------------


class Builder:
    """Transforms suite files into a runnable artifact.

    Subclasses set :attr:`name` and implement :meth:`build`, which must write
    everything an executor needs into *output_dir*. Each call gets a fresh
    directory.
    """

    name: str = ""

    async def build(self, output_dir: Path, files: list[str]) -> None:
        raise NotImplementedError


class Executor:
    """Runs built suites and streams their results back.

    :meth:`run` pushes messages into ``ctx.dispatch``; the coordinator waits
    for both ``run`` to return and ``ctx.result`` to settle. The optional
    :meth:`start` and :meth:`close` hooks bracket all builds of one job.
    """

    name: str = ""

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def run(self, ctx: ExecutionContext) -> None:
        raise NotImplementedError


@dataclass
class ToolUse:
    """Give a tool a name other than its own ``name`` attribute."""

    name: str
    use: Any


Tool = Union[Builder, Executor, ToolUse]


@dataclass
class BuildArtifact:
    """Output of one builder: where it wrote, and which suite files.

    ``files`` keeps the order in which an executor returns result records.
    """

    builder_name: str
    root: str
    files: list[str]


@dataclass
class Job:
    """One executor with every artifact it must run."""

    executor_name: str
    executor: Executor
    builds: list[BuildArtifact] = field(default_factory=list)


@dataclass
class ToolchainSpec:
    """Include patterns and the tools that build and run the matched files."""

    include: list[str]
    builders: list[Any]
    executors: list[Any]


@dataclass
class RunFilter:
    """Narrow a run to some files, tools or cases.

    ``builder``, ``executor`` and ``name`` are regular expressions searched in
    tool names and case names; ``file`` is a substring of the suite path.
    """

    file: str | None = None
    builder: str | None = None
    executor: str | None = None
    name: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resolve_re(pattern: str | Pattern[str] | None) -> Pattern[str]:
    """Compile *pattern*; ``None`` gives a pattern that matches everything."""
    if pattern is None:
        return re.compile("")
    if isinstance(pattern, str):
        try:
            return re.compile(pattern)
        except re.error as exc:
            raise ConfigurationError(f"Invalid pattern {pattern!r}: {exc}") from exc
    return pattern


class SharedModeFilter:
    """Select one of ``count`` disjoint shards of a sequence.

    ``SharedModeFilter.parse("2/3")`` keeps items whose index ``k`` satisfies
    ``k % 3 == 1``.
    """

    def __init__(self, index: int, count: int) -> None:
        if count < 1 or not 0 <= index < count:
            raise ConfigurationError(f"Invalid shard {index + 1}/{count}")
        self.index = index
        self.count = count

    @classmethod
    def parse(cls, option: str | None) -> SharedModeFilter:
        """Parse ``"i/n"`` (1-based); ``None`` selects everything."""
        if option is None:
            return cls(0, 1)
        match = re.fullmatch(r"\s*(\d+)\s*/\s*(\d+)\s*", option)
        if match is None:
            raise ConfigurationError(f"Shared option must be 'index/count', got {option!r}")
        return cls(int(match.group(1)) - 1, int(match.group(2)))

    def select(self, items: Sequence[T]) -> list[T]:
        return [x for k, x in enumerate(items) if k % self.count == self.index]


def to_posix_relative(path: str, start: str | None = None) -> str:
    """Return *path* relative to *start* (the CWD by default), with ``/``."""
    return os.path.relpath(path, start or os.getcwd()).replace(os.sep, "/")


def normalize_include(pattern: str, cwd: str | None = None) -> str:
    """Make a glob relative to the CWD and prefix it with ``./`` if needed."""
    p = to_posix_relative(pattern, cwd)
    return p if re.match(r"\.\.?/", p) else "./" + p


def resolve_includes(patterns: Sequence[str], cwd: str | None = None) -> list[str]:
    """Expand include globs to a sorted list of unique file paths.

    Paths keep the ``./`` or ``../`` prefix of their pattern.
    """
    found: set[str] = set()
    for pattern in patterns:
        for match in glob.glob(pattern, root_dir=cwd, recursive=True):
            if os.path.isfile(os.path.join(cwd or os.getcwd(), match)):
                found.add(match.replace(os.sep, "/"))
    return sorted(found)


# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Assign a stable handle to each tool instance.

    Handles index an arena of ``(tool, name)`` entries; an instance is
    recognized by identity, so equal-but-distinct tools get their own handles.
    """

    def __init__(self) -> None:
        self._arena: list[tuple[Any, str]] = []
        self._handles: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._arena)

    def register(self, tool: Any, name: str) -> int:
        """Register *tool* under *name* and return its handle.

        Raises:
            ConfigurationError: If *name* is blank, or *tool* is already
                registered under another name.
        """
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Tool name must be a non-empty string")
        handle = self._handles.get(id(tool))
        if handle is None:
            handle = len(self._arena)
            self._arena.append((tool, name))
            self._handles[id(tool)] = handle
            return handle
        existing = self._arena[handle][1]
        if existing != name:
            raise ConfigurationError(f"A tool can only have one name: {name} (already named {existing})")
        return handle

    def register_use(self, tool: Tool) -> int:
        """Register a tool, honoring a :class:`ToolUse` wrapper."""
        if isinstance(tool, ToolUse):
            return self.register(tool.use, tool.name)
        return self.register(tool, getattr(tool, "name", ""))

    def name_of(self, handle: int) -> str:
        return self._arena[handle][1]

    def tool_of(self, handle: int) -> Any:
        return self._arena[handle][0]


# ---------------------------------------------------------------------------
# Job generator
# ---------------------------------------------------------------------------


def _tool_name(tool: Tool) -> str:
    return tool.name if isinstance(tool, ToolUse) else getattr(tool, "name", "")


class JobGenerator:
    """Build the executor × artifact matrix of a set of toolchains.

    Args:
        temp_dir: Directory receiving one ``build-*`` subdirectory per build.
        filter: Narrows the run; see :class:`RunFilter`.
        logger: Where progress is logged.
    """

    def __init__(
        self,
        temp_dir: str | Path,
        filter: RunFilter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.temp_dir = Path(temp_dir)
        self.filter = filter or RunFilter()
        self.log = logger or log
        self.registry = ToolRegistry()
        self._includes: dict[int, list[str]] = {}
        self._executors: dict[int, list[int]] = {}
        self._artifacts: dict[int, BuildArtifact] = {}

    def add(self, spec: ToolchainSpec) -> None:
        """Associate the tools of *spec* that pass the name filters."""
        builder_re = resolve_re(self.filter.builder)
        executor_re = resolve_re(self.filter.executor)

        executors = [
            self.registry.register_use(e)
            for e in spec.executors
            if executor_re.search(_tool_name(e))
        ]
        globs = [normalize_include(p) for p in spec.include]

        for builder in spec.builders:
            if not builder_re.search(_tool_name(builder)):
                continue
            handle = self.registry.register_use(builder)
            includes = self._includes.setdefault(handle, [])
            includes.extend(g for g in globs if g not in includes)
            for executor in executors:
                builders = self._executors.setdefault(executor, [])
                if handle not in builders:
                    builders.append(handle)

    def _select_files(self, includes: list[str], shared: SharedModeFilter) -> list[str]:
        files = shared.select(resolve_includes(includes))
        if self.filter.file:
            needle = to_posix_relative(self.filter.file)
            files = [f for f in files if needle in f]
        return files

    async def _build_one(self, handle: int, files: list[str]) -> BuildArtifact:
        name = self.registry.name_of(handle)
        builder = self.registry.tool_of(handle)
        root = tempfile.mkdtemp(prefix="build-", dir=self.temp_dir)

        self.log.info("Building %d suites with %s...", len(files), name)
        start = time.monotonic()
        try:
            await builder.build(Path(root), list(files))
        except Exception as exc:
            raise BuildError(name, str(exc) or type(exc).__name__) from exc
        self.log.info("Built with %s in %s", name, format_duration(time.monotonic() - start))
        return BuildArtifact(name, root, files)

    async def build(self, shared: str | None = None) -> None:
        """Build the files of every builder that matches at least one.

        Builds run concurrently; the first failure aborts the run.

        Raises:
            BuildError: If a builder raises.
        """
        shared_filter = SharedModeFilter.parse(shared)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        pending: dict[int, list[str]] = {}
        for handle, includes in self._includes.items():
            files = self._select_files(includes, shared_filter)
            if files:
                pending[handle] = files
            else:
                self.log.debug("No files for %s, skipped", self.registry.name_of(handle))

        artifacts = await asyncio.gather(*(self._build_one(h, f) for h, f in pending.items()))
        for handle, artifact in zip(pending, artifacts):
            self._artifacts[handle] = artifact

    def get_jobs(self) -> list[Job]:
        """One job per executor that has at least one artifact to run."""
        jobs = []
        for handle, builders in self._executors.items():
            builds = [self._artifacts[b] for b in builders if b in self._artifacts]
            if builds:
                jobs.append(Job(self.registry.name_of(handle), self.registry.tool_of(handle), builds))
        return jobs
