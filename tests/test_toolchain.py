"""Tests for benchhost.host.toolchain — registry, filters and job generation."""

from __future__ import annotations

import asyncio
import os
import tempfile
import unittest
from pathlib import Path

from benchhost.errors import BuildError, ConfigurationError
from benchhost.host.toolchain import (
    JobGenerator,
    RunFilter,
    SharedModeFilter,
    ToolchainSpec,
    ToolRegistry,
    ToolUse,
    normalize_include,
    resolve_includes,
    resolve_re,
)

from host_test_helpers import FakeBuilder, FakeExecutor, make_logger, write_files


class TestToolRegistry(unittest.TestCase):
    def test_same_instance_same_handle(self) -> None:
        registry = ToolRegistry()
        tool = FakeBuilder("b")
        self.assertEqual(registry.register(tool, "b"), registry.register(tool, "b"))
        self.assertEqual(len(registry), 1)

    def test_equal_instances_are_distinct(self) -> None:
        registry = ToolRegistry()
        first = registry.register(FakeBuilder("b"), "b")
        second = registry.register(FakeBuilder("b"), "b")
        self.assertNotEqual(first, second)

    def test_one_name_per_tool(self) -> None:
        registry = ToolRegistry()
        tool = FakeBuilder("b")
        registry.register(tool, "b")
        with self.assertRaises(ConfigurationError):
            registry.register(tool, "other")

    def test_blank_name(self) -> None:
        with self.assertRaises(ConfigurationError):
            ToolRegistry().register(FakeBuilder(""), "  ")

    def test_tool_use_renames(self) -> None:
        registry = ToolRegistry()
        tool = FakeExecutor("node")
        handle = registry.register_use(ToolUse("node-20", tool))
        self.assertEqual(registry.name_of(handle), "node-20")
        self.assertIs(registry.tool_of(handle), tool)


class TestHelpers(unittest.TestCase):
    def test_shared_filter_shards(self) -> None:
        items = list(range(7))
        shards = [SharedModeFilter.parse(f"{i}/3").select(items) for i in (1, 2, 3)]
        self.assertEqual(shards, [[0, 3, 6], [1, 4], [2, 5]])
        self.assertEqual(sorted(sum(shards, [])), items)

    def test_shared_filter_default_selects_all(self) -> None:
        self.assertEqual(SharedModeFilter.parse(None).select([1, 2]), [1, 2])

    def test_shared_filter_invalid(self) -> None:
        for option in ("0/3", "4/3", "x", "1/0"):
            with self.subTest(option=option):
                with self.assertRaises(ConfigurationError):
                    SharedModeFilter.parse(option)

    def test_resolve_re(self) -> None:
        self.assertTrue(resolve_re(None).search("anything"))
        self.assertTrue(resolve_re("^no").search("node"))
        with self.assertRaises(ConfigurationError):
            resolve_re("(")

    def test_normalize_include(self) -> None:
        cwd = os.path.abspath("project")
        self.assertEqual(normalize_include(os.path.join(cwd, "bench", "*.py"), cwd), "./bench/*.py")
        self.assertEqual(
            normalize_include(os.path.join(cwd, "..", "other", "*.py"), cwd), "../other/*.py"
        )

    def test_resolve_includes_sorted_files_only(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            write_files(root, ["bench/b.py", "bench/a.py", "bench/deep/c.py"])
            (root / "bench" / "dir.py").mkdir()
            files = resolve_includes(["./bench/**/*.py", "./bench/a.py"], cwd=tmpdir)
        self.assertEqual(files, ["./bench/a.py", "./bench/b.py", "./bench/deep/c.py"])


class JobGeneratorTestCase(unittest.TestCase):
    """Runs each test inside a scratch directory holding three suites."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        write_files(self.root, ["bench/a.py", "bench/b.py", "other/c.py"])
        self._cwd = os.getcwd()
        os.chdir(self.root)

    def tearDown(self) -> None:
        os.chdir(self._cwd)
        self._tmp.cleanup()

    def generate(self, *specs: ToolchainSpec, filter: RunFilter | None = None, shared=None):
        generator = JobGenerator(self.root / "tmp", filter, logger=make_logger())
        for spec in specs:
            generator.add(spec)
        asyncio.run(generator.build(shared))
        return generator.get_jobs()


class TestJobGenerator(JobGeneratorTestCase):
    def test_every_executor_runs_every_builder(self) -> None:
        b1, b2 = FakeBuilder("b1"), FakeBuilder("b2")
        e1, e2 = FakeExecutor("e1"), FakeExecutor("e2")
        jobs = self.generate(ToolchainSpec(["bench/*.py"], [b1, b2], [e1, e2]))

        self.assertEqual([j.executor_name for j in jobs], ["e1", "e2"])
        for job in jobs:
            self.assertEqual([a.builder_name for a in job.builds], ["b1", "b2"])
            self.assertEqual(job.builds[0].files, ["./bench/a.py", "./bench/b.py"])

    def test_shared_builder_builds_once(self) -> None:
        builder = FakeBuilder("b")
        jobs = self.generate(
            ToolchainSpec(["bench/*.py"], [builder], [FakeExecutor("e1")]),
            ToolchainSpec(["other/*.py"], [builder], [FakeExecutor("e2")]),
        )
        self.assertEqual(len(builder.calls), 1)
        self.assertEqual(builder.calls[0][1], ["./bench/a.py", "./bench/b.py", "./other/c.py"])
        # Both executors run the single artifact, even files of the other toolchain.
        self.assertIs(jobs[0].builds[0], jobs[1].builds[0])

    def test_build_directories_are_fresh(self) -> None:
        b1, b2 = FakeBuilder("b1"), FakeBuilder("b2")
        self.generate(ToolchainSpec(["bench/*.py"], [b1, b2], [FakeExecutor("e")]))
        dirs = {b1.calls[0][0], b2.calls[0][0]}
        self.assertEqual(len(dirs), 2)
        for d in dirs:
            self.assertTrue(d.name.startswith("build-"))
            self.assertEqual(d.parent, self.root / "tmp")

    def test_builder_without_files_is_skipped(self) -> None:
        builder = FakeBuilder("b")
        jobs = self.generate(ToolchainSpec(["missing/*.py"], [builder], [FakeExecutor("e")]))
        self.assertEqual(builder.calls, [])
        self.assertEqual(jobs, [])

    def test_name_filters(self) -> None:
        b1, b2 = FakeBuilder("esbuild"), FakeBuilder("vite")
        jobs = self.generate(
            ToolchainSpec(["bench/*.py"], [b1, b2], [FakeExecutor("node"), FakeExecutor("bun")]),
            filter=RunFilter(builder="^vi", executor="^no"),
        )
        self.assertEqual(b1.calls, [])
        self.assertEqual([j.executor_name for j in jobs], ["node"])
        self.assertEqual([a.builder_name for a in jobs[0].builds], ["vite"])

    def test_file_filter(self) -> None:
        builder = FakeBuilder("b")
        self.generate(
            ToolchainSpec(["**/*.py"], [builder], [FakeExecutor("e")]),
            filter=RunFilter(file="bench/b.py"),
        )
        self.assertEqual(builder.calls[0][1], ["./bench/b.py"])

    def test_shared_mode(self) -> None:
        builder = FakeBuilder("b")
        self.generate(
            ToolchainSpec(["**/*.py"], [builder], [FakeExecutor("e")]), shared="2/2"
        )
        self.assertEqual(builder.calls[0][1], ["./bench/b.py"])

    def test_builder_failure(self) -> None:
        builder = FakeBuilder("broken", fail=RuntimeError("syntax error"))
        with self.assertRaises(BuildError) as ctx:
            self.generate(ToolchainSpec(["bench/*.py"], [builder], [FakeExecutor("e")]))
        self.assertEqual(ctx.exception.builder, "broken")
        self.assertIn("syntax error", str(ctx.exception))

    def test_job_builds_are_subset_of_toolchains(self) -> None:
        b1, b2 = FakeBuilder("b1"), FakeBuilder("b2")
        jobs = self.generate(
            ToolchainSpec(["bench/*.py"], [b1], [FakeExecutor("e1")]),
            ToolchainSpec(["other/*.py"], [b2], [FakeExecutor("e2")]),
        )
        self.assertEqual([a.builder_name for a in jobs[0].builds], ["b1"])
        self.assertEqual([a.builder_name for a in jobs[1].builds], ["b2"])


if __name__ == "__main__":
    unittest.main()
