"""Command-line interface for benchhost.

Provides the main CLI entry point with ``run`` and ``report`` subcommands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from benchhost import __version__
from benchhost.errors import BenchHostError
from benchhost.host.config import HostConfig, load_config, normalize_config
from benchhost.host.runner import report as report_results
from benchhost.host.runner import start
from benchhost.host.toolchain import RunFilter
from benchhost.logging import setup_logging

DEFAULT_CONFIG = Path("benchhost.yml")


def _load(config_path: Path | None) -> HostConfig:
    if config_path is not None:
        return load_config(config_path)
    if DEFAULT_CONFIG.exists():
        return load_config(DEFAULT_CONFIG)
    return normalize_config(HostConfig())


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """benchhost — build, run and compare benchmark suites across toolchains."""


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (default: ./benchhost.yml if present).",
)
@click.option("--file", "file", default=None, help="Only run suite files whose path contains this.")
@click.option("--builder", default=None, help="Regex selecting builders by name.")
@click.option("--executor", default=None, help="Regex selecting executors by name.")
@click.option("--name", default=None, help="Regex selecting cases by name.")
@click.option("--shared", default=None, help="Run one shard of the files, as 'index/count'.")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def run(
    config_path: Path | None,
    file: str | None,
    builder: str | None,
    executor: str | None,
    name: str | None,
    shared: str | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Build and run benchmark suites, then report the results."""
    try:
        config = _load(config_path)
        logger = setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
        run_filter = RunFilter(file=file, builder=builder, executor=executor, name=name)
        result = asyncio.run(start(config, run_filter, shared, logger))
    except (BenchHostError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904
    if result is None:
        raise SystemExit(1)


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (default: ./benchhost.yml if present).",
)
@click.option("--diff", type=click.Path(path_type=Path), default=None, help="Previous raw result.")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
def report(files: tuple[Path, ...], config_path: Path | None, diff: Path | None, verbose: bool) -> None:
    """Generate reports from saved raw result files."""
    try:
        config = _load(config_path)
        if diff is not None:
            config.diff = str(diff)
        logger = setup_logging(verbose=verbose)
        asyncio.run(report_results(config, list(files), logger))
    except (BenchHostError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
