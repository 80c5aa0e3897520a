"""Builders shipped with benchhost."""

from __future__ import annotations

from pathlib import Path

from benchhost.client.runner import write_index
from benchhost.host.toolchain import Builder


class NoBuildBuilder(Builder):
    """Run suite files as they are.

    Writes only an index of the absolute suite paths into the output
    directory, which executors read to find the suites.
    """

    name = "None"

    async def build(self, output_dir: Path, files: list[str]) -> None:
        write_index(Path(output_dir), files)
