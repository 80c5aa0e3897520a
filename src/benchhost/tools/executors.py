"""Executors shipped with benchhost."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys

from benchhost.client.runner import load_index, run_suites
from benchhost.client.worker import decode_message
from benchhost.errors import ExecutorTransportError
from benchhost.host.channel import ExecutionContext
from benchhost.host.toolchain import Executor

log = logging.getLogger("benchhost.tools")


class InProcessExecutor(Executor):
    """Run suites in the host's own process and event loop.

    Fast and simple, but suites share the host interpreter's state.
    """

    name = "in-process"

    async def run(self, ctx: ExecutionContext) -> None:
        await run_suites(ctx.dispatch, load_index(ctx.root), ctx.pattern)


def parse_executable(command: str) -> str:
    """Base name of the program a command line starts with."""
    parts = shlex.split(command, posix=os.name != "nt")
    if not parts:
        raise ValueError("Command cannot be empty")
    return os.path.basename(parts[0].strip('"'))


# Longest message line the host accepts; all records of a build are one line.
STREAM_LIMIT = 64 * 1024 * 1024


class ProcessExecutor(Executor):
    """Run suites with another Python interpreter in a subprocess.

    Args:
        command: Interpreter command line, e.g. ``"python3.12 -X dev"``.
            The worker module and its arguments are appended.
        env: Variables set on top of the host's environment.
    """

    def __init__(self, command: str = sys.executable, env: dict[str, str] | None = None) -> None:
        self.command = command
        self.env = {str(k): str(v) for k, v in (env or {}).items()}
        self.name = parse_executable(command)
        self._process: asyncio.subprocess.Process | None = None

    def _arguments(self, ctx: ExecutionContext) -> list[str]:
        return shlex.split(self.command, posix=os.name != "nt") + [
            "-m",
            "benchhost.client.worker",
            ctx.root,
            ctx.pattern,
        ]

    def _environment(self) -> dict[str, str]:
        env = {**os.environ, "PYTHONUNBUFFERED": "1"}
        env.update(self.env)
        if self.env:
            log.debug("Env overrides: %s", self.env)
        return env

    def _error(self, message: str, code: int | None = None) -> ExecutorTransportError:
        return ExecutorTransportError(message, command=self.command, exit_code=code)

    async def run(self, ctx: ExecutionContext) -> None:
        """Start the worker, relay its messages and wait for it to exit.

        Lines without the message prefix are forwarded as debug log
        messages.

        Raises:
            ExecutorTransportError: If the output cannot be read or decoded,
                the process exits with a non-zero code, or it exits without
                sending results.
        """
        args = self._arguments(ctx)
        log.debug("Executing: %s", shlex.join(args))
        self._process = process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=self._environment(),
            limit=STREAM_LIMIT,
        )
        stdout = process.stdout
        if stdout is None:
            raise self._error(f"{self.name} has no output stream")

        try:
            async for raw in stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                message = decode_message(line)
                if message is None:
                    ctx.dispatch({"level": "debug", "log": f"[{self.name}] {line}"})
                else:
                    ctx.dispatch(message)
        except ValueError as exc:
            # Also covers over-long lines, which asyncio reports as ValueError.
            raise self._error(f"Broken message from {self.name}: {exc}") from exc

        code = await process.wait()
        if code != 0:
            raise self._error(f"Execute Failed ({code}), Command: {self.command}", code)
        if not ctx.result.done():
            raise self._error(f"{self.name} exited without sending results", code)

    async def close(self) -> None:
        process = self._process
        self._process = None
        if process is not None and process.returncode is None:
            process.kill()
            await process.wait()
