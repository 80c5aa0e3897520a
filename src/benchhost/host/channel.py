"""Message channel between an executor and the host.

While it runs suites, an executor pushes messages into
:meth:`MessageChannel.dispatch`:

* a list: the result records, one per suite file; resolves the result future;
* ``{"e": {...}}`` or an exception instance: a terminal failure; rejects it;
* ``{"level": "info", "log": "..."}``: a log line, forwarded to the logger
  unless it is below the channel's level.

The executor's ``run`` and the result future are awaited together by the
coordinator, so an executor may return before or after its last message.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import traceback
from dataclasses import dataclass
from typing import Any, Callable

from benchhost.errors import RemoteError, SuiteCaseError
from benchhost.logging import resolve_level

Dispatch = Callable[[Any], None]


def deserialize_error(data: Any) -> BaseException:
    """Rebuild an exception sent by an executor.

    An error carrying ``params`` failed inside a suite scene and becomes a
    :class:`SuiteCaseError` wrapping the rebuilt cause.
    """
    if not isinstance(data, dict):
        return RemoteError("Error", str(data))
    cause: BaseException = RemoteError(
        data.get("name", "Error"),
        data.get("message", ""),
        data.get("stack"),
    )
    if "cause" in data:
        cause.__cause__ = deserialize_error(data["cause"])
    params = data.get("params")
    if params is not None:
        return SuiteCaseError(params, cause)
    return cause


def serialize_error(exc: BaseException) -> dict[str, Any]:
    """Inverse of :func:`deserialize_error`, used by executor processes."""
    if isinstance(exc, SuiteCaseError):
        wrapped = serialize_error(exc.cause)
        wrapped["params"] = exc.param_str
        return wrapped
    data: dict[str, Any] = {
        "name": exc.name if isinstance(exc, RemoteError) else type(exc).__name__,
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }
    if exc.__cause__ is not None:
        data["cause"] = serialize_error(exc.__cause__)
    return data


@dataclass
class ExecutionContext:
    """Everything an executor needs to run one build artifact.

    Attributes:
        temp_dir: Scratch directory shared by the run.
        pattern: Source of the regex that case names must match.
        files: Suite files of the artifact, in result order.
        root: Directory the builder wrote the artifact into.
        dispatch: Sink for the executor's messages.
        result: Future of the record list.
    """

    temp_dir: str
    pattern: str
    files: list[str]
    root: str
    dispatch: Dispatch
    result: asyncio.Future


class MessageChannel:
    """Route executor messages to a result future and a logger.

    Must be created inside the event loop that awaits :attr:`result`;
    :meth:`dispatch` may then be called from any thread.

    Args:
        logger: Receives forwarded log lines and channel warnings.
        level: Log lines below this level are dropped.
    """

    def __init__(self, logger: logging.Logger, level: str | int = "debug") -> None:
        self.log = logger
        self.level = resolve_level(level)
        self.loop = asyncio.get_running_loop()
        self.result: asyncio.Future = self.loop.create_future()
        self._thread = threading.get_ident()

    def context(self, temp_dir: str, pattern: str, files: list[str], root: str) -> ExecutionContext:
        return ExecutionContext(temp_dir, pattern, list(files), root, self.dispatch, self.result)

    def dispatch(self, message: Any) -> None:
        if threading.get_ident() == self._thread:
            self._handle(message)
        else:
            self.loop.call_soon_threadsafe(self._handle, message)

    def _handle(self, message: Any) -> None:
        if isinstance(message, list):
            self._settle(message)
        elif isinstance(message, BaseException):
            self.reject(message)
        elif isinstance(message, dict) and "e" in message:
            self.reject(deserialize_error(message["e"]))
        elif isinstance(message, dict) and "level" in message and "log" in message:
            level = resolve_level(message["level"])
            if level >= self.level:
                self.log.log(level, "%s", message["log"])
        else:
            self.log.warning("Ignored unknown message from executor: %r", message)

    def _settle(self, records: list[Any]) -> None:
        if self.result.done():
            self.log.warning("Result already settled, extra records ignored")
        else:
            self.result.set_result(records)

    def reject(self, error: BaseException) -> None:
        """Fail the result future unless it has already settled."""
        if self.result.done():
            self.log.debug("Result already settled, error ignored: %s", error)
        else:
            self.result.set_exception(error)
