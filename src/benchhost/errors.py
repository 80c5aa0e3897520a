"""Error taxonomy for benchhost.

Configuration and transport errors are fatal and surface at the top level.
:class:`SuiteCaseError` marks a failure of one benchmark case under specific
parameters; the coordinator logs its context and re-raises the cause.
Report-time errors (:class:`BaselineNotFoundError`, :class:`MetricShapeError`)
abort report generation but never touch the collected raw results.
"""

from __future__ import annotations


class BenchHostError(Exception):
    """Base class for all benchhost errors."""


class ConfigurationError(BenchHostError, ValueError):
    """The host configuration or a toolchain definition is invalid."""


class BuildError(BenchHostError, RuntimeError):
    """A builder failed to transform the suite files."""

    def __init__(self, builder: str, message: str) -> None:
        self.builder = builder
        super().__init__(f"Builder '{builder}' failed: {message}")


class SuiteCaseError(BenchHostError):
    """A benchmark case failed while running under a parameter combination.

    Attributes:
        param_str: Human-readable parameter context, e.g. ``"size=10, kind=set"``.
        cause: The exception raised by the case (also set as ``__cause__``).
    """

    def __init__(self, param_str: str, cause: BaseException) -> None:
        self.param_str = param_str
        self.cause = cause
        super().__init__(f"Suite failed at scene {{{param_str}}}: {cause}")
        self.__cause__ = cause


class ExecutorTransportError(BenchHostError, RuntimeError):
    """The executor process exited abnormally or its channel broke."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        super().__init__(message)


class BaselineNotFoundError(BenchHostError, LookupError):
    """The configured baseline variable or value is absent from the rows."""

    def __init__(self, variable: str, value: object, message: str = "") -> None:
        self.variable = variable
        self.value = value
        super().__init__(message or f"Baseline {{{variable}: {value}}} is not in the results.")


class MetricShapeError(BenchHostError, TypeError):
    """A metric value does not have the shape its analysis kind requires."""

    def __init__(self, key: str, value: object) -> None:
        self.key = key
        self.value = value
        super().__init__(f'Metric "{key}" must be an array, got {type(value).__name__}')


class ResultFormatError(BenchHostError, ValueError):
    """A persisted or streamed result record is malformed."""


class RemoteError(BenchHostError, RuntimeError):
    """An exception raised in an executor's process, rebuilt on the host.

    Attributes:
        name: Class name of the original exception.
        stack: Its formatted traceback, if the executor sent one.
    """

    def __init__(self, name: str, message: str, stack: str | None = None) -> None:
        self.name = name
        self.stack = stack
        super().__init__(f"{name}: {message}" if message else name)
