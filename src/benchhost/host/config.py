"""Host configuration: toolchains, reporters and run options.

A configuration lists toolchains, each combining include globs with builders
and executors. Missing parts get defaults: suites under ``./benchmark``, no
build step, and execution inside the host process.

Configuration may be given in code as a :class:`HostConfig`, or loaded from
a YAML file with :func:`load_config`::

    temp_dir: .benchhost-tmp
    diff: reports/result.json
    toolchains:
      - include: ["./benchmark/**/*.py"]
        builders: [none]
        executors:
          - in-process
          - {type: process, command: python3.12, name: py312}
    reporters:
      - type: text
        percentiles: [75, 99]
      - raw
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from benchhost.errors import ConfigurationError
from benchhost.host.toolchain import ToolchainSpec, ToolUse
from benchhost.logging import LEVELS
from benchhost.report.reporters import Reporter, raw_reporter, text_reporter
from benchhost.tools.builders import NoBuildBuilder
from benchhost.tools.executors import InProcessExecutor, ProcessExecutor

log = logging.getLogger("benchhost")

DEFAULT_INCLUDE = ["./benchmark/**/*.py"]


@dataclass
class HostConfig:
    """Everything ``benchhost run`` and ``benchhost report`` need.

    ``toolchains`` holds :class:`ToolchainSpec` objects or mappings with
    ``include``, ``builders`` and ``executors`` keys; ``None`` means one
    toolchain made of defaults. After :func:`normalize_config` it is a list
    of complete :class:`ToolchainSpec`.
    """

    toolchains: list[Any] | None = None
    temp_dir: str = ".benchhost-tmp"
    clean_temp_dir: bool = True
    diff: str | None = None
    reporters: list[Reporter] | None = None
    log_level: str = "debug"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def _toolchain_parts(toolchain: Any) -> tuple[Any, Any, Any]:
    if isinstance(toolchain, ToolchainSpec):
        return toolchain.include, toolchain.builders, toolchain.executors
    if isinstance(toolchain, dict):
        return toolchain.get("include"), toolchain.get("builders"), toolchain.get("executors")
    raise ConfigurationError(f"Toolchain must be a mapping, got {type(toolchain).__name__}")


def validate_config(config: HostConfig) -> list[ValidationError]:
    """Validate a host configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if config.toolchains is not None and len(config.toolchains) == 0:
        errors.append(ValidationError(field="toolchains", message="No toolchains."))

    for i, toolchain in enumerate(config.toolchains or []):
        include, builders, executors = _toolchain_parts(toolchain)
        if builders is not None and not any(builders):
            errors.append(ValidationError(field=f"toolchains[{i}].builders", message="No builders."))
        if executors is not None and not any(executors):
            errors.append(ValidationError(field=f"toolchains[{i}].executors", message="No executors."))
        if include is not None and len(include) == 0:
            errors.append(
                ValidationError(field=f"toolchains[{i}].include", message="No included files.")
            )

    if not config.temp_dir:
        errors.append(ValidationError(field="temp_dir", message="Temp directory cannot be empty."))

    if str(config.log_level).lower() not in LEVELS:
        errors.append(
            ValidationError(
                field="log_level",
                message=f"Unknown log level '{config.log_level}', using info.",
                severity="warning",
            )
        )

    return errors


def normalize_config(config: HostConfig) -> HostConfig:
    """Apply defaults and check the result.

    Falsy tool entries are dropped, so a tool can be disabled in place with
    ``None``. Default tools are shared by all toolchains that use them.

    Raises:
        ConfigurationError: Listing every validation error.
    """
    problems = validate_config(config)
    for w in problems:
        if w.severity == "warning":
            log.warning("Config warning: %s: %s", w.field, w.message)
    errors = [e.message for e in problems if e.severity == "error"]
    if errors:
        raise ConfigurationError(" ".join(errors))

    default_builder = NoBuildBuilder()
    default_executor = InProcessExecutor()

    toolchains = []
    for toolchain in config.toolchains if config.toolchains is not None else [{}]:
        include, builders, executors = _toolchain_parts(toolchain)
        toolchains.append(
            ToolchainSpec(
                include=list(include) if include is not None else list(DEFAULT_INCLUDE),
                builders=[b for b in builders if b] if builders is not None else [default_builder],
                executors=[e for e in executors if e] if executors is not None else [default_executor],
            )
        )

    return HostConfig(
        toolchains=toolchains,
        temp_dir=config.temp_dir,
        clean_temp_dir=config.clean_temp_dir,
        diff=config.diff,
        reporters=list(config.reporters) if config.reporters is not None else [text_reporter()],
        log_level=config.log_level,
    )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

BUILDER_TYPES: dict[str, Callable[..., Any]] = {
    "none": NoBuildBuilder,
}

EXECUTOR_TYPES: dict[str, Callable[..., Any]] = {
    "in-process": InProcessExecutor,
    "process": ProcessExecutor,
}

REPORTER_TYPES: dict[str, Callable[..., Reporter]] = {
    "text": text_reporter,
    "raw": raw_reporter,
}


@dataclass
class ToolFactory:
    """Create tools from config entries, one instance per distinct entry.

    Identical entries in several toolchains yield the same instance, so the
    tool is registered once and its builds are shared.
    """

    types: dict[str, Callable[..., Any]]
    kind: str
    _cache: dict[str, Any] = field(default_factory=dict)

    def create(self, entry: Any) -> Any:
        if entry is None or entry is False:
            return None
        key = json.dumps(entry, sort_keys=True)
        if key not in self._cache:
            self._cache[key] = self._build(entry)
        return self._cache[key]

    def _build(self, entry: Any) -> Any:
        if isinstance(entry, str):
            entry = {"type": entry}
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Invalid {self.kind} entry: {entry!r}")
        options = dict(entry)
        type_name = options.pop("type", None)
        name = options.pop("name", None)
        factory = self.types.get(str(type_name).lower())
        if factory is None:
            known = ", ".join(sorted(self.types))
            raise ConfigurationError(f"Unknown {self.kind} type '{type_name}' (expected one of: {known})")
        try:
            tool = factory(**options)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid options for {self.kind} '{type_name}': {exc}") from exc
        return ToolUse(name, tool) if name else tool


def _create_reporter(entry: Any) -> Reporter:
    if isinstance(entry, str):
        entry = {"type": entry}
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Invalid reporter entry: {entry!r}")
    options = dict(entry)
    type_name = options.pop("type", None)
    factory = REPORTER_TYPES.get(str(type_name))
    if factory is None:
        raise ConfigurationError(f"Unknown reporter type '{type_name}'")
    try:
        return factory(**options)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid options for reporter '{type_name}': {exc}") from exc


def config_from_dict(data: dict[str, Any]) -> HostConfig:
    """Build a :class:`HostConfig` from parsed YAML, creating the tools."""
    builders = ToolFactory(BUILDER_TYPES, "builder")
    executors = ToolFactory(EXECUTOR_TYPES, "executor")

    toolchains = None
    raw_toolchains = data.get("toolchains")
    if raw_toolchains is not None:
        if not isinstance(raw_toolchains, list):
            raise ConfigurationError("'toolchains' must be a list")
        toolchains = []
        for raw in raw_toolchains:
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Toolchain must be a mapping, got {type(raw).__name__}")
            toolchain: dict[str, Any] = {}
            if "include" in raw:
                toolchain["include"] = list(raw["include"])
            if "builders" in raw:
                toolchain["builders"] = [builders.create(b) for b in raw["builders"]]
            if "executors" in raw:
                toolchain["executors"] = [executors.create(e) for e in raw["executors"]]
            toolchains.append(toolchain)

    reporters = None
    if "reporters" in data:
        reporters = [_create_reporter(r) for r in data["reporters"] or []]

    return HostConfig(
        toolchains=toolchains,
        temp_dir=data.get("temp_dir", ".benchhost-tmp"),
        clean_temp_dir=bool(data.get("clean_temp_dir", True)),
        diff=data.get("diff"),
        reporters=reporters,
        log_level=data.get("log_level", "debug"),
    )


def load_config(path: Path) -> HostConfig:
    """Load and normalize a configuration from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not a valid configuration.
    """
    import yaml

    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config must be a YAML mapping, got {type(data).__name__}")

    return normalize_config(config_from_dict(data))
