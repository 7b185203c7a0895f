"""Configuration loader and option resolution.

Project defaults are loaded with layered priority (highest to lowest):
1. Environment variables (PYTESTIO_PROJECT, PYTESTIO_HOST, PYTESTIO_PORT,
   PYTESTIO_LOG_LEVEL, PYTESTIO_RECORD, PYTESTIO_VERBOSE)
2. Project config (pytestio.yaml in current directory)
3. Global config (~/.pytestio.yaml)
4. Default values

Per-test overrides are merged over the selected project's options by
``resolve()``: test-scoped keys win and nested mappings are merged one level
deep only.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

# Config file paths
GLOBAL_CONFIG = Path.home() / ".pytestio.yaml"
PROJECT_CONFIG = Path.cwd() / "pytestio.yaml"

_ENV_PLACEHOLDER = re.compile(r"\$\{(\w+)\}")


def _safe_int(value: Any, default: int) -> int:
    """Convert value to int, returning default if None or invalid."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_bool(value: Any, default: bool = False) -> bool:
    """Parse boolean value from various formats.

    Handles:
    - None -> default
    - bool -> as-is
    - str -> "true", "1", "yes", "on" are True
    - other -> bool(value)
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on")
    return bool(value)


def _expand_env_vars(data: Any) -> Any:
    """Replace ${VAR} placeholders in strings with environment values.

    Unknown variables are left untouched.
    """
    if isinstance(data, str):
        return _ENV_PLACEHOLDER.sub(lambda m: os.environ.get(m.group(1), m.group(0)), data)
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


def merge_options(
    project: dict[str, Any] | None,
    test: dict[str, Any] | None,
) -> dict[str, Any]:
    """Shallow merge two option mappings, with test-scoped keys taking precedence.

    Values that are mappings on both sides are merged one level deep; anything
    below that level is replaced wholesale by the test-scoped value.

    Args:
        project: Project-scoped defaults (None is treated as empty)
        test: Test-scoped overrides (None is treated as empty)

    Returns:
        New merged dict; inputs are not modified
    """
    result = dict(project or {})

    for key, value in (test or {}).items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = {**result[key], **value}
        else:
            result[key] = value

    return result


class RecordingKind(Enum):
    """Recording variants."""

    OFF = "off"
    DEFAULT = "default"
    CUSTOM = "custom"


@dataclass(frozen=True)
class RecordingMode:
    """Screen recording setting as a tagged variant.

    ``False``/``None`` map to OFF, ``True`` to DEFAULT and a mapping to
    CUSTOM carrying the recorder options.
    """

    kind: RecordingKind = RecordingKind.OFF
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> RecordingMode:
        if isinstance(value, RecordingMode):
            return value
        if isinstance(value, dict):
            return cls(RecordingKind.CUSTOM, dict(value))
        if isinstance(value, str):
            value = _parse_bool(value)
        if value:
            return cls(RecordingKind.DEFAULT)
        return cls(RecordingKind.OFF)

    @property
    def enabled(self) -> bool:
        return self.kind is not RecordingKind.OFF

    def to_value(self) -> bool | dict[str, Any]:
        """Convert back to the plain ``bool | dict`` form used in config files."""
        if self.kind is RecordingKind.CUSTOM:
            return dict(self.options)
        return self.kind is RecordingKind.DEFAULT


def resolve_recording(project: Any, test: Any) -> RecordingMode:
    """Merge project and test recording settings.

    Rules:
    - test value undefined (None) -> project value
    - both values are option mappings -> merged, test keys win
    - otherwise the test value wins, so a project ``False`` keeps the test
      default and a test boolean replaces a project mapping

    Args:
        project: Project-scoped value (None, bool or dict)
        test: Test-scoped value (None, bool or dict)

    Returns:
        Resolved RecordingMode
    """
    if test is None:
        return RecordingMode.from_value(project)

    if isinstance(project, dict) and isinstance(test, dict):
        return RecordingMode(RecordingKind.CUSTOM, {**project, **test})

    return RecordingMode.from_value(test)


def resolve_screenshot(project: Any, test: Any) -> bool:
    """Resolve the final-screenshot switch; a defined test value wins."""
    if test is not None:
        return _parse_bool(test)
    return _parse_bool(project)


@dataclass
class ProjectOptions:
    """Options of the selected project (project-scoped defaults)."""

    name: str = "default"
    config: dict[str, Any] = field(default_factory=dict)
    capabilities: dict[str, Any] = field(default_factory=dict)
    services: list[Any] = field(default_factory=list)
    recording: Any = None
    screenshot: bool | None = None
    trace: Any = "off"
    retries: int = 0
    output_dir: Path = field(default_factory=lambda: Path("test-results"))

    @property
    def trace_enabled(self) -> bool:
        """Whether tracing is on (string mode or ``{"mode": ...}`` mapping)."""
        trace = self.trace
        if isinstance(trace, dict):
            return trace.get("mode", "off") != "off"
        if isinstance(trace, str):
            return trace != "off"
        return bool(trace)


@dataclass
class TestOverrides:
    """Per-test overrides; None means "not set for this test"."""

    __test__ = False

    config: dict[str, Any] | None = None
    capabilities: dict[str, Any] | None = None
    services: list[Any] | None = None
    recording: Any = None
    screenshot: bool | None = None


@dataclass
class ResolvedOptions:
    """Merged options for one test."""

    config: dict[str, Any]
    capabilities: dict[str, Any]
    services: list[Any]
    recording: RecordingMode
    screenshot: bool


def resolve(project: ProjectOptions, overrides: TestOverrides | None = None) -> ResolvedOptions:
    """Merge project defaults with test overrides for every option category.

    Args:
        project: Project-scoped options
        overrides: Test-scoped overrides

    Returns:
        ResolvedOptions for the test
    """
    overrides = overrides or TestOverrides()
    services = overrides.services if overrides.services is not None else project.services

    return ResolvedOptions(
        config=merge_options(project.config, overrides.config),
        capabilities=merge_options(project.capabilities, overrides.capabilities),
        services=list(services or []),
        recording=resolve_recording(project.recording, overrides.recording),
        screenshot=resolve_screenshot(project.screenshot, overrides.screenshot),
    )


@dataclass
class PytestioConfig:
    """Main configuration for pytestio."""

    verbose: bool = False
    project: ProjectOptions = field(default_factory=ProjectOptions)
    project_names: list[str] = field(default_factory=list)


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    @classmethod
    def load(
        cls,
        project_name: str | None = None,
        config_file: Path | None = None,
    ) -> PytestioConfig:
        """Load configuration with layered priority.

        Args:
            project_name: Project to select; falls back to PYTESTIO_PROJECT,
                then to the first configured project
            config_file: Explicit project config file instead of ./pytestio.yaml

        Returns:
            Merged PytestioConfig instance.

        Raises:
            ValueError: If a project was requested by name but is not configured.
        """
        config_dict: dict[str, Any] = {}

        # Layer 1: Global config (~/.pytestio.yaml)
        if GLOBAL_CONFIG.exists():
            config_dict = cls._deep_merge(config_dict, cls._load_yaml(GLOBAL_CONFIG))

        # Layer 2: Project config (pytestio.yaml)
        project_file = config_file or PROJECT_CONFIG
        if project_file.exists():
            config_dict = cls._deep_merge(config_dict, cls._load_yaml(project_file))

        # Layer 3: Environment variables (highest priority)
        env_overrides = cls._get_env_overrides()
        if project_name:
            env_overrides["project"] = project_name

        return cls._build_config(_expand_env_vars(config_dict), env_overrides)

    @classmethod
    def _load_yaml(cls, path: Path) -> dict[str, Any]:
        """Load YAML file safely."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except (yaml.YAMLError, OSError):
            return {}

    @classmethod
    def _get_env_overrides(cls) -> dict[str, Any]:
        """Get configuration overrides from environment variables."""
        overrides: dict[str, Any] = {}

        if "PYTESTIO_PROJECT" in os.environ:
            overrides["project"] = os.environ["PYTESTIO_PROJECT"]

        if "PYTESTIO_VERBOSE" in os.environ:
            overrides["verbose"] = _parse_bool(os.environ["PYTESTIO_VERBOSE"])

        use: dict[str, Any] = {}
        remote: dict[str, Any] = {}
        if "PYTESTIO_HOST" in os.environ:
            remote["hostname"] = os.environ["PYTESTIO_HOST"]
        if "PYTESTIO_PORT" in os.environ:
            remote["port"] = _safe_int(os.environ["PYTESTIO_PORT"], 4723)
        if "PYTESTIO_LOG_LEVEL" in os.environ:
            remote["log_level"] = os.environ["PYTESTIO_LOG_LEVEL"]
        if remote:
            use["config"] = remote
        if "PYTESTIO_RECORD" in os.environ:
            use["recording"] = _parse_bool(os.environ["PYTESTIO_RECORD"])
        if use:
            overrides["use"] = use

        return overrides

    @classmethod
    def _deep_merge(cls, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def _select_project(
        cls,
        projects: list[dict[str, Any]],
        name: str | None,
    ) -> dict[str, Any]:
        """Pick the project block by name, or the first one when no name is given."""
        if name:
            for project in projects:
                if project.get("name") == name:
                    return project
            available = ", ".join(str(p.get("name")) for p in projects) or "none"
            raise ValueError(f"Unknown pytestio project '{name}' (available: {available})")
        return projects[0] if projects else {}

    @classmethod
    def _build_config(
        cls,
        config_dict: dict[str, Any],
        env_overrides: dict[str, Any],
    ) -> PytestioConfig:
        """Build PytestioConfig from dictionary."""
        projects = [p for p in config_dict.get("projects") or [] if isinstance(p, dict)]
        selected = cls._select_project(projects, env_overrides.get("project"))

        use = merge_options(config_dict.get("use") or {}, selected.get("use") or {})
        use = merge_options(use, env_overrides.get("use"))

        project = ProjectOptions(
            name=str(selected.get("name") or config_dict.get("name") or "default"),
            config=dict(use.get("config") or {}),
            capabilities=dict(use.get("capabilities") or {}),
            services=list(use.get("services") or []),
            recording=use.get("recording"),
            screenshot=use.get("screenshot"),
            trace=use.get("trace", "off"),
            retries=_safe_int(use.get("retries"), 0),
            output_dir=Path(use.get("output_dir") or "test-results"),
        )

        verbose = env_overrides.get("verbose", config_dict.get("verbose"))

        return PytestioConfig(
            verbose=_parse_bool(verbose, False),
            project=project,
            project_names=[str(p.get("name")) for p in projects],
        )


def setup_logging(verbose: bool, log_dir: Path | None) -> Path | None:
    """Configure file-based DEBUG logging.

    Args:
        verbose: Enable logging when True
        log_dir: Directory to write debug.log

    Returns:
        Path to log file if created, None otherwise
    """
    if not verbose or log_dir is None:
        return None

    log_file = log_dir / "debug.log"
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_file, mode="w")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s.%(msecs)03d [%(levelname)-5s] %(name)-20s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    # Configure root pytestio logger (clear existing handlers to prevent duplicates)
    root_logger = logging.getLogger("pytestio")
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    return log_file
