"""
Tool Settings
-------------
Limits and policy switches for one registry.

Loaded from YAML (section `tools:`) with environment variable
overrides: WORKBENCH_<FIELD>, e.g. WORKBENCH_MAX_READ_BYTES=1048576.
Environment wins over file; file wins over defaults.
"""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
import logging
import os

import yaml


ENV_PREFIX = "WORKBENCH_"

DEFAULT_IGNORED_DIRS = [
    ".git", "node_modules", "dist", "build", "__pycache__", ".venv",
]


@dataclass(frozen=True)
class ToolSettings:
    """Limits applied by the built-in tools."""
    # read_file / write_file / replace
    max_read_bytes: int = 10 * 1024 * 1024  # 10MB
    max_write_bytes: int = 10 * 1024 * 1024
    write_chunk_size: int = 64 * 1024

    # list_directory
    max_list_entries: int = 1000

    # search_file_content
    max_search_matches: int = 500
    max_search_file_bytes: int = 2 * 1024 * 1024
    ignored_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))

    # run_shell_command
    shell_enabled: bool = True
    shell_timeout_seconds: float = 60.0
    shell_kill_grace_seconds: float = 2.0
    max_output_bytes: int = 64 * 1024
    denied_commands: List[str] = field(default_factory=list)

    # Only register read/list/search tools
    read_only: bool = False

    def __post_init__(self):
        for name in (
            "max_read_bytes", "max_write_bytes", "write_chunk_size",
            "max_list_entries", "max_search_matches",
            "max_search_file_bytes", "max_output_bytes",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        if self.shell_timeout_seconds <= 0:
            raise ValueError("shell_timeout_seconds must be positive")
        if self.shell_kill_grace_seconds < 0:
            raise ValueError("shell_kill_grace_seconds must be >= 0")

    def with_overrides(self, **overrides: Any) -> "ToolSettings":
        """Return a copy with some fields replaced."""
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_logger = logging.getLogger("workbench.infra.config")


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Coerce a raw file/env value to the type of the field default."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"Invalid boolean for {name}: {value!r}")

    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer for {name}: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid integer for {name}: {value!r}") from None

    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid number for {name}: {value!r}") from None

    if isinstance(default, list):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise ValueError(f"Invalid list for {name}: {value!r}")

    return value


def settings_from_mapping(
    data: Mapping[str, Any],
    base: Optional[ToolSettings] = None
) -> ToolSettings:
    """Build settings from a plain mapping; unknown keys are ignored."""
    base = base or ToolSettings()
    defaults = base.to_dict()
    overrides: Dict[str, Any] = {}

    for key, value in data.items():
        if key not in defaults:
            _logger.warning(f"Ignoring unknown tool setting: {key}")
            continue
        overrides[key] = _coerce(key, value, defaults[key])

    return base.with_overrides(**overrides)


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, str]:
    known = {f.name for f in fields(ToolSettings)}
    overrides = {}

    for env_key, value in environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        name = env_key[len(ENV_PREFIX):].lower()
        if name in known:
            overrides[name] = value

    return overrides


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> ToolSettings:
    """
    Load tool settings.

    Args:
        path: Optional YAML file; values are read from its `tools:` section
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ToolSettings with file values, then environment overrides applied
    """
    settings = ToolSettings()

    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, "r") as f:
                config = yaml.safe_load(f) or {}

            section = config.get("tools", {}) if isinstance(config, dict) else {}
            if not isinstance(section, dict):
                raise ValueError(f"'tools' section in {config_path} must be a mapping")

            settings = settings_from_mapping(section, settings)
            _logger.info(f"Loaded tool settings from {config_path}")
        else:
            _logger.warning(f"Config file not found: {config_path}")

    env = _env_overrides(os.environ if environ is None else environ)
    if env:
        settings = settings_from_mapping(env, settings)
        _logger.debug(f"Applied environment overrides: {sorted(env)}")

    return settings
