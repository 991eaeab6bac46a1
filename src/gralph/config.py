"""Layered YAML configuration.

Sources, lowest priority first:

1. Built-in defaults (``DEFAULT_CONFIG``)
2. Global file: ``$GRALPH_GLOBAL_CONFIG``, else
   ``$GRALPH_CONFIG_DIR/config.yaml``, else ``~/.config/gralph/config.yaml``
3. Project file: ``<project>/.gralph.yaml`` (name overridable with
   ``GRALPH_PROJECT_CONFIG_NAME``)
4. Environment: ``GRALPH_<SECTION>_<KEY>`` for a dotted key
   ``section.key``, plus the short legacy names in ``LEGACY_ENV_OVERRIDES``

Values are looked up with dotted keys, e.g. ``config.get("defaults.backend")``.
"""

from __future__ import annotations

import copy
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any

import yaml

from gralph.common.config import env_str
from gralph.errors import ConfigError

DEFAULT_CONFIG: dict[str, Any] = {
    "defaults": {
        "max_iterations": 30,
        "task_file": "PRD.md",
        "completion_marker": "COMPLETE",
        "backend": "claude",
        "model": "",
        "context_files": "",
    },
    "logging": {
        "retain_days": 7,
    },
    "claude": {"default_model": ""},
    "codex": {"default_model": ""},
    "gemini": {"default_model": ""},
    "opencode": {"default_model": ""},
}

LEGACY_ENV_OVERRIDES = {
    "defaults.max_iterations": "GRALPH_MAX_ITERATIONS",
    "defaults.task_file": "GRALPH_TASK_FILE",
    "defaults.completion_marker": "GRALPH_COMPLETION_MARKER",
    "defaults.backend": "GRALPH_BACKEND",
    "defaults.model": "GRALPH_MODEL",
}


def global_config_path() -> pathlib.Path:
    explicit = env_str("GRALPH_GLOBAL_CONFIG")
    if explicit:
        return pathlib.Path(explicit).expanduser()
    config_dir = env_str("GRALPH_CONFIG_DIR")
    if config_dir:
        return pathlib.Path(config_dir).expanduser() / "config.yaml"
    return pathlib.Path("~/.config/gralph/config.yaml").expanduser()


def project_config_path(project_dir: pathlib.Path | str | None) -> pathlib.Path | None:
    if not project_dir:
        return None
    project_dir = pathlib.Path(project_dir)
    if not project_dir.is_dir():
        return None
    return project_dir / env_str("GRALPH_PROJECT_CONFIG_NAME", ".gralph.yaml")


def _read_yaml(path: pathlib.Path) -> dict[str, Any]:
    """Parse a YAML mapping, {} for a missing or empty file."""
    if not path.is_file():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(path, str(exc)) from exc
    except OSError as exc:
        raise ConfigError(path, exc.strerror or str(exc)) from exc
    if not isinstance(data, dict):
        raise ConfigError(path, "top level must be a mapping")
    return data


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if value is None:
        return ""
    return str(value)



def _env_key(key: str) -> str:
    return "GRALPH_" + key.replace(".", "_").replace("-", "_").upper()

@dataclass
class Config:
    """Merged configuration with environment overrides applied on read."""

    data: dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG))
    sources: list[pathlib.Path] = field(default_factory=list)

    def _lookup(self, key: str) -> Any:
        node: Any = self.data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def get(self, key: str, default: str = "") -> str:
        """Return the value of dotted *key* as a string.

        Blank values count as unset and yield *default*.
        """
        if not key:
            return default
        legacy = LEGACY_ENV_OVERRIDES.get(key)
        if legacy and env_str(legacy):
            return os.environ[legacy]
        env_key = _env_key(key)
        if env_str(env_key):
            return os.environ[env_key]
        value = _to_str(self._lookup(key))
        return value if value.strip() else default

    def get_int(self, key: str, default: int = 0) -> int:
        try:
            return int(self.get(key, str(default)).strip())
        except ValueError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Comma-separated value of *key* as a trimmed list."""
        return [item.strip() for item in self.get(key).split(",") if item.strip()]

    def has(self, key: str) -> bool:
        """Whether *key* is set in a file, the defaults or the environment."""
        if not key:
            return False
        legacy = LEGACY_ENV_OVERRIDES.get(key)
        if legacy and legacy in os.environ:
            return True
        if _env_key(key) in os.environ:
            return True
        return self._lookup(key) is not None

    def items(self) -> dict[str, str]:
        """Every leaf key, flattened to dotted form, with overrides applied."""
        flat: dict[str, str] = {}

        def walk(prefix: str, node: dict[str, Any]) -> None:
            for name, value in node.items():
                key = f"{prefix}.{name}" if prefix else str(name)
                if isinstance(value, dict):
                    walk(key, value)
                else:
                    flat[key] = self.get(key)

        walk("", self.data)
        return dict(sorted(flat.items()))


def load_config(project_dir: pathlib.Path | str | None = None) -> Config:
    """Load and merge configuration for *project_dir*.

    Raises:
        ConfigError: A config file exists but is not valid YAML.
    """
    config = Config()
    paths = [global_config_path(), project_config_path(project_dir)]
    for path in paths:
        if path is None or not path.is_file():
            continue
        _merge(config.data, _read_yaml(path))
        config.sources.append(path)
    return config


def _parse_scalar(value: str) -> Any:
    """YAML-typed *value* for ints, floats and booleans, else the string."""
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    if isinstance(parsed, (bool, int, float)):
        return parsed
    return value


def set_global_value(key: str, value: str) -> pathlib.Path:
    """Write dotted *key* into the global config file and return its path.

    Raises:
        ConfigError: The existing file is invalid, or a parent of *key*
            holds a plain value.
        ValueError: Empty key.
    """
    parts = [part for part in key.strip().split(".") if part]
    if not parts:
        raise ValueError("config key is required")
    path = global_config_path()
    data = _read_yaml(path)

    node = data
    for part in parts[:-1]:
        child = node.setdefault(part, {})
        if not isinstance(child, dict):
            raise ConfigError(path, f"'{part}' is not a section")
        node = child
    node[parts[-1]] = _parse_scalar(value)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
    return path
