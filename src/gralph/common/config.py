"""Environment variable parsing utilities.

Examples::

    from gralph.common.config import env_float, env_path, env_str

    timeout = env_float("GRALPH_LOCK_TIMEOUT", default=10.0)
    state_dir = env_path("GRALPH_STATE_DIR", default=pathlib.Path("~/.config/gralph"))
    backend = env_str("GRALPH_DEFAULTS_BACKEND", default="claude")
"""

from __future__ import annotations

import os
import pathlib


def env_str(name: str, default: str = "") -> str:
    """Get string environment variable, treating blank values as unset."""
    val = os.environ.get(name)
    if val is None or not val.strip():
        return default
    return val


def env_bool(name: str, default: bool = False) -> bool:
    """Get boolean environment variable.

    True values: "true", "1", "yes", "on" (case-insensitive)
    False values: "false", "0", "no", "off" (case-insensitive)
    Missing or invalid: returns default
    """
    val = os.environ.get(name)
    if val is None:
        return default
    lower = val.strip().lower()
    if lower in ("true", "1", "yes", "on"):
        return True
    if lower in ("false", "0", "no", "off"):
        return False
    return default


def env_int(name: str, default: int = 0) -> int:
    """Get integer environment variable, or *default* when unset or invalid."""
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val.strip())
    except ValueError:
        return default


def env_float(name: str, default: float = 0.0) -> float:
    """Get float environment variable, or *default* when unset or invalid."""
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return float(val.strip())
    except ValueError:
        return default


def env_path(name: str, default: pathlib.Path) -> pathlib.Path:
    """Get a filesystem path from the environment with ``~`` expanded.

    Args:
        name: Environment variable name
        default: Path used when the variable is unset or blank

    Returns:
        The expanded path
    """
    val = env_str(name)
    if not val:
        return default.expanduser()
    return pathlib.Path(val).expanduser()
