"""JSON file I/O with atomic writes.

Parsing helpers never raise on bad input; they return a default so a
corrupt file can be detected and repaired by the caller.
"""

from __future__ import annotations

import json
import os
import pathlib
import tempfile
from typing import Any


def safe_parse_json(text: str, default: Any = None) -> Any:
    """Parse JSON text, returning *default* on failure.

    Examples:
        >>> safe_parse_json('{"sessions": {}}')
        {'sessions': {}}
        >>> safe_parse_json('{"sessions": ') is None
        True
    """
    if not text or not text.strip():
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return default


def read_json_file(path: pathlib.Path, default: Any = None) -> Any:
    """Read and parse a JSON file.

    Returns *default* if the file is missing, unreadable, empty, or
    contains invalid JSON.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return default
    return safe_parse_json(text, default)


def write_json_file(path: pathlib.Path, data: dict[str, Any] | list[Any]) -> None:
    """Write *data* to *path* atomically.

    The document is serialized in full before the temp file is created,
    flushed and fsynced, then renamed over *path*. Readers observe either
    the previous document or the new one, never a partial write.
    """
    payload = json.dumps(data, indent=2) + "\n"
    if not payload.strip():
        raise ValueError(f"refusing to write empty JSON document to {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
