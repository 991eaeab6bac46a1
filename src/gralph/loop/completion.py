"""Completion detection for agent output."""

from __future__ import annotations

import re

# Only the tail of the output is inspected for the promise tag.
PROMISE_WINDOW = 500

NEGATED_PROMISE_RE = re.compile(
    r"(cannot|can't|won't|will not|do not|don't|should not|shouldn't|must not|mustn't)"
    r"[^<]*<promise>",
    re.IGNORECASE,
)


def promise_tag(marker: str) -> str:
    return f"<promise>{marker}</promise>"


def is_complete(remaining: int, output: str, marker: str) -> bool:
    """Decide whether an iteration finished the whole task file.

    All three must hold:

    - no unchecked tasks remain;
    - ``<promise>MARKER</promise>`` appears in the last 500 characters
      of *output*;
    - that window has no negation phrase ("do not", "won't", ...)
      followed by a ``<promise>`` tag with no ``<`` in between, as when
      an agent quotes the instruction instead of signalling.
    """
    if remaining != 0 or not output or not marker.strip():
        return False
    window = output[-PROMISE_WINDOW:]
    if promise_tag(marker) not in window:
        return False
    return NEGATED_PROMISE_RE.search(window) is None
