"""Claude Code CLI backend (stream-json output)."""

from __future__ import annotations

import json
import pathlib
from typing import Any

from gralph.backends.base import Backend


def _parse_event(line: str) -> dict[str, Any] | None:
    line = line.strip()
    if not line.startswith("{"):
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


class ClaudeBackend(Backend):
    name = "claude"
    executable = "claude"
    install_hint = "npm install -g @anthropic-ai/claude-code"
    models = ("claude-opus-4-5",)
    merge_stderr = False

    def build_command(self, prompt: str, model: str = "", variant: str = "") -> list[str]:
        cmd = [
            self.executable,
            "--dangerously-skip-permissions",
            "--verbose",
            "--print",
            "--output-format",
            "stream-json",
        ]
        if model.strip():
            cmd += ["--model", model]
        cmd += ["-p", prompt]
        return cmd

    def display_text(self, line: str) -> str:
        """Concatenated text parts of an ``assistant`` event, else ""."""
        event = _parse_event(line)
        if event is None or event.get("type") != "assistant":
            return ""
        message = event.get("message")
        if not isinstance(message, dict):
            return ""
        parts = []
        for part in message.get("content") or []:
            if isinstance(part, dict) and part.get("type") == "text" and part.get("text"):
                parts.append(part["text"])
        return "".join(parts)

    def parse_text(self, output_file: pathlib.Path) -> str:
        """The last non-empty ``result`` event, or the raw output if none."""
        raw = super().parse_text(output_file)
        result = ""
        for line in raw.splitlines():
            event = _parse_event(line)
            if event and event.get("type") == "result" and event.get("result"):
                result = str(event["result"])
        return result or raw
