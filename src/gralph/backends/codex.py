"""OpenAI Codex CLI backend."""

from __future__ import annotations

from gralph.backends.base import Backend


class CodexBackend(Backend):
    name = "codex"
    executable = "codex"
    install_hint = "npm install -g @openai/codex"
    models = ("o3", "o4-mini", "gpt-4.1")

    def build_command(self, prompt: str, model: str = "", variant: str = "") -> list[str]:
        cmd = [self.executable, "--quiet", "--auto-approve"]
        if model.strip():
            cmd += ["--model", model]
        cmd.append(prompt)
        return cmd
