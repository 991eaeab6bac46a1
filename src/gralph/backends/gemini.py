"""Google Gemini CLI backend."""

from __future__ import annotations

from gralph.backends.base import Backend


class GeminiBackend(Backend):
    name = "gemini"
    executable = "gemini"
    install_hint = "npm install -g @google/gemini-cli"
    models = ("gemini-1.5-pro",)

    def build_command(self, prompt: str, model: str = "", variant: str = "") -> list[str]:
        cmd = [self.executable, "--headless"]
        if model.strip():
            cmd += ["--model", model]
        cmd.append(prompt)
        return cmd
