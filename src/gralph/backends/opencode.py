"""OpenCode CLI backend."""

from __future__ import annotations

from gralph.backends.base import Backend, inherited_env


class OpenCodeBackend(Backend):
    name = "opencode"
    executable = "opencode"
    install_hint = "See https://opencode.ai/docs/cli/ for installation instructions"
    models = (
        "opencode/gpt-5.2-codex",
        "anthropic/claude-opus-4-5",
        "google/gemini-3-pro",
    )

    def build_command(self, prompt: str, model: str = "", variant: str = "") -> list[str]:
        cmd = [self.executable, "run"]
        if model.strip():
            cmd += ["--model", model]
        if variant.strip():
            cmd += ["--variant", variant]
        cmd.append(prompt)
        return cmd

    def command_env(self) -> dict[str, str]:
        return inherited_env(OPENCODE_EXPERIMENTAL_LSP_TOOL="true")
