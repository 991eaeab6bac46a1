"""Iteration prompt rendering."""

from __future__ import annotations

import pathlib
from typing import Sequence

from gralph.common.config import env_str

PROMPT_TEMPLATE_FILE = "prompt-template.txt"

DEFAULT_PROMPT_TEMPLATE = """\
Read {task_file} carefully. Find any task marked '- [ ]' (unchecked).

If unchecked tasks exist:
- Complete ONE task fully
- Mark it '- [x]' in {task_file}
- Commit changes
- Exit normally (do NOT output completion promise)

If ZERO '- [ ]' remain (all complete):
- Verify by searching the file
- Output ONLY: <promise>{completion_marker}</promise>

CRITICAL: Never mention the promise unless outputting it as the completion signal.

{context_files_section}Task Block:
{task_block}

Iteration: {iteration}/{max_iterations}"""

NO_TASK_BLOCK = "No task block available."


def render_prompt(
    template: str,
    *,
    task_file: str,
    completion_marker: str,
    iteration: int,
    max_iterations: int,
    task_block: str = "",
    context_files: Sequence[str] = (),
) -> str:
    """Substitute ``{placeholder}`` variables in *template*.

    Plain string replacement, so braces in user templates that are not
    known placeholders are left alone.
    """
    if not task_block.strip():
        task_block = NO_TASK_BLOCK
    context_section = ""
    if context_files:
        context_section = (
            "Context Files (read these first):\n" + "\n".join(context_files) + "\n"
        )
    replacements = {
        "{task_file}": task_file,
        "{completion_marker}": completion_marker,
        "{iteration}": str(iteration),
        "{max_iterations}": str(max_iterations),
        "{task_block}": task_block,
        "{context_files}": "\n".join(context_files),
        "{context_files_section}": context_section,
    }
    rendered = template
    for placeholder, value in replacements.items():
        rendered = rendered.replace(placeholder, value)
    return rendered


def resolve_prompt_template(project_dir: pathlib.Path, override: str = "") -> str:
    """Pick the prompt template for a project.

    Order: explicit *override* text, the file named by
    ``GRALPH_PROMPT_TEMPLATE_FILE``, ``<project>/.gralph/prompt-template.txt``,
    then the built-in default. Unreadable files are skipped.
    """
    if override.strip():
        return override

    candidates: list[pathlib.Path] = []
    env_file = env_str("GRALPH_PROMPT_TEMPLATE_FILE")
    if env_file:
        candidates.append(pathlib.Path(env_file).expanduser())
    candidates.append(project_dir / ".gralph" / PROMPT_TEMPLATE_FILE)

    for candidate in candidates:
        try:
            return candidate.read_text(encoding="utf-8")
        except OSError:
            continue
    return DEFAULT_PROMPT_TEMPLATE

