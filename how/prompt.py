"""System prompt construction."""

from __future__ import annotations

import os
import platform
from typing import Sequence

from .db import Interaction

BASE_PROMPT = """You are a terminal command expert. The user will ask how to do something on the command line. Respond with the most appropriate command and a brief explanation.

You MUST respond in exactly this format:

COMMAND: <the command>
EXPLANATION: <brief one-line explanation>

Rules:
- Give the simplest, most portable command that works on modern systems
- Prefer standard Unix tools (coreutils, grep, sed, awk, jq, curl, etc.)
- If multiple commands are needed, chain them with pipes or && as appropriate
- Do not wrap the command in backticks or code blocks
- Do not include any text outside the COMMAND/EXPLANATION format
- If the question is ambiguous, pick the most common interpretation
- Use placeholder values like <filename> only when the user hasn't specified one"""

_OS_NAMES = {
    "Darwin": "macOS",
    "Linux": "Linux",
    "Windows": "Windows",
}


def os_context() -> str:
    system = platform.system()
    os_name = _OS_NAMES.get(system, system or "an unknown OS")
    shell = os.path.basename(os.environ.get("SHELL", "")) or "sh"
    context = f"The user is on {os_name} using the {shell} shell."
    if system == "Darwin":
        context += " Prefer BSD-compatible flags for core utilities."
    return context


def system_prompt(custom: str = "") -> str:
    """Base prompt (or ``custom`` when set) followed by OS context."""
    base = custom.strip() or BASE_PROMPT
    return f"{base}\n\n{os_context()}"


def format_memory_context(interactions: Sequence[Interaction]) -> str:
    """Render recalled interactions as an extra block for the system prompt."""
    if not interactions:
        return ""
    lines = [
        "",
        "",
        "Previously used commands for similar questions:",
    ]
    for ix in interactions:
        line = f'- "{ix.question}" → {ix.command}'
        if ix.use_count > 1:
            line += f" (used {ix.use_count} times)"
        lines.append(line)
    lines.append("")
    lines.append(
        "Consider these patterns when they fit the new question, but answer "
        "the new question on its own terms."
    )
    return "\n".join(lines)


__all__ = [
    "BASE_PROMPT",
    "format_memory_context",
    "system_prompt",
]
