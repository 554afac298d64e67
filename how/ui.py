"""Reply parsing and terminal rendering."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional

import click

COMMAND_PREFIX = "COMMAND:"
EXPLANATION_PREFIX = "EXPLANATION:"


@dataclass
class Result:
    command: str = ""
    explanation: str = ""


def _strip_code(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text.startswith("`") and text.endswith("`"):
        text = text.strip("`").strip()
    return text


def parse_response(response: str) -> Result:
    """Extract the command and explanation lines from an LLM reply.

    Later lines win over earlier ones. Code fences and backticks that the
    model was told not to use are tolerated.
    """
    result = Result()
    for line in response.splitlines():
        line = line.strip()
        if line.startswith(COMMAND_PREFIX):
            result.command = _strip_code(line[len(COMMAND_PREFIX):])
        elif line.startswith(EXPLANATION_PREFIX):
            result.explanation = line[len(EXPLANATION_PREFIX):].strip()
    return result


def display(result: Result) -> None:
    click.echo()
    click.echo(
        f"  {click.style('$', fg='magenta', bold=True)} "
        f"{click.style(result.command, fg='green', bold=True)}"
    )
    if result.explanation:
        click.echo(f"  {click.style(result.explanation, fg='bright_black')}")
    click.echo()


def display_quiet(result: Result) -> None:
    """Only the command, for piping."""
    click.echo(result.command)


def display_error(message: str) -> None:
    click.echo(f"\n  {click.style('Error:', fg='red', bold=True)} {message}\n", err=True)


def display_warning(message: str) -> None:
    click.echo(click.style(f"Warning: {message}", fg="yellow"), err=True)


def run_command(command: str) -> int:
    """Run ``command`` through ``sh -c`` attached to the terminal; returns the exit status."""
    click.echo()
    completed = subprocess.run(["sh", "-c", command])
    return completed.returncode


def confirm_and_run(command: str) -> Optional[int]:
    """Ask before running. None when declined, else the exit status."""
    if not click.confirm("  Run this command?", default=False):
        return None
    return run_command(command)


__all__ = [
    "Result",
    "confirm_and_run",
    "display",
    "display_error",
    "display_quiet",
    "display_warning",
    "parse_response",
    "run_command",
]
