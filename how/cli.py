"""Command-line interface for how."""

import logging
from contextlib import ExitStack
from typing import List, Optional

import click

from . import __version__, ui
from .config import ConfigError, base_dir, init_config, load_config, show_config
from .db import MemoryStore, OpenError, StoreError
from .llm import LLMError, new_provider
from .logging_setup import setup_logger
from .prompt import format_memory_context, system_prompt

logger = logging.getLogger(__name__)

# Group-level options that may precede a bare question.
_GROUP_FLAGS = {"-v", "--verbose", "--version", "-h", "--help"}


class QuestionGroup(click.Group):
    """Treats ``how <words...>`` as ``how ask <words...>`` unless the first
    word names a subcommand."""

    def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
        i = 0
        while i < len(args) and args[i] in _GROUP_FLAGS:
            i += 1
        if i < len(args) and args[i] not in self.commands:
            args = args[:i] + ["ask"] + args[i:]
        return super().parse_args(ctx, args)


def _load_config_or_exit(ctx: click.Context):
    try:
        return load_config()
    except ConfigError as exc:
        ui.display_error(f"loading config: {exc}")
        ctx.exit(1)


def _open_store(cfg) -> MemoryStore:
    try:
        return MemoryStore.open(cfg.base_dir)
    except OpenError as exc:
        raise click.ClickException(f"opening memory: {exc}") from exc


def _echo_interaction(ix) -> None:
    click.echo(f"  Q: {ix.question}")
    click.echo(f"  $ {click.style(ix.command, fg='green')}")
    if ix.use_count > 1:
        click.echo(click.style(f"  (used {ix.use_count} times)", fg="yellow"))
    click.echo()


@click.group(cls=QuestionGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def main(verbose):
    """how - ask a question, get a shell command.

    \b
    Examples:
      how find files larger than 100MB
      how -y show disk usage of this directory
      how ask memory usage per process   # when the question starts with a subcommand name
    """
    try:
        setup_logger(
            "how",
            base_dir(),
            "how.log",
            level=logging.DEBUG if verbose else logging.INFO,
            console=verbose,
        )
    except OSError as exc:
        ui.display_warning(f"logging disabled: {exc}")


@main.command()
@click.argument("question", nargs=-1, required=True)
@click.option("-y", "--yes", is_flag=True, help="Run the command without confirmation")
@click.option("-q", "--quiet", is_flag=True, help="Output only the command (for piping)")
@click.pass_context
def ask(ctx, question, yes, quiet):
    """Ask for a shell command."""
    question = " ".join(question)
    cfg = _load_config_or_exit(ctx)

    with ExitStack() as stack:
        store: Optional[MemoryStore] = None
        if cfg.memory.enabled:
            try:
                store = stack.enter_context(MemoryStore.open(cfg.base_dir))
            except OpenError as exc:
                logger.warning("Memory disabled: %s", exc)
                ui.display_warning(f"memory disabled: {exc}")

        prompt = system_prompt(cfg.system_prompt)
        if store is not None:
            try:
                past = store.search(
                    question,
                    cfg.memory.search_limit,
                    timeout=cfg.memory.timeout_seconds,
                )
            except StoreError as exc:
                logger.warning("Memory search failed: %s", exc)
            else:
                prompt += format_memory_context(past)

        try:
            provider = new_provider(cfg)
            response = provider.complete(prompt, question)
        except LLMError as exc:
            logger.error("LLM request failed: %s", exc)
            ui.display_error(str(exc))
            ctx.exit(1)

        result = ui.parse_response(response)
        if not result.command:
            logger.error("No command in response: %r", response)
            ui.display_error("could not parse a command from the response")
            ctx.exit(1)

        if quiet:
            ui.display_quiet(result)
            return

        ui.display(result)

        if yes:
            status = ui.run_command(result.command)
        else:
            status = ui.confirm_and_run(result.command)
        if status is None:
            return
        if status != 0:
            ctx.exit(status)

        if store is not None:
            try:
                store.save(
                    question,
                    result.command,
                    result.explanation,
                    timeout=cfg.memory.timeout_seconds,
                )
            except StoreError as exc:
                logger.warning("Could not remember command: %s", exc)


@main.group()
def memory():
    """Manage command memory."""


@memory.command(name="list")
@click.option("--limit", type=int, default=None, help="Number of commands to show")
@click.pass_context
def memory_list(ctx, limit):
    """List remembered commands, newest first."""
    cfg = _load_config_or_exit(ctx)
    with _open_store(cfg) as store:
        try:
            interactions = store.list(limit if limit is not None else cfg.memory.list_limit)
        except StoreError as exc:
            raise click.ClickException(f"listing memory: {exc}") from exc

    if not interactions:
        click.echo("No remembered commands yet.")
        return
    for ix in interactions:
        _echo_interaction(ix)


@memory.command(name="search")
@click.argument("question", nargs=-1, required=True)
@click.option("--limit", type=int, default=None, help="Number of matches to show")
@click.pass_context
def memory_search(ctx, question, limit):
    """Show remembered commands related to QUESTION."""
    cfg = _load_config_or_exit(ctx)
    with _open_store(cfg) as store:
        try:
            interactions = store.search(
                " ".join(question),
                limit if limit is not None else cfg.memory.search_limit,
            )
        except StoreError as exc:
            raise click.ClickException(f"searching memory: {exc}") from exc

    if not interactions:
        click.echo("No matching commands.")
        return
    for ix in interactions:
        _echo_interaction(ix)


@memory.command(name="stats")
@click.pass_context
def memory_stats(ctx):
    """Show where memory lives and how much it holds."""
    cfg = _load_config_or_exit(ctx)
    with _open_store(cfg) as store:
        try:
            total = store.count()
        except StoreError as exc:
            raise click.ClickException(f"counting memory: {exc}") from exc
        db_path = store.db_path

    click.echo(click.style("Command memory", fg="green", bold=True))
    click.echo(f"Enabled: {'yes' if cfg.memory.enabled else 'no'}")
    click.echo(f"Database: {db_path}")
    click.echo(f"Remembered commands: {total}")


@memory.command(name="clear")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def memory_clear(ctx, force):
    """Forget every remembered command."""
    if not force and not click.confirm("This will delete all remembered commands. Continue?"):
        click.echo("Clear cancelled")
        return

    cfg = _load_config_or_exit(ctx)
    with _open_store(cfg) as store:
        try:
            store.clear()
        except StoreError as exc:
            raise click.ClickException(f"clearing memory: {exc}") from exc
    click.echo("Memory cleared.")


@main.group()
def config():
    """Show or manage configuration."""


@config.command(name="show")
def config_show():
    """Show the current configuration file."""
    try:
        click.echo(show_config())
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@config.command(name="init")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing config file")
def config_init(force):
    """Create a default configuration file."""
    try:
        path = init_config(force=force)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if path is None:
        click.echo(click.style("Config file already exists; use --force to overwrite.", fg="yellow"))
        return
    click.echo(f"Default config created at {path}")
    click.echo("Edit it to add your API keys and select a provider.")


@config.command(name="path")
def config_path_cmd():
    """Print the configuration directory."""
    click.echo(str(base_dir()))


if __name__ == "__main__":
    main()
