"""
Shared CLI state: Typer app, console, options, and utilities.
"""

from contextlib import contextmanager
from typing import Annotated, Iterator, Optional

import typer
from rich import print as rprint
from rich.console import Console

from ..app_context import AppContext
from ..exceptions import AsmgrError, LockHeldError
from ..logging_config import setup_cli_logging
from ..models import Instance

# Main app
app = typer.Typer(
    name="asmgr",
    help="Manage AI coding agent sessions in tmux",
    no_args_is_help=False,
    invoke_without_command=True,
    rich_markup_mode="rich",
)

# Console for rich output
console = Console()

# Project to operate on (defaults to the active project)
ProjectOption = Annotated[
    Optional[str],
    typer.Option("--project", "-P", help="Project id (defaults to the active project)"),
]


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output")] = False,
):
    """List sessions when no command is given."""
    setup_cli_logging(verbose)
    if ctx.invoked_subcommand is None:
        from .session import list_sessions

        list_sessions(project=None)


def fail(message: str, code: int = 1) -> None:
    """Print an error and exit."""
    rprint(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=code)


@contextmanager
def errors_as_exit() -> Iterator[None]:
    """Turn AsmgrError into a red message and exit code 1."""
    try:
        yield
    except AsmgrError as e:
        fail(str(e))


@contextmanager
def open_project(project: Optional[str] = None) -> Iterator[AppContext]:
    """Open (and lock) a project for the duration of a command."""
    ctx = AppContext()
    try:
        if project is None:
            ctx.open()
        else:
            ctx.open(project)
    except LockHeldError as e:
        fail(f"{e}. Close the other asmgr first.")
    except AsmgrError as e:
        fail(str(e))
    try:
        with errors_as_exit():
            yield ctx
    finally:
        ctx.close()


def resolve_instance(ctx: AppContext, key: str) -> Instance:
    """Find an instance by id, name or id prefix, or exit."""
    inst = ctx.sessions.find_instance(key)
    if inst is None:
        fail(f"session '{key}' not found")
    return inst
