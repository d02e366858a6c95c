"""
Project commands: projects, project-add, project-switch, project-remove.
"""

from typing import Annotated

import typer
from rich import print as rprint
from rich.table import Table

from ..app_context import AppContext
from ..exceptions import AsmgrError
from ..settings import DEFAULT_PROJECT_ID
from ..storage import Storage
from ._shared import app, console, errors_as_exit, fail


@app.command()
def projects():
    """List projects; the active one is marked with *."""
    storage = Storage()
    with errors_as_exit():
        active_id, items = storage.load_projects()
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("")
    table.add_column("Name")
    table.add_column("Id", style="dim")
    table.add_column("Sessions", justify="right")
    table.add_row(
        "*" if not active_id else "",
        f"[dim]({DEFAULT_PROJECT_ID})[/dim]",
        "",
        str(storage.project_session_count(None)),
    )
    for project in items:
        table.add_row(
            "*" if project.id == active_id else "",
            project.name,
            project.id,
            str(storage.project_session_count(project.id)),
        )
    console.print(table)


@app.command("project-add")
def project_add(
    name: Annotated[str, typer.Argument(help="Project name")],
    activate: Annotated[bool, typer.Option("--activate", help="Make it the active project")] = False,
    import_default: Annotated[
        bool, typer.Option("--import-default", help="Move sessions of the default namespace into it")
    ] = False,
):
    """Create a project."""
    storage = Storage()
    with errors_as_exit():
        project = storage.add_project(name)
        rprint(f"[green]✓[/green] Project '[bold]{project.name}[/bold]' created ({project.id})")
        if import_default:
            storage.lock_project(project.id)
            try:
                count = storage.import_default_into(project.id)
            finally:
                storage.unlock_project(project.id)
            rprint(f"  Imported {count} session(s)")
        if activate:
            storage.set_active_project(project.id)
            rprint("  Now active")


def _project_id(storage: Storage, key: str) -> str:
    if key == DEFAULT_PROJECT_ID:
        return ""
    _, items = storage.load_projects()
    for project in items:
        if key in (project.id, project.name):
            return project.id
    fail(f"project '{key}' not found")


@app.command("project-switch")
def project_switch(name: Annotated[str, typer.Argument(help="Project name or id ('default' for none)")]):
    """Make another project the active one."""
    storage = Storage()
    project_id = _project_id(storage, name)
    with errors_as_exit():
        storage.set_active_project(project_id or None)
    rprint(f"[green]✓[/green] Active project: [bold]{name}[/bold]")


@app.command("project-remove")
def project_remove(
    name: Annotated[str, typer.Argument(help="Project name or id")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Don't ask for confirmation")] = False,
):
    """Delete a project and its sessions (refused while any of them runs)."""
    ctx = AppContext()
    project_id = _project_id(ctx.storage, name)
    if not project_id:
        fail("the default namespace cannot be removed")
    if not force and not typer.confirm(f"Delete project '{name}' and all its sessions?"):
        raise typer.Exit(code=1)
    try:
        ctx.storage.lock_project(project_id)
    except AsmgrError as e:
        fail(str(e))
    try:
        with errors_as_exit():
            ctx.remove_project(project_id)
    except typer.Exit:
        ctx.storage.unlock_project(project_id)
        raise
    rprint(f"[green]✓[/green] Project '[bold]{name}[/bold]' removed")
