"""
Session commands: list, new, start, stop, attach, delete, tab, send,
resume-candidates.
"""

import os
from typing import Annotated, List, Optional

import typer
from rich import print as rprint
from rich.table import Table

from ..agents import AgentKind
from ..launcher import NeedsResumeChoice
from ..status_constants import get_agent_icon, get_status_color, get_status_emoji, get_status_label
from ..transcripts import ResumeCandidate, list_resume_candidates
from ._shared import ProjectOption, app, console, errors_as_exit, fail, open_project, resolve_instance


def _parse_agent(value: str) -> AgentKind:
    try:
        return AgentKind(value.lower())
    except ValueError:
        valid = ", ".join(k.value for k in AgentKind)
        fail(f"unknown agent '{value}' (choose from: {valid})")


def _candidates_table(candidates: List[ResumeCandidate]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Session")
    table.add_column("Last active")
    table.add_column("Prompts", justify="right")
    table.add_column("First prompt")
    for i, c in enumerate(candidates, 1):
        table.add_row(
            str(i),
            c.token,
            c.last_modified.astimezone().strftime("%Y-%m-%d %H:%M"),
            str(c.message_count),
            c.first_prompt,
        )
    return table


@app.command("list")
def list_sessions(project: ProjectOption = None):
    """List sessions of the project with their live status."""
    with open_project(project) as ctx:
        instances = ctx.sessions.display_order()
        if not instances:
            rprint("[dim]No sessions[/dim]")
            return
        for inst in instances:
            ctx.reconciler.reconcile(inst)

        groups = {g.id: g.name for g in ctx.sessions.list_groups()}
        table = Table(show_header=True, header_style="bold", box=None)
        table.add_column("")
        table.add_column("Name")
        table.add_column("Agent")
        table.add_column("Status")
        table.add_column("Group")
        table.add_column("Id", style="dim")
        table.add_column("Last line", overflow="ellipsis", no_wrap=True)
        for inst in instances:
            name = f"★ {inst.name}" if inst.favorite else inst.name
            if inst.auto_yes:
                name += " [orange1]![/orange1]"
            color = get_status_color(inst)
            table.add_row(
                get_status_emoji(inst),
                name,
                f"{get_agent_icon(inst.agent)} {inst.agent.value}",
                f"[{color}]{get_status_label(inst)}[/{color}]",
                groups.get(inst.group_id, ""),
                inst.id[:10],
                inst.last_line,
            )
        console.print(table)


@app.command()
def new(
    name: Annotated[str, typer.Argument(help="Display name for the session")],
    path: Annotated[
        Optional[str], typer.Option("--path", "-d", help="Working directory (default: current)")
    ] = None,
    agent: Annotated[str, typer.Option("--agent", "-a", help="Agent kind")] = AgentKind.CLAUDE.value,
    command: Annotated[
        str, typer.Option("--command", "-c", help="Command line for --agent custom")
    ] = "",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Start with auto-approve")] = False,
    group: Annotated[Optional[str], typer.Option("--group", "-g", help="Group name")] = None,
    resume: Annotated[
        Optional[str], typer.Option("--resume", help="Resume this conversation id")
    ] = None,
    fresh: Annotated[
        bool, typer.Option("--fresh", help="Start a new conversation even if old ones exist")
    ] = False,
    attach: Annotated[bool, typer.Option("--attach", help="Attach after starting")] = False,
    project: ProjectOption = None,
):
    """Create a session and start its agent."""
    kind = _parse_agent(agent)
    with open_project(project) as ctx:
        group_id = ""
        if group:
            match = [g for g in ctx.sessions.list_groups() if g.name == group]
            group_id = match[0].id if match else ctx.sessions.add_group(group).id

        outcome = ctx.launcher.create(
            name,
            path or os.getcwd(),
            agent=kind,
            custom_command=command,
            auto_yes=yes,
            group_id=group_id,
            resume_token=resume or "",
        )
        if isinstance(outcome, NeedsResumeChoice):
            inst = outcome.instance
            if fresh:
                ctx.launcher.start(inst)
            else:
                console.print(_candidates_table(outcome.candidates))
                choice = typer.prompt("Resume which conversation? (0 for a new one)", default=0, type=int)
                if choice < 0 or choice > len(outcome.candidates):
                    fail(f"no conversation #{choice}")
                if choice == 0:
                    ctx.launcher.start(inst)
                else:
                    ctx.launcher.start_with_resume(inst, outcome.candidates[choice - 1].token)
        else:
            inst = outcome.instance

        rprint(f"[green]✓[/green] Session '[bold]{inst.name}[/bold]' started ({inst.session_name})")
        if inst.resume_session_id:
            rprint(f"  Resuming {inst.resume_session_id}")
        if attach:
            ctx.launcher.attach(inst)


@app.command()
def start(
    name: Annotated[str, typer.Argument(help="Session name or id")],
    resume: Annotated[
        Optional[str], typer.Option("--resume", help="Resume this conversation id")
    ] = None,
    parallel: Annotated[
        bool, typer.Option("--parallel", help="Start a copy alongside the original")
    ] = False,
    project: ProjectOption = None,
):
    """Start a stopped session (its tabs are restored)."""
    with open_project(project) as ctx:
        inst = resolve_instance(ctx, name)
        if parallel:
            clone = ctx.launcher.parallel_start(inst)
            rprint(f"[green]✓[/green] Started copy of '[bold]{inst.name}[/bold]' ({clone.session_name})")
            return
        if resume:
            ctx.launcher.start_with_resume(inst, resume)
        else:
            ctx.launcher.start(inst)
        rprint(f"[green]✓[/green] Session '[bold]{inst.name}[/bold]' running")


@app.command()
def stop(
    name: Annotated[str, typer.Argument(help="Session name or id")],
    project: ProjectOption = None,
):
    """Stop a session (kills its tmux session, keeps its configuration)."""
    with open_project(project) as ctx:
        inst = resolve_instance(ctx, name)
        if ctx.launcher.stop(inst):
            rprint(f"[green]✓[/green] Session '[bold]{inst.name}[/bold]' stopped")
        else:
            rprint(f"[dim]Session '{inst.name}' was not running[/dim]")


@app.command()
def attach(
    name: Annotated[str, typer.Argument(help="Session name or id")],
    project: ProjectOption = None,
):
    """Attach to a session, starting it if needed.

    Ctrl-Q detaches, Alt-Left/Alt-Right switch tabs.
    """
    with open_project(project) as ctx:
        inst = resolve_instance(ctx, name)
        code = ctx.launcher.attach(inst)
    if code:
        raise typer.Exit(code=code)


@app.command()
def delete(
    name: Annotated[str, typer.Argument(help="Session name or id")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Don't ask for confirmation")] = False,
    project: ProjectOption = None,
):
    """Stop a session and remove it from the project."""
    with open_project(project) as ctx:
        inst = resolve_instance(ctx, name)
        if not force and not typer.confirm(f"Delete session '{inst.name}'?"):
            raise typer.Exit(code=1)
        ctx.launcher.delete(inst)
        rprint(f"[green]✓[/green] Session '[bold]{inst.name}[/bold]' deleted")


@app.command()
def tab(
    name: Annotated[str, typer.Argument(help="Session name or id")],
    tab_name: Annotated[Optional[str], typer.Option("--name", "-n", help="Tab name")] = None,
    agent: Annotated[str, typer.Option("--agent", "-a", help="Agent kind for the tab")] = AgentKind.TERMINAL.value,
    command: Annotated[str, typer.Option("--command", "-c", help="Command line for --agent custom")] = "",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Start the tab with auto-approve")] = False,
    fork: Annotated[bool, typer.Option("--fork", help="Fork the session's Claude conversation into the tab")] = False,
    close: Annotated[Optional[int], typer.Option("--close", help="Close the tab with this window index")] = None,
    stop_index: Annotated[Optional[int], typer.Option("--stop", help="Stop the process in this window")] = None,
    project: ProjectOption = None,
):
    """Open, fork, stop or close a tab (tmux window) of a running session."""
    with open_project(project) as ctx:
        inst = resolve_instance(ctx, name)
        if close is not None:
            ctx.launcher.close_tab(inst, close)
            rprint(f"[green]✓[/green] Closed tab {close} of '[bold]{inst.name}[/bold]'")
            return
        if stop_index is not None:
            ctx.launcher.stop_window(inst, stop_index)
            rprint(f"[green]✓[/green] Stopped window {stop_index} of '[bold]{inst.name}[/bold]'")
            return
        if fork:
            fw = ctx.launcher.fork_to_tab(inst, tab_name or f"{inst.name} fork")
        else:
            kind = _parse_agent(agent)
            fw = ctx.launcher.new_tab(inst, tab_name or kind.value, agent=kind,
                                      custom_command=command, auto_yes=yes)
        rprint(f"[green]✓[/green] Opened tab '[bold]{fw.name}[/bold]' as window {fw.index}")


@app.command()
def send(
    name: Annotated[str, typer.Argument(help="Session name or id")],
    text: Annotated[str, typer.Argument(help="Prompt to type (Enter is sent after it)")],
    window: Annotated[Optional[int], typer.Option("--window", "-w", help="Window index")] = None,
    project: ProjectOption = None,
):
    """Send a prompt to a running session."""
    with open_project(project) as ctx:
        inst = resolve_instance(ctx, name)
        ctx.reconciler.reconcile(inst, capture=False)
        ctx.launcher.send_prompt(inst, text, window)
        rprint(f"[green]✓[/green] Sent to '[bold]{inst.name}[/bold]'")


@app.command("resume-candidates")
def resume_candidates(
    path: Annotated[
        Optional[str], typer.Option("--path", "-d", help="Working directory (default: current)")
    ] = None,
    agent: Annotated[str, typer.Option("--agent", "-a", help="Agent kind")] = AgentKind.CLAUDE.value,
):
    """List past conversations that can be resumed in a directory."""
    kind = _parse_agent(agent)
    with errors_as_exit():
        candidates = list_resume_candidates(kind, os.path.abspath(path or os.getcwd()))
    if not candidates:
        rprint("[dim]No conversations to resume[/dim]")
        return
    console.print(_candidates_table(candidates))
