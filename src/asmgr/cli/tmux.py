"""
Commands tmux calls back into: refresh-status (window hooks) and yolo
(Ctrl-Y binding).

These run while another asmgr may hold the project lock, so they look the
session up across all projects without locking. Output goes to stderr only
on error; tmux shows nothing otherwise.
"""

from typing import Annotated, Optional

import typer

from ..exceptions import AsmgrError
from ..launcher import AgentLauncher, refresh_status_bar
from ..logging_config import get_logger
from ..session_manager import SessionManager
from ..settings import is_managed_session, load_settings
from ..storage import Storage
from ..tmux_manager import TmuxManager
from ._shared import app

logger = get_logger("cli.tmux")


def _tmux_manager() -> TmuxManager:
    _, mux_settings = load_settings()
    return TmuxManager(settings=mux_settings)


@app.command("refresh-status", hidden=True)
def refresh_status(session: Annotated[str, typer.Argument(help="tmux session name")]):
    """Re-render the tmux status bar of a session."""
    if not is_managed_session(session):
        return
    found = Storage().find_instance_by_session(session)
    if found is None:
        logger.debug("refresh-status: %s is not a known session", session)
        return
    _, inst = found
    refresh_status_bar(_tmux_manager(), inst)


@app.command(hidden=True)
def yolo(
    session: Annotated[str, typer.Argument(help="tmux session name")],
    window: Annotated[Optional[int], typer.Argument(help="Window index")] = 0,
):
    """Toggle auto-approve for a window of a session."""
    storage = Storage()
    found = storage.find_instance_by_session(session)
    if found is None:
        typer.echo(f"Error: session not found: {session}", err=True)
        raise typer.Exit(code=1)
    project_id, inst = found
    try:
        sessions = SessionManager(storage, project_id)
        launcher = AgentLauncher(sessions, _tmux_manager())
        enabled = launcher.toggle_auto_approve(sessions.get_instance(inst.id), window or 0)
    except AsmgrError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    logger.info("yolo %s:%s -> %s", session, window, enabled)
