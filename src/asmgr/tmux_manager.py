"""
tmux driver for asmgr.

Every instance gets its own tmux session named "<prefix>-<id>"; window 0
runs the agent and further windows are followed tabs.

Structurally required operations (create, spawn, respawn, attach, capture,
send) raise MuxAbsentError when the target is gone and MuxIOError when tmux
itself failed or timed out. Advisory operations (options, hooks, bindings,
resizes, status bar) log and return False.
"""

from typing import Dict, List, Optional

from .agents import AgentCommand
from .exceptions import InvariantViolationError, MuxAbsentError, MuxIOError
from .logging_config import get_logger
from .models import WindowInfo
from .protocols import TmuxInterface
from .settings import APP_PREFIX, MuxSettings, get_app_command, is_managed_session
from .status_bar import STATUS_STYLE, build_status_format

logger = get_logger("tmux_manager")

# tmux format that is true only inside sessions we manage
MANAGED_SESSION_CONDITION = f"#{{m:{APP_PREFIX}-*,#{{session_name}}}}"

REFRESH_HOOKS = ("window-linked", "window-unlinked", "session-window-changed")
FOCUS_HOOKS = ("client-focus-in", "pane-focus-in")


class TmuxManager:
    """Drives tmux for instance sessions.

    All operations take the session name explicitly; one manager serves
    every instance in the project.
    """

    def __init__(
        self,
        tmux: Optional[TmuxInterface] = None,
        settings: Optional[MuxSettings] = None,
        app_command: Optional[str] = None,
    ):
        """Initialize the manager.

        Args:
            tmux: TmuxInterface implementation (defaults to RealTmux)
            settings: Timeouts and session defaults
            app_command: Command tmux hooks run to call back into asmgr
        """
        self.settings = settings or MuxSettings()
        if tmux is None:
            from .implementations import RealTmux
            tmux = RealTmux(timeout=self.settings.timeout)
        self.tmux = tmux
        self.app_command = app_command or get_app_command()

    # -- failures ------------------------------------------------------

    def _failure(self, session: str, command: List[str], window: Optional[int] = None) -> Exception:
        """Classify a failed call as Absent (target gone) or IOFailure."""
        if not self.tmux.has_session(session):
            return MuxAbsentError(session)
        if window is not None:
            windows = self.tmux.list_windows(session)
            if windows is not None and all(w.index != window for w in windows):
                return MuxAbsentError(f"{session}:{window}")
        return MuxIOError(command)

    # -- sessions ------------------------------------------------------

    def session_exists(self, session: str) -> bool:
        return self.tmux.has_session(session)

    def list_managed_sessions(self) -> List[str]:
        """Sessions on the server that carry our prefix."""
        return [s for s in self.tmux.list_sessions() if is_managed_session(s)]

    def ensure_session(
        self,
        session: str,
        cwd: str,
        command: AgentCommand,
        env: Optional[Dict[str, str]] = None,
        window_name: Optional[str] = None,
    ) -> bool:
        """Create the session unless it already exists.

        Window 0 starts in cwd running command. A fresh session also gets the
        session options, hooks and key bindings.

        Returns:
            True if the session was created, False if it already existed

        Raises:
            MuxIOError: If tmux could not create the session
        """
        if self.tmux.has_session(session):
            return False

        shell = command.shell if command else None
        if not self.tmux.new_session(session, cwd=cwd or None, command=shell,
                                     window_name=window_name, env=env):
            if self.tmux.has_session(session):
                return False
            raise MuxIOError(["new-session", "-d", "-s", session, "-c", cwd or "."])

        logger.info("Created tmux session %s in %s", session, cwd)
        self.configure_session(session)
        self.set_window_options(session, 0)
        return True

    def configure_session(self, session: str) -> bool:
        """Session options, resize/refresh hooks and tab key bindings."""
        ok = True
        options = [
            ("history-limit", str(self.settings.history_limit)),
            ("mouse", "on"),
            ("window-size", "largest"),
            ("aggressive-resize", "on"),
        ]
        for option, value in options:
            ok &= self.tmux.set_option(session, option, value)
        ok &= self.tmux.set_option(None, "focus-events", "on", server=True)

        for hook in FOCUS_HOOKS:
            ok &= self.tmux.set_hook(session, hook, "resize-window -A")
        refresh = f"run-shell '{self.app_command} refresh-status {session}'"
        for hook in REFRESH_HOOKS:
            ok &= self.tmux.set_hook(session, hook, refresh)

        ok &= self.install_tab_bindings()
        if not ok:
            logger.warning("Some tmux options could not be applied to %s", session)
        return ok

    def install_tab_bindings(self) -> bool:
        """Alt-Left/Alt-Right switch tabs, Ctrl-Y toggles auto-approve.

        Bindings are server-wide, so each one only acts inside our sessions
        and passes the key through elsewhere.
        """
        toggle = f"run-shell '{self.app_command} yolo #{{session_name}} #{{window_index}}'"
        bindings = {
            "M-Left": ("previous-window", "send-keys M-Left"),
            "M-Right": ("next-window", "send-keys M-Right"),
            "C-y": (toggle, "send-keys C-y"),
        }
        ok = True
        for key, (managed, other) in bindings.items():
            ok &= self.tmux.bind_key(key, ["if-shell", "-F", MANAGED_SESSION_CONDITION, managed, other])
        return ok

    def install_detach_binding(self, width: int, height: int) -> bool:
        """Bind Ctrl-Q to resize the window to the preview geometry, then detach.

        The next capture then shows exactly what the preview pane can fit.
        """
        managed = f"resize-window -x {width} -y {height} ; detach-client"
        return self.tmux.bind_key(
            "C-q", ["if-shell", "-F", MANAGED_SESSION_CONDITION, managed, "detach-client"]
        )

    def kill_session(self, session: str) -> bool:
        """Kill the session. An absent session is not an error.

        Returns:
            True if a session was killed
        """
        if not self.tmux.has_session(session):
            return False
        if self.tmux.kill_session(session):
            logger.info("Killed tmux session %s", session)
            return True
        if not self.tmux.has_session(session):
            return False
        raise MuxIOError(["kill-session", "-t", session])

    def list_windows(self, session: str) -> List[WindowInfo]:
        """Windows of the session in index order.

        Raises:
            MuxAbsentError: If the session doesn't exist
            MuxIOError: If tmux failed
        """
        windows = self.tmux.list_windows(session)
        if windows is None:
            raise self._failure(session, ["list-windows", "-t", session])
        return sorted(windows, key=lambda w: w.index)

    # -- windows -------------------------------------------------------

    def set_window_options(self, session: str, window: int) -> bool:
        """Keep dead panes around (so tabs keep their slot) and fixed names."""
        ok = self.tmux.set_option(session, "remain-on-exit", "on", window=window)
        ok &= self.tmux.set_option(session, "automatic-rename", "off", window=window)
        return ok

    def spawn_window(self, session: str, name: str, command: AgentCommand) -> int:
        """Open a new window running command.

        Returns:
            The new window's index

        Raises:
            MuxAbsentError: If the session doesn't exist
            MuxIOError: If tmux failed
        """
        shell = command.shell if command else None
        index = self.tmux.new_window(session, name, command=shell, cwd=command.cwd or None)
        if index is None:
            raise self._failure(session, ["new-window", "-t", session, "-n", name])
        self.set_window_options(session, index)
        logger.info("Spawned window %s:%d (%s)", session, index, name)
        return index

    def respawn_window(self, session: str, window: int, command: AgentCommand) -> None:
        """Replace whatever runs in a window with command, keeping the slot.

        Raises:
            MuxAbsentError: If the session or window doesn't exist
            MuxIOError: If tmux failed
        """
        shell = command.shell if command else None
        if not self.tmux.respawn_pane(session, window, command=shell, cwd=command.cwd or None):
            raise self._failure(session, ["respawn-pane", "-k", "-t", f"{session}:{window}"], window)
        logger.info("Respawned %s:%d", session, window)

    def close_window(self, session: str, window: int) -> None:
        """Close a followed window.

        Raises:
            InvariantViolationError: For window 0, which only dies with the session
            MuxAbsentError: If the session or window doesn't exist
        """
        if window == 0:
            raise InvariantViolationError("window 0 is the agent window and cannot be closed")
        if not self.tmux.kill_window(session, window):
            raise self._failure(session, ["kill-window", "-t", f"{session}:{window}"], window)

    def stop_window(self, session: str, window: int) -> None:
        """Interrupt and exit a window's process; the dead pane keeps its slot."""
        self.send_key(session, window, "C-c")
        self.send_key(session, window, "C-d")

    def rename_window(self, session: str, window: int, name: str) -> bool:
        return self.tmux.rename_window(session, window, name)

    def select_window(self, session: str, window: int) -> bool:
        return self.tmux.select_window(session, window)

    # -- panes ---------------------------------------------------------

    def capture_pane(self, session: str, window: int, lines: int) -> str:
        """Last lines of a pane, ANSI preserved.

        Raises:
            MuxAbsentError: If the session or window doesn't exist
            MuxIOError: If tmux failed or timed out
        """
        content = self.tmux.capture_pane(session, window, lines)
        if content is None:
            raise self._failure(session, ["capture-pane", "-t", f"{session}:{window}"], window)
        return content

    def send_keys(self, session: str, window: int, text: str) -> None:
        """Type text verbatim into a pane."""
        if not self.tmux.send_keys(session, window, text, literal=True):
            raise self._failure(session, ["send-keys", "-l", "-t", f"{session}:{window}"], window)

    def send_key(self, session: str, window: int, key: str) -> None:
        """Send one named key (e.g. "C-c", "Enter")."""
        if not self.tmux.send_keys(session, window, key, literal=False):
            raise self._failure(session, ["send-keys", "-t", f"{session}:{window}", key], window)

    def send_prompt(self, session: str, window: int, text: str) -> None:
        """Send text followed by Enter in one tmux call."""
        if not self.tmux.paste_text(session, window, text, enter=True):
            raise self._failure(session, ["paste-buffer", "-t", f"{session}:{window}"], window)

    def resize_pane(self, session: str, width: int, height: int) -> bool:
        """Force the current window to width x height cells (advisory)."""
        ok = self.tmux.resize_window(session, width, height)
        if not ok:
            logger.debug("resize of %s to %dx%d failed", session, width, height)
        return ok

    # -- presentation --------------------------------------------------

    def configure_status(self, session: str, left_format: str, style: str = STATUS_STYLE) -> bool:
        """Install the status bar template (advisory)."""
        ok = True
        options = [
            ("status", "on"),
            ("status-style", style),
            ("status-left", left_format),
            ("status-left-length", "500"),
            ("window-status-format", ""),
            ("window-status-current-format", ""),
            ("window-status-separator", ""),
            ("status-format[0]", build_status_format(left_format)),
            ("status-right", ""),
        ]
        for option, value in options:
            ok &= self.tmux.set_option(session, option, value)
        if not ok:
            logger.debug("status bar for %s only partially applied", session)
        return ok

    def attach(self, session: str) -> int:
        """Hand the terminal to tmux; returns once the user detaches.

        Raises:
            MuxAbsentError: If the session doesn't exist
        """
        if not self.tmux.has_session(session):
            raise MuxAbsentError(session)
        return self.tmux.attach(session)
