"""
Real implementation of TmuxInterface.

Session and window lifecycle go through libtmux; everything libtmux doesn't
model (list-windows with pane_dead, respawn-pane, hooks, key bindings,
captures, pastes) is a bounded tmux subprocess call via tmux_utils.
"""

import os
import subprocess
from typing import Dict, List, Optional

import libtmux
from libtmux._internal.query_list import ObjectDoesNotExist
from libtmux.exc import LibTmuxException

from .logging_config import get_logger
from .models import WindowInfo
from .settings import get_tmux_socket
from .tmux_utils import (
    DEFAULT_TIMEOUT,
    get_tmux_pane_content,
    paste_text_to_tmux_window,
    run_tmux,
    tmux_command,
)

logger = get_logger("implementations")

# Tab-separated so window names containing ':' parse cleanly
LIST_WINDOWS_FORMAT = "#{window_index}\t#{window_active}\t#{pane_dead}\t#{window_name}"


class RealTmux:
    """Production implementation of TmuxInterface."""

    def __init__(self, socket_name: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        """Initialize with optional socket name for test isolation.

        If no socket_name is provided, checks ASMGR_TMUX_SOCKET env var. The
        same socket is used for libtmux and for every subprocess verb.
        """
        self._socket_name = socket_name or get_tmux_socket()
        self._server: Optional[libtmux.Server] = None
        self.timeout = timeout

    @property
    def server(self) -> libtmux.Server:
        """Lazy-load the tmux server connection."""
        if self._server is None:
            if self._socket_name:
                self._server = libtmux.Server(socket_name=self._socket_name)
            else:
                self._server = libtmux.Server()
        return self._server

    def _get_session(self, session: str) -> Optional[libtmux.Session]:
        try:
            return self.server.sessions.get(session_name=session)
        except (LibTmuxException, ObjectDoesNotExist):
            return None

    def _get_window(self, session: str, window: int) -> Optional[libtmux.Window]:
        sess = self._get_session(session)
        if sess is None:
            return None
        try:
            return sess.windows.get(window_index=str(window))
        except (LibTmuxException, ObjectDoesNotExist):
            return None

    def _run(self, args: List[str]) -> bool:
        result = run_tmux(args, timeout=self.timeout, socket=self._socket_name)
        if result is None:
            return False
        if result.returncode != 0:
            logger.debug("tmux %s -> %s", " ".join(args), result.stderr.strip())
            return False
        return True

    def has_session(self, session: str) -> bool:
        try:
            return self.server.has_session(session)
        except LibTmuxException:
            return False

    def list_sessions(self) -> List[str]:
        try:
            return [s.session_name for s in self.server.sessions]
        except LibTmuxException:
            return []

    def new_session(self, session: str, cwd: Optional[str] = None,
                    command: Optional[str] = None, window_name: Optional[str] = None,
                    env: Optional[Dict[str, str]] = None) -> bool:
        if self.has_session(session):
            return False
        kwargs: Dict = {"session_name": session, "attach": False}
        if cwd:
            kwargs["start_directory"] = cwd
        if command:
            kwargs["window_command"] = command
        if window_name:
            kwargs["window_name"] = window_name
        if env:
            kwargs["environment"] = env
        try:
            self.server.new_session(**kwargs)
            return True
        except LibTmuxException as e:
            logger.warning("new-session %s failed: %s", session, e)
            return False

    def kill_session(self, session: str) -> bool:
        try:
            sess = self._get_session(session)
            if sess is None:
                return False
            sess.kill()
            return True
        except LibTmuxException:
            return False

    def new_window(self, session: str, name: str, command: Optional[str] = None,
                   cwd: Optional[str] = None) -> Optional[int]:
        try:
            sess = self._get_session(session)
            if sess is None:
                return None

            kwargs: Dict = {"window_name": name, "attach": False}
            if cwd:
                kwargs["start_directory"] = cwd
            if command:
                kwargs["window_shell"] = command

            window = sess.new_window(**kwargs)
            return int(window.window_index)
        except (LibTmuxException, ValueError) as e:
            logger.warning("new-window in %s failed: %s", session, e)
            return None

    def kill_window(self, session: str, window: int) -> bool:
        try:
            win = self._get_window(session, window)
            if win is None:
                return False
            win.kill()
            return True
        except LibTmuxException:
            return False

    def rename_window(self, session: str, window: int, name: str) -> bool:
        return self._run(["rename-window", "-t", f"{session}:{window}", name])

    def select_window(self, session: str, window: int) -> bool:
        return self._run(["select-window", "-t", f"{session}:{window}"])

    def list_windows(self, session: str) -> Optional[List[WindowInfo]]:
        result = run_tmux(["list-windows", "-t", session, "-F", LIST_WINDOWS_FORMAT],
                          timeout=self.timeout, socket=self._socket_name)
        if result is None or result.returncode != 0:
            return None

        windows = []
        for line in result.stdout.splitlines():
            parts = line.split("\t", 3)
            if len(parts) < 4:
                continue
            try:
                index = int(parts[0])
            except ValueError:
                continue
            windows.append(WindowInfo(
                index=index,
                name=parts[3],
                active=parts[1] == "1",
                dead=parts[2] == "1",
            ))
        return windows

    def respawn_pane(self, session: str, window: int, command: Optional[str] = None,
                     cwd: Optional[str] = None) -> bool:
        args = ["respawn-pane", "-k", "-t", f"{session}:{window}"]
        if cwd:
            args += ["-c", cwd]
        if command:
            args.append(command)
        return self._run(args)

    def capture_pane(self, session: str, window: int, lines: int = 50) -> Optional[str]:
        return get_tmux_pane_content(session, window, lines=lines, timeout=self.timeout,
                                     socket=self._socket_name)

    def send_keys(self, session: str, window: int, keys: str, literal: bool = True) -> bool:
        args = ["send-keys", "-t", f"{session}:{window}"]
        if literal:
            args.append("-l")
        args.append(keys)
        return self._run(args)

    def paste_text(self, session: str, window: int, text: str, enter: bool = True) -> bool:
        return paste_text_to_tmux_window(session, window, text, send_enter=enter,
                                         timeout=self.timeout, socket=self._socket_name)

    def set_option(self, session: Optional[str], option: str, value: str,
                   window: Optional[int] = None, server: bool = False) -> bool:
        if server:
            return self._run(["set-option", "-s", option, value])
        if window is not None:
            return self._run(["set-option", "-w", "-t", f"{session}:{window}", option, value])
        return self._run(["set-option", "-t", session, option, value])

    def set_hook(self, session: str, hook: str, command: str) -> bool:
        return self._run(["set-hook", "-t", session, hook, command])

    def bind_key(self, key: str, command: List[str]) -> bool:
        return self._run(["bind-key", "-n", key] + list(command))

    def resize_window(self, session: str, width: int, height: int,
                      window: Optional[int] = None) -> bool:
        target = session if window is None else f"{session}:{window}"
        return self._run(["resize-window", "-t", target, "-x", str(width), "-y", str(height)])

    def attach(self, session: str) -> int:
        env = dict(os.environ)
        # Allow attaching from inside another tmux client
        env.pop("TMUX", None)
        cmd = tmux_command("attach-session", "-t", session, socket=self._socket_name)
        return subprocess.run(cmd, env=env).returncode
