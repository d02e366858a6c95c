"""
Protocol definitions for external dependencies.

These interfaces allow dependency injection for testing, enabling us to
swap the real tmux implementation (libtmux plus bounded tmux subprocess
calls) with an in-memory mock in tests.

Methods report failure through their return value (False / None);
TmuxManager turns that into Absent vs IOFailure exceptions.
"""

from typing import Dict, List, Optional, Protocol, runtime_checkable

from .models import WindowInfo


@runtime_checkable
class TmuxInterface(Protocol):
    """Interface for tmux operations"""

    def has_session(self, session: str) -> bool:
        """Check if a tmux session exists."""
        ...

    def list_sessions(self) -> List[str]:
        """Names of all sessions on the server (empty if no server)."""
        ...

    def new_session(self, session: str, cwd: Optional[str] = None,
                    command: Optional[str] = None, window_name: Optional[str] = None,
                    env: Optional[Dict[str, str]] = None) -> bool:
        """Create a detached session whose window 0 runs command in cwd.

        Returns:
            True if created, False if it already existed or creation failed
        """
        ...

    def kill_session(self, session: str) -> bool:
        """Kill an entire tmux session."""
        ...

    def new_window(self, session: str, name: str, command: Optional[str] = None,
                   cwd: Optional[str] = None) -> Optional[int]:
        """Create a new window in a session.

        Returns:
            Window index if successful, None otherwise
        """
        ...

    def kill_window(self, session: str, window: int) -> bool:
        """Kill a tmux window."""
        ...

    def rename_window(self, session: str, window: int, name: str) -> bool:
        """Rename a tmux window."""
        ...

    def select_window(self, session: str, window: int) -> bool:
        """Make a window the session's current window."""
        ...

    def list_windows(self, session: str) -> Optional[List[WindowInfo]]:
        """List windows in a session.

        Returns:
            WindowInfo per window, or None if the query failed
        """
        ...

    def respawn_pane(self, session: str, window: int, command: Optional[str] = None,
                     cwd: Optional[str] = None) -> bool:
        """Kill whatever runs in the window's pane and start command in place."""
        ...

    def capture_pane(self, session: str, window: int, lines: int = 50) -> Optional[str]:
        """Capture the last lines of a pane, ANSI sequences preserved.

        Returns:
            Pane content as string, or None on failure
        """
        ...

    def send_keys(self, session: str, window: int, keys: str, literal: bool = True) -> bool:
        """Send keys to a pane.

        Args:
            session: tmux session name
            window: window index
            keys: text (literal=True) or a key name such as "C-c"
            literal: send the text verbatim instead of as key names

        Returns:
            True if successful, False otherwise
        """
        ...

    def paste_text(self, session: str, window: int, text: str, enter: bool = True) -> bool:
        """Paste text into a pane and optionally press Enter, as one tmux call."""
        ...

    def set_option(self, session: Optional[str], option: str, value: str,
                   window: Optional[int] = None, server: bool = False) -> bool:
        """Set a session, window (window given) or server (server=True) option."""
        ...

    def set_hook(self, session: str, hook: str, command: str) -> bool:
        """Install a session hook."""
        ...

    def bind_key(self, key: str, command: List[str]) -> bool:
        """Bind a key in the root table (no prefix) to a tmux command."""
        ...

    def resize_window(self, session: str, width: int, height: int,
                      window: Optional[int] = None) -> bool:
        """Force a window to a fixed cell geometry."""
        ...

    def attach(self, session: str) -> int:
        """Attach the controlling terminal and block until detach.

        Returns:
            tmux's exit code
        """
        ...
