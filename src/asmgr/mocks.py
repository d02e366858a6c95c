"""
In-memory tmux for unit tests.

MockTmux implements TmuxInterface and records every verb so tests can
assert on what would have been sent to tmux.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .models import WindowInfo


@dataclass
class MockWindow:
    name: str
    command: Optional[str] = None
    cwd: Optional[str] = None
    dead: bool = False
    content: str = ""
    options: Dict[str, str] = field(default_factory=dict)


@dataclass
class MockSession:
    windows: Dict[int, MockWindow] = field(default_factory=dict)
    active: int = 0
    options: Dict[str, str] = field(default_factory=dict)
    hooks: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)


class MockTmux:
    """Mock implementation of TmuxInterface for testing"""

    def __init__(self):
        self.sessions: Dict[str, MockSession] = {}
        self.sent_keys: List[Tuple[str, int, str, bool]] = []
        self.pasted: List[Tuple[str, int, str, bool]] = []
        self.respawned: List[Tuple[str, int, Optional[str]]] = []
        self.bindings: Dict[str, List[str]] = {}
        self.server_options: Dict[str, str] = {}
        self.resizes: List[Tuple[str, Optional[int], int, int]] = []
        self.attached: List[str] = []
        self.captures: List[Tuple[str, int, int]] = []
        self.list_window_calls: List[str] = []
        # Verb names that should fail (return False/None), for error paths
        self.fail: Set[str] = set()

    # -- test helpers --------------------------------------------------

    def set_pane_content(self, session: str, window: int, content: str) -> None:
        self.sessions[session].windows[window].content = content

    def set_window_dead(self, session: str, window: int, dead: bool = True) -> None:
        self.sessions[session].windows[window].dead = dead

    def set_active_window(self, session: str, window: int) -> None:
        self.sessions[session].active = window

    def window(self, session: str, window: int) -> MockWindow:
        return self.sessions[session].windows[window]

    # -- TmuxInterface -------------------------------------------------

    def has_session(self, session: str) -> bool:
        return session in self.sessions

    def list_sessions(self) -> List[str]:
        return list(self.sessions)

    def new_session(self, session: str, cwd: Optional[str] = None,
                    command: Optional[str] = None, window_name: Optional[str] = None,
                    env: Optional[Dict[str, str]] = None) -> bool:
        if "new_session" in self.fail or session in self.sessions:
            return False
        self.sessions[session] = MockSession(
            windows={0: MockWindow(name=window_name or "bash", command=command, cwd=cwd)},
            env=dict(env or {}),
        )
        return True

    def kill_session(self, session: str) -> bool:
        if "kill_session" in self.fail or session not in self.sessions:
            return False
        del self.sessions[session]
        return True

    def new_window(self, session: str, name: str, command: Optional[str] = None,
                   cwd: Optional[str] = None) -> Optional[int]:
        if "new_window" in self.fail or session not in self.sessions:
            return None
        sess = self.sessions[session]
        index = max(sess.windows) + 1 if sess.windows else 0
        sess.windows[index] = MockWindow(name=name, command=command, cwd=cwd)
        return index

    def kill_window(self, session: str, window: int) -> bool:
        if "kill_window" in self.fail:
            return False
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return False
        del sess.windows[window]
        if not sess.windows:
            del self.sessions[session]
        elif sess.active == window:
            sess.active = min(sess.windows)
        return True

    def rename_window(self, session: str, window: int, name: str) -> bool:
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return False
        sess.windows[window].name = name
        return True

    def select_window(self, session: str, window: int) -> bool:
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return False
        sess.active = window
        return True

    def list_windows(self, session: str) -> Optional[List[WindowInfo]]:
        self.list_window_calls.append(session)
        if "list_windows" in self.fail:
            return None
        sess = self.sessions.get(session)
        if sess is None:
            return None
        return [
            WindowInfo(index=i, name=w.name, active=(i == sess.active), dead=w.dead)
            for i, w in sorted(sess.windows.items())
        ]

    def respawn_pane(self, session: str, window: int, command: Optional[str] = None,
                     cwd: Optional[str] = None) -> bool:
        if "respawn_pane" in self.fail:
            return False
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return False
        win = sess.windows[window]
        win.command = command
        if cwd:
            win.cwd = cwd
        win.dead = False
        win.content = ""
        self.respawned.append((session, window, command))
        return True

    def capture_pane(self, session: str, window: int, lines: int = 50) -> Optional[str]:
        self.captures.append((session, window, lines))
        if "capture_pane" in self.fail:
            return None
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return None
        content_lines = sess.windows[window].content.split("\n")
        return "\n".join(content_lines[-lines:])

    def send_keys(self, session: str, window: int, keys: str, literal: bool = True) -> bool:
        if "send_keys" in self.fail:
            return False
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return False
        self.sent_keys.append((session, window, keys, literal))
        return True

    def paste_text(self, session: str, window: int, text: str, enter: bool = True) -> bool:
        if "paste_text" in self.fail:
            return False
        sess = self.sessions.get(session)
        if sess is None or window not in sess.windows:
            return False
        self.pasted.append((session, window, text, enter))
        return True

    def set_option(self, session: Optional[str], option: str, value: str,
                   window: Optional[int] = None, server: bool = False) -> bool:
        if "set_option" in self.fail:
            return False
        if server:
            self.server_options[option] = value
            return True
        sess = self.sessions.get(session)
        if sess is None:
            return False
        if window is not None:
            if window not in sess.windows:
                return False
            sess.windows[window].options[option] = value
        else:
            sess.options[option] = value
        return True

    def set_hook(self, session: str, hook: str, command: str) -> bool:
        sess = self.sessions.get(session)
        if "set_hook" in self.fail or sess is None:
            return False
        sess.hooks[hook] = command
        return True

    def bind_key(self, key: str, command: List[str]) -> bool:
        if "bind_key" in self.fail:
            return False
        self.bindings[key] = list(command)
        return True

    def resize_window(self, session: str, width: int, height: int,
                      window: Optional[int] = None) -> bool:
        if "resize_window" in self.fail or session not in self.sessions:
            return False
        self.resizes.append((session, window, width, height))
        return True

    def attach(self, session: str) -> int:
        self.attached.append(session)
        return 0 if session in self.sessions else 1
