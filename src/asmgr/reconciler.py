"""
Reconciliation of the catalog against tmux.

One pass per instance costs a single list-windows call plus, when asked,
a single capture of the window the user is looking at:

- no session (or no windows) -> Stopped, derived fields cleared
- Running needs at least one live pane
- followed windows tmux no longer has are dropped and the catalog saved
- the displayed window's capture feeds the activity classifier

A tmux I/O failure leaves the cached state untouched; the next pass tries
again.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .activity import classify
from .agents import AgentKind
from .exceptions import MuxAbsentError, MuxIOError, PersistenceError
from .launcher import refresh_status_bar
from .logging_config import get_logger, get_structured_logger
from .models import Activity, Instance, Status, WindowInfo
from .session_manager import SessionManager
from .status_patterns import LineFilter, get_line_filter
from .tmux_manager import TmuxManager

logger = get_logger("reconciler")
events = get_structured_logger("reconciler")


@dataclass
class ReconcileResult:
    """What one pass observed for one instance."""

    status: Status
    changed: bool = False
    dropped_windows: int = 0
    content: Optional[str] = None
    io_failure: bool = False


class Reconciler:
    """Brings instances' derived state in line with tmux."""

    def __init__(self, sessions: SessionManager, tmux_manager: TmuxManager, capture_lines: int = 50):
        self.sessions = sessions
        self.tmux = tmux_manager
        self.capture_lines = capture_lines
        self._filters: Dict[AgentKind, Optional[LineFilter]] = {}

    def line_filter(self, kind: AgentKind) -> Optional[LineFilter]:
        """Line filter for a kind, loaded from config once per reconciler."""
        if kind not in self._filters:
            self._filters[kind] = get_line_filter(kind)
        return self._filters[kind]

    def reconcile(self, instance: Instance, capture: bool = True,
                  lines: Optional[int] = None) -> ReconcileResult:
        """Refresh status, tabs and (optionally) activity for one instance.

        Args:
            instance: Instance to update in place
            capture: Capture the displayed window and classify it
            lines: Capture depth (defaults to capture_lines)

        Returns:
            ReconcileResult; content holds the capture when one was taken
        """
        previous = (instance.status, instance.activity, instance.last_line)
        session = instance.session_name

        try:
            windows = self.tmux.list_windows(session)
        except MuxAbsentError:
            windows = []
        except MuxIOError as e:
            logger.debug("list-windows failed for %s: %s", session, e)
            return ReconcileResult(status=instance.status, io_failure=True)

        if not windows:
            instance.clear_derived()
            return ReconcileResult(status=Status.STOPPED, changed=previous[0] != Status.STOPPED)

        live = [w for w in windows if not w.dead]
        instance.status = Status.RUNNING if live else Status.STOPPED
        instance.window_names = {w.index: w.name for w in windows}

        dropped = self._drop_missing_windows(instance, windows)

        by_index = {w.index: w for w in windows}
        for fw in instance.followed_windows:
            # Still listed when dropping it could not be saved
            win = by_index.get(fw.index)
            fw.dead = win.dead if win is not None else True

        active = next((w for w in windows if w.active), windows[0])
        instance.displayed_window = active.index

        content = None
        if capture:
            content = self._classify_window(instance, active.index, lines or self.capture_lines)
            if content is None:
                return ReconcileResult(status=instance.status, dropped_windows=dropped, io_failure=True,
                                       changed=previous != (instance.status, instance.activity, instance.last_line))

        current = (instance.status, instance.activity, instance.last_line)
        return ReconcileResult(
            status=instance.status,
            changed=previous != current or dropped > 0,
            dropped_windows=dropped,
            content=content,
        )

    def _drop_missing_windows(self, instance: Instance, windows: List[WindowInfo]) -> int:
        existing = {w.index for w in windows}
        stale = [fw for fw in instance.followed_windows if fw.index not in existing]
        if not stale:
            return 0
        kept = [fw for fw in instance.followed_windows if fw.index in existing]
        removed = instance.followed_windows
        instance.followed_windows = kept
        try:
            self.sessions.update_instance(instance)
        except PersistenceError as e:
            instance.followed_windows = removed
            logger.warning("Could not save after dropping closed tabs of %s: %s", instance.name, e)
            return 0
        events.info("dropped closed tabs", instance_id=instance.id, count=len(stale))
        refresh_status_bar(self.tmux, instance, windows)
        return len(stale)

    def _classify_window(self, instance: Instance, window: int, lines: int) -> Optional[str]:
        """Capture a window and store its classification; None on failure."""
        try:
            content = self.tmux.capture_pane(instance.session_name, window, lines)
        except (MuxAbsentError, MuxIOError) as e:
            logger.debug("capture failed for %s:%d: %s", instance.session_name, window, e)
            return None

        fw = instance.get_followed(window) if window != 0 else None
        if window == 0:
            kind = instance.agent
        elif fw is not None:
            kind = fw.agent
        else:
            kind = AgentKind.TERMINAL

        result = classify(content, kind, self.line_filter(kind))
        instance.activity = result.activity if instance.is_running else Activity.IDLE
        instance.last_line = result.last_line
        if fw is not None:
            fw.activity = instance.activity
            fw.last_line = result.last_line
        return content
