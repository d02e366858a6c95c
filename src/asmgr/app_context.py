"""
Application context: the active project and its lock.

The active project id and its advisory lock are the only process-wide
state. AppContext is built explicitly at startup, handed to whatever needs
it, and closed on shutdown (or quiesced before the process is replaced).
"""

from typing import Optional

from .exceptions import AsmgrError, LockHeldError
from .launcher import AgentLauncher
from .logging_config import get_logger
from .models import Project
from .reconciler import Reconciler
from .session_manager import SessionManager
from .settings import DEFAULT_PROJECT_ID, TickSettings, load_settings
from .storage import Storage
from .tmux_manager import TmuxManager

logger = get_logger("app_context")

_ACTIVE = object()


class AppContext:
    """The active project with everything that operates on it."""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        tmux_manager: Optional[TmuxManager] = None,
        tick_settings: Optional[TickSettings] = None,
    ):
        """Initialize without taking any lock; call open() next.

        Args:
            storage: Persistence store (defaults to the config root)
            tmux_manager: Optional TmuxManager for dependency injection (testing)
            tick_settings: Tick period and capture depth
        """
        loaded_tick, mux_settings = load_settings()
        self.storage = storage or Storage()
        self.tmux = tmux_manager or TmuxManager(settings=mux_settings)
        self.tick_settings = tick_settings or loaded_tick
        self.project_id: Optional[str] = None
        self.sessions: Optional[SessionManager] = None
        self.launcher: Optional[AgentLauncher] = None
        self.reconciler: Optional[Reconciler] = None
        self._locked = False

    @property
    def is_open(self) -> bool:
        return self._locked

    @property
    def project_label(self) -> str:
        return self.project_id or DEFAULT_PROJECT_ID

    def open(self, project_id=_ACTIVE) -> "AppContext":
        """Lock a project and load its state.

        Args:
            project_id: Project to open; defaults to the stored active project.
                None opens the default namespace.

        Raises:
            LockHeldError: If another live process has the project open
            NotFoundError: If the project doesn't exist
        """
        if project_id is _ACTIVE:
            project_id, _ = self.storage.load_projects()
        if project_id:
            self.storage.get_project(project_id)

        self.storage.lock_project(project_id)
        self._locked = True
        self.project_id = project_id
        try:
            self._load()
        except Exception:
            self.close()
            raise
        logger.info("Opened project %s", self.project_label)
        return self

    def _load(self) -> None:
        self.sessions = SessionManager(self.storage, self.project_id)
        self.launcher = AgentLauncher(self.sessions, self.tmux)
        self.reconciler = Reconciler(self.sessions, self.tmux, self.tick_settings.capture_lines)

    def quiesce(self) -> None:
        """Save settings and release the lock (e.g. before exec-replacing the process)."""
        if self.sessions is not None:
            try:
                self.sessions.save_settings()
            except AsmgrError as e:
                logger.warning("Could not save settings: %s", e)
        if self._locked:
            self.storage.unlock_project(self.project_id)
            self._locked = False

    def close(self) -> None:
        self.quiesce()

    def __enter__(self) -> "AppContext":
        if not self._locked:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def switch_project(self, project_id: Optional[str]) -> None:
        """Make another project active.

        The current lock is released before the new one is taken. If the new
        project can't be locked, the previous one is re-opened and the error
        propagates.
        """
        if project_id:
            self.storage.get_project(project_id)
        previous = self.project_id
        self.quiesce()
        try:
            self.storage.lock_project(project_id)
        except LockHeldError:
            self.storage.lock_project(previous)
            self._locked = True
            raise
        self._locked = True
        self.project_id = project_id
        self._load()
        self.storage.set_active_project(project_id)
        logger.info("Switched to project %s", self.project_label)

    def add_project(self, name: str) -> Project:
        return self.storage.add_project(name)

    def remove_project(self, project_id: str) -> None:
        """Delete a project that has no running instances and is not active.

        Raises:
            AsmgrError: If the project is active or any of its instances runs
        """
        if project_id == self.project_id:
            raise AsmgrError("cannot remove the active project; switch to another one first")
        instances, _, _ = self.storage.load_all(project_id)
        running = [inst for inst in instances if self.tmux.session_exists(inst.session_name)]
        if running:
            names = ", ".join(inst.name for inst in running)
            raise AsmgrError(f"project has running sessions: {names}")
        self.storage.remove_project(project_id)

    def import_default_sessions(self) -> int:
        """Move sessions from the default namespace into the active project."""
        if not self.project_id:
            raise AsmgrError("no project is active")
        count = self.storage.import_default_into(self.project_id)
        if count:
            self.sessions.reload()
        return count
