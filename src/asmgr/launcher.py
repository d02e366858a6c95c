"""
Lifecycle of agent instances: create, start, stop, attach, tabs.

Every operation that touches tmux runs the tmux side first and persists
afterwards. If persisting fails, the tmux side is undone where that is
possible (a freshly created session is killed, a new tab is closed) and
the PersistenceError propagates.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .agents import AgentCommand, AgentKind, REGISTRY, build_argv, build_command, get_agent_config, has_transcripts
from .dependency_check import require_agent
from .exceptions import (
    AsmgrError,
    InvariantViolationError,
    MuxAbsentError,
    MuxError,
    NotFoundError,
    NotRunningError,
    PersistenceError,
)
from .logging_config import get_logger, get_structured_logger
from .models import FollowedWindow, Instance, Status, WindowInfo, new_ulid
from .session_manager import SessionManager
from .status_bar import build_status_left
from .tmux_manager import TmuxManager
from .transcripts import ResumeCandidate, fork_claude_session, list_resume_candidates

logger = get_logger("launcher")
events = get_structured_logger("launcher")

INSTANCE_ENV_VAR = "ASMGR_INSTANCE_ID"
FORKED_NOTES = "Forked session"


@dataclass
class Started:
    """The instance is running."""

    instance: Instance


@dataclass
class NeedsResumeChoice:
    """Transcripts exist for the path; the caller picks one (or none).

    Follow up with start_with_resume(instance, token) or start(instance).
    """

    instance: Instance
    candidates: List[ResumeCandidate] = field(default_factory=list)


CreateOutcome = Union[Started, NeedsResumeChoice]


def followed_command(instance: Instance, fw: FollowedWindow) -> AgentCommand:
    """Command a followed window runs (tabs start in the instance's path)."""
    return build_argv(
        fw.agent,
        custom_command=fw.custom_command,
        auto_yes=fw.auto_yes,
        resume_token=fw.resume_session_id,
        cwd=instance.path,
    )


def refresh_status_bar(tmux: TmuxManager, instance: Instance,
                       windows: Optional[List[WindowInfo]] = None) -> bool:
    """Render an instance's status bar from its live windows (advisory).

    Args:
        tmux: Manager used to query and configure the session
        instance: Instance whose session bar is rendered
        windows: Windows already listed this pass; listed again when omitted
    """
    if windows is None:
        try:
            windows = tmux.list_windows(instance.session_name)
        except MuxError as e:
            logger.debug("No status refresh for %s: %s", instance.session_name, e)
            return False
    auto_yes: Dict[int, bool] = {w.index: instance.window_auto_yes(w.index) for w in windows}
    left = build_status_left(instance.name, windows, auto_yes, instance.color, instance.bg_color)
    return tmux.configure_status(instance.session_name, left)


class AgentLauncher:
    """Starts and stops agent sessions and keeps the catalog in step."""

    def __init__(self, sessions: SessionManager, tmux_manager: Optional[TmuxManager] = None):
        """Initialize the launcher.

        Args:
            sessions: Catalog of the active project
            tmux_manager: Optional TmuxManager for dependency injection (testing)
        """
        self.sessions = sessions
        self.tmux = tmux_manager if tmux_manager else TmuxManager()

    # -- helpers -------------------------------------------------------

    def _is_known(self, instance: Instance) -> bool:
        return any(inst is instance or inst.id == instance.id for inst in self.sessions.instances)

    def _window_command(self, instance: Instance, window: int) -> AgentCommand:
        if window == 0:
            return build_command(instance)
        fw = instance.get_followed(window)
        if fw is None:
            # A window the user opened by hand: give it a shell back
            return AgentCommand(argv=[], cwd=instance.path)
        return followed_command(instance, fw)

    def _persist(self, instance: Instance, undo=None) -> None:
        """Save the catalog; run undo (tmux side) and re-raise on failure."""
        try:
            self.sessions.update_instance(instance)
        except PersistenceError:
            if undo is not None:
                try:
                    undo()
                except AsmgrError as e:
                    logger.warning("Undo after failed save did not complete: %s", e)
            raise

    # -- creation ------------------------------------------------------

    def create(
        self,
        name: str,
        path: str,
        agent: AgentKind = AgentKind.CLAUDE,
        custom_command: str = "",
        auto_yes: bool = False,
        group_id: str = "",
        resume_token: str = "",
        color: str = "",
        bg_color: str = "",
        notes: str = "",
    ) -> CreateOutcome:
        """Create an instance and start it.

        If the agent supports resume, no token was given and transcripts
        exist for the path, nothing is started: NeedsResumeChoice carries
        the candidates and the (not yet saved) instance.

        Raises:
            MissingBinaryError: If the agent is not installed
            MuxIOError: If tmux could not create the session
        """
        name = name.strip()
        if not name:
            raise ValueError("instance name cannot be empty")
        if group_id:
            self.sessions.get_group(group_id)
        require_agent(agent, custom_command)

        instance = Instance(
            id=new_ulid(),
            name=name,
            path=os.path.abspath(os.path.expanduser(path or ".")),
            agent=agent,
            custom_command=custom_command,
            auto_yes=auto_yes,
            group_id=group_id,
            color=color,
            bg_color=bg_color,
            notes=notes,
        )

        if resume_token:
            return Started(self.start_with_resume(instance, resume_token))

        if REGISTRY[agent].supports_resume and has_transcripts(agent, instance.path):
            candidates = list_resume_candidates(agent, instance.path)
            if candidates:
                logger.info("%d resume candidates for %s", len(candidates), instance.path)
                return NeedsResumeChoice(instance=instance, candidates=candidates)

        return Started(self.start(instance))

    def start(self, instance: Instance) -> Instance:
        """Start an instance's session (no-op on tmux if it already exists).

        A new session gets its followed tabs re-spawned; an existing one with
        a dead agent pane gets window 0 respawned. Instances not yet in the
        catalog are added.
        """
        require_agent(instance.agent, instance.custom_command)
        session = instance.session_name
        is_new = not self._is_known(instance)

        created = self.tmux.ensure_session(
            session,
            instance.path,
            build_command(instance),
            env={INSTANCE_ENV_VAR: instance.id},
            window_name=instance.agent.value,
        )
        if created:
            self._restore_tabs(instance)
        else:
            windows = self.tmux.list_windows(session)
            if any(w.index == 0 and w.dead for w in windows):
                self.tmux.respawn_window(session, 0, build_command(instance))

        instance.status = Status.RUNNING

        def undo() -> None:
            if created:
                self.tmux.kill_session(session)
                instance.clear_derived()

        try:
            if is_new:
                self.sessions.add_instance(instance)
            else:
                self.sessions.update_instance(instance)
        except PersistenceError:
            undo()
            raise

        self.refresh_status(instance)
        events.info("started", instance_id=instance.id, name=instance.name, path=instance.path)
        return instance

    def _restore_tabs(self, instance: Instance) -> None:
        """Re-open followed tabs in a freshly created session.

        Tabs that can't be spawned are dropped from the instance.
        """
        kept = []
        for fw in instance.followed_windows:
            try:
                fw.index = self.tmux.spawn_window(
                    instance.session_name, fw.name, followed_command(instance, fw)
                )
                kept.append(fw)
            except MuxError as e:
                logger.warning("Could not restore tab %s of %s: %s", fw.name, instance.name, e)
        instance.followed_windows = kept
        if kept:
            self.tmux.select_window(instance.session_name, 0)

    def start_with_resume(self, instance: Instance, token: str, window: int = 0) -> Instance:
        """Start (or restart in place) an agent resuming a conversation.

        For window 0 of a running instance the pane is respawned in place,
        keeping the other tabs. For a followed window only that window is
        respawned.
        """
        if window != 0:
            return self._resume_followed(instance, token, window)

        config = get_agent_config(instance.agent)
        previous = instance.resume_session_id
        instance.resume_session_id = token if config.supports_resume else ""

        if not self.tmux.session_exists(instance.session_name):
            try:
                return self.start(instance)
            except (AsmgrError, OSError):
                instance.resume_session_id = previous
                raise

        require_agent(instance.agent, instance.custom_command)
        self.tmux.respawn_window(instance.session_name, 0, build_command(instance))
        instance.status = Status.RUNNING

        def undo() -> None:
            instance.resume_session_id = previous

        try:
            if self._is_known(instance):
                self.sessions.update_instance(instance)
            else:
                self.sessions.add_instance(instance)
        except PersistenceError:
            undo()
            raise
        self.refresh_status(instance)
        return instance

    def _resume_followed(self, instance: Instance, token: str, window: int) -> Instance:
        fw = instance.get_followed(window)
        if fw is None:
            raise NotFoundError("window", f"{instance.session_name}:{window}")
        previous = fw.resume_session_id
        fw.resume_session_id = token if get_agent_config(fw.agent).supports_resume else ""

        if self.tmux.session_exists(instance.session_name):
            self.tmux.respawn_window(instance.session_name, window, followed_command(instance, fw))

        def undo() -> None:
            fw.resume_session_id = previous

        try:
            self.sessions.update_instance(instance)
        except PersistenceError:
            undo()
            raise
        return instance

    def parallel_start(self, instance: Instance) -> Instance:
        """Start a copy of an instance, listed right after the original."""
        require_agent(instance.agent, instance.custom_command)
        clone = instance.copy_config(new_ulid())
        session = clone.session_name
        self.tmux.ensure_session(
            session,
            clone.path,
            build_command(clone),
            env={INSTANCE_ENV_VAR: clone.id},
            window_name=clone.agent.value,
        )
        clone.status = Status.RUNNING
        try:
            self.sessions.add_instance(clone, after_id=instance.id)
        except PersistenceError:
            self.tmux.kill_session(session)
            raise
        self.refresh_status(clone)
        events.info("parallel start", instance_id=clone.id, source_id=instance.id)
        return clone

    # -- stopping ------------------------------------------------------

    def stop(self, instance: Instance) -> bool:
        """Kill the instance's session. Followed tabs are remembered.

        Returns:
            True if a session was killed
        """
        killed = self.tmux.kill_session(instance.session_name)
        instance.clear_derived()
        if killed:
            events.info("stopped", instance_id=instance.id, name=instance.name)
        return killed

    def delete(self, instance: Instance) -> None:
        """Stop the instance and remove it from the catalog."""
        self.tmux.kill_session(instance.session_name)
        instance.clear_derived()
        self.sessions.remove_instance(instance.id)
        events.info("deleted", instance_id=instance.id, name=instance.name)

    # -- attach --------------------------------------------------------

    def prepare_attach(self, instance: Instance) -> None:
        """Everything attach does before handing over the terminal."""
        session = instance.session_name
        if not self.tmux.session_exists(session):
            self.start(instance)

        windows = self.tmux.list_windows(session)
        for win in windows:
            if win.dead and (win.active or win.index == 0):
                self.tmux.respawn_window(session, win.index, self._window_command(instance, win.index))

        self.tmux.install_tab_bindings()
        self.tmux.install_detach_binding(
            self.tmux.settings.preview_width, self.tmux.settings.preview_height
        )
        self.refresh_status(instance)

    def attach(self, instance: Instance) -> int:
        """Attach the terminal to the instance's session.

        Blocks until the user detaches; the next tick observes whatever
        happened meanwhile.

        Returns:
            tmux's exit code
        """
        self.prepare_attach(instance)
        logger.debug("Attaching to %s", instance.session_name)
        return self.tmux.attach(instance.session_name)

    # -- tabs ----------------------------------------------------------

    def _require_running(self, instance: Instance) -> None:
        """Raise NotRunningError unless the session has at least one live pane."""
        try:
            windows = self.tmux.list_windows(instance.session_name)
        except MuxAbsentError as e:
            raise NotRunningError(instance.id) from e
        if all(w.dead for w in windows):
            raise NotRunningError(instance.id)

    def new_tab(
        self,
        instance: Instance,
        name: str,
        agent: AgentKind = AgentKind.TERMINAL,
        custom_command: str = "",
        auto_yes: bool = False,
        resume_token: str = "",
        notes: str = "",
    ) -> FollowedWindow:
        """Open a followed window in a running instance.

        Raises:
            NotRunningError: If the instance has no session
            MissingBinaryError: If the tab's agent is not installed
        """
        self._require_running(instance)
        require_agent(agent, custom_command)
        fw = FollowedWindow(
            index=0,
            name=name.strip() or agent.value,
            agent=agent,
            resume_session_id=resume_token if get_agent_config(agent).supports_resume else "",
            auto_yes=auto_yes,
            notes=notes,
            custom_command=custom_command,
        )
        session = instance.session_name
        fw.index = self.tmux.spawn_window(session, fw.name, followed_command(instance, fw))
        instance.followed_windows.append(fw)

        def undo() -> None:
            instance.followed_windows.remove(fw)
            self.tmux.close_window(session, fw.index)

        self._persist(instance, undo)
        self.refresh_status(instance)
        return fw

    def new_forked_tab(self, instance: Instance, name: str, token: str) -> FollowedWindow:
        """Open a tab resuming a forked conversation of the instance's agent."""
        if not get_agent_config(instance.agent).supports_resume:
            raise InvariantViolationError(f"{instance.agent.value} sessions cannot be forked")
        return self.new_tab(
            instance,
            name,
            agent=instance.agent,
            custom_command=instance.custom_command,
            auto_yes=instance.auto_yes,
            resume_token=token,
            notes=FORKED_NOTES,
        )

    def fork_to_tab(self, instance: Instance, name: str) -> FollowedWindow:
        """Fork the instance's current Claude conversation into a new tab."""
        if instance.agent != AgentKind.CLAUDE:
            raise InvariantViolationError("only claude sessions can be forked")
        token = fork_claude_session(instance.resume_session_id, instance.path)
        return self.new_forked_tab(instance, name, token)

    def close_tab(self, instance: Instance, window: int) -> None:
        """Close a followed window and forget it.

        Raises:
            InvariantViolationError: For window 0
        """
        if window == 0:
            raise InvariantViolationError("window 0 is the agent window and cannot be closed")
        fw = instance.get_followed(window)
        if fw is None:
            raise NotFoundError("window", f"{instance.session_name}:{window}")
        try:
            self.tmux.close_window(instance.session_name, window)
        except MuxAbsentError:
            logger.debug("Window %s:%d already gone", instance.session_name, window)

        position = instance.followed_windows.index(fw)
        instance.followed_windows.remove(fw)

        def undo() -> None:
            instance.followed_windows.insert(position, fw)

        try:
            self.sessions.update_instance(instance)
        except PersistenceError:
            undo()
            raise
        self.refresh_status(instance)

    def stop_window(self, instance: Instance, window: int) -> None:
        """Ask a window's process to exit; the dead pane keeps its slot."""
        self._require_running(instance)
        self.tmux.stop_window(instance.session_name, window)

    def select_window(self, instance: Instance, window: int) -> bool:
        ok = self.tmux.select_window(instance.session_name, window)
        if ok:
            instance.displayed_window = window
            self.refresh_status(instance)
        return ok

    # -- catalog toggles -----------------------------------------------

    def toggle_favorite(self, instance: Instance) -> bool:
        return self.sessions.toggle_favorite(instance.id)

    def toggle_auto_approve(self, instance: Instance, window: int = 0) -> bool:
        """Flip auto-approve for window 0 or a followed window.

        Agents with an in-band toggle get the key sent to the pane; agents
        with a launch flag are respawned with the new command (resuming the
        stored conversation).

        Returns:
            The new flag value

        Raises:
            InvariantViolationError: If the agent has no auto-approve mode
        """
        fw = None
        if window == 0:
            kind = instance.agent
        else:
            fw = instance.get_followed(window)
            if fw is None:
                raise NotFoundError("window", f"{instance.session_name}:{window}")
            kind = fw.agent

        config = get_agent_config(kind)
        if not config.supports_auto_approve_toggle:
            raise InvariantViolationError(f"auto-approve is not supported for {kind.value}")

        target = fw if fw is not None else instance
        session = instance.session_name
        running = self.tmux.session_exists(session)

        def apply() -> None:
            if not running:
                return
            if config.in_band_auto_yes_key:
                self.tmux.send_key(session, window, config.in_band_auto_yes_key)
            else:
                self.tmux.respawn_window(session, window, self._window_command(instance, window))

        target.auto_yes = not target.auto_yes
        try:
            apply()
        except MuxError:
            target.auto_yes = not target.auto_yes
            raise

        def undo() -> None:
            target.auto_yes = not target.auto_yes
            apply()

        self._persist(instance, undo)
        if running:
            self.refresh_status(instance)
        logger.info("Auto-approve for %s:%d is now %s", session, window, target.auto_yes)
        return target.auto_yes

    # -- input ---------------------------------------------------------

    def send_prompt(self, instance: Instance, text: str, window: Optional[int] = None) -> None:
        """Type text plus Enter into a pane.

        Raises:
            NotRunningError: If the instance has no session or only dead panes
        """
        self._require_running(instance)
        target = instance.displayed_window if window is None else window
        try:
            self.tmux.send_prompt(instance.session_name, target, text)
        except MuxAbsentError as e:
            raise NotRunningError(instance.id) from e

    def send_keys(self, instance: Instance, keys: str, window: Optional[int] = None) -> None:
        """Send named keys (e.g. "C-c") to a pane."""
        self._require_running(instance)
        target = instance.displayed_window if window is None else window
        self.tmux.send_key(instance.session_name, target, keys)

    # -- presentation --------------------------------------------------

    def refresh_status(self, instance: Instance) -> bool:
        """Re-render the tmux status bar from the current windows (advisory)."""
        return refresh_status_bar(self.tmux, instance)
