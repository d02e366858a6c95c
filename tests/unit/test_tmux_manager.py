"""
Unit tests for TmuxManager against MockTmux.
"""

import pytest

from asmgr.agents import AgentCommand
from asmgr.exceptions import InvariantViolationError, MuxAbsentError, MuxIOError
from asmgr.tmux_manager import MANAGED_SESSION_CONDITION, REFRESH_HOOKS

SESSION = "asmgr-01TEST"


@pytest.fixture
def started(tmux_manager):
    tmux_manager.ensure_session(SESSION, "/work/app", AgentCommand(argv=["claude"]),
                                env={"ASMGR_INSTANCE_ID": "01TEST"}, window_name="claude")
    return tmux_manager


class TestEnsureSession:
    """Tests for ensure_session"""

    def test_creates_session_with_command(self, tmux_manager, mock_tmux):
        created = tmux_manager.ensure_session(
            SESSION, "/work/app", AgentCommand(argv=["claude", "--resume", "a b"]),
            window_name="claude",
        )

        assert created is True
        window = mock_tmux.window(SESSION, 0)
        assert window.command == "claude --resume 'a b'"
        assert window.cwd == "/work/app"
        assert window.name == "claude"

    def test_terminal_gets_default_shell(self, tmux_manager, mock_tmux):
        tmux_manager.ensure_session(SESSION, "/work/app", AgentCommand())

        assert mock_tmux.window(SESSION, 0).command is None

    def test_existing_session_untouched(self, started, mock_tmux):
        assert started.ensure_session(SESSION, "/elsewhere", AgentCommand(argv=["x"])) is False
        assert mock_tmux.window(SESSION, 0).cwd == "/work/app"

    def test_configures_new_session(self, started, mock_tmux):
        sess = mock_tmux.sessions[SESSION]

        assert sess.options["history-limit"] == "50000"
        assert sess.options["mouse"] == "on"
        assert mock_tmux.server_options["focus-events"] == "on"
        assert sess.hooks["pane-focus-in"] == "resize-window -A"
        for hook in REFRESH_HOOKS:
            assert sess.hooks[hook] == f"run-shell 'asmgr refresh-status {SESSION}'"
        assert sess.windows[0].options == {"remain-on-exit": "on", "automatic-rename": "off"}
        assert sess.env == {"ASMGR_INSTANCE_ID": "01TEST"}

    def test_tab_bindings_only_act_in_managed_sessions(self, started, mock_tmux):
        binding = mock_tmux.bindings["C-y"]

        assert binding[:3] == ["if-shell", "-F", MANAGED_SESSION_CONDITION]
        assert binding[3] == "run-shell 'asmgr yolo #{session_name} #{window_index}'"
        assert binding[4] == "send-keys C-y"
        assert mock_tmux.bindings["M-Left"][3] == "previous-window"

    def test_creation_failure(self, tmux_manager, mock_tmux):
        mock_tmux.fail.add("new_session")

        with pytest.raises(MuxIOError):
            tmux_manager.ensure_session(SESSION, "/work/app", AgentCommand())

    def test_advisory_failures_do_not_raise(self, tmux_manager, mock_tmux):
        mock_tmux.fail.update({"set_option", "set_hook", "bind_key"})

        assert tmux_manager.ensure_session(SESSION, "/work/app", AgentCommand()) is True


class TestSessions:
    """Tests for kill_session / list_windows / list_managed_sessions"""

    def test_kill_session(self, started, mock_tmux):
        assert started.kill_session(SESSION) is True
        assert SESSION not in mock_tmux.sessions

    def test_kill_absent_is_not_an_error(self, tmux_manager):
        assert tmux_manager.kill_session(SESSION) is False

    def test_kill_failure(self, started, mock_tmux):
        mock_tmux.fail.add("kill_session")

        with pytest.raises(MuxIOError):
            started.kill_session(SESSION)

    def test_list_windows_absent(self, tmux_manager):
        with pytest.raises(MuxAbsentError):
            tmux_manager.list_windows(SESSION)

    def test_list_windows_io_failure(self, started, mock_tmux):
        mock_tmux.fail.add("list_windows")

        with pytest.raises(MuxIOError):
            started.list_windows(SESSION)

    def test_list_managed_sessions(self, started, mock_tmux):
        mock_tmux.new_session("work")

        assert started.list_managed_sessions() == [SESSION]


class TestWindows:
    """Tests for window operations"""

    def test_spawn_window(self, started, mock_tmux):
        index = started.spawn_window(SESSION, "shell", AgentCommand(cwd="/work/app"))

        assert index == 1
        window = mock_tmux.window(SESSION, 1)
        assert window.name == "shell"
        assert window.options["remain-on-exit"] == "on"

    def test_spawn_in_absent_session(self, tmux_manager):
        with pytest.raises(MuxAbsentError):
            tmux_manager.spawn_window(SESSION, "shell", AgentCommand())

    def test_respawn_window(self, started, mock_tmux):
        mock_tmux.set_window_dead(SESSION, 0)

        started.respawn_window(SESSION, 0, AgentCommand(argv=["claude", "--resume", "t"]))

        assert mock_tmux.respawned == [(SESSION, 0, "claude --resume t")]
        assert mock_tmux.window(SESSION, 0).dead is False

    def test_respawn_missing_window_is_absent(self, started):
        with pytest.raises(MuxAbsentError):
            started.respawn_window(SESSION, 7, AgentCommand())

    def test_respawn_failure_on_live_window_is_io(self, started, mock_tmux):
        mock_tmux.fail.add("respawn_pane")

        with pytest.raises(MuxIOError):
            started.respawn_window(SESSION, 0, AgentCommand())

    def test_close_window_zero_forbidden(self, started):
        with pytest.raises(InvariantViolationError):
            started.close_window(SESSION, 0)

    def test_close_window(self, started, mock_tmux):
        started.spawn_window(SESSION, "shell", AgentCommand())

        started.close_window(SESSION, 1)

        assert 1 not in mock_tmux.sessions[SESSION].windows

    def test_stop_window_sends_interrupt_then_eof(self, started, mock_tmux):
        started.stop_window(SESSION, 0)

        assert mock_tmux.sent_keys == [(SESSION, 0, "C-c", False), (SESSION, 0, "C-d", False)]


class TestPanes:
    """Tests for capture and input"""

    def test_capture_pane(self, started, mock_tmux):
        mock_tmux.set_pane_content(SESSION, 0, "a\nb\nc")

        assert started.capture_pane(SESSION, 0, 2) == "b\nc"

    def test_capture_absent(self, tmux_manager):
        with pytest.raises(MuxAbsentError):
            tmux_manager.capture_pane(SESSION, 0, 10)

    def test_send_keys_literal(self, started, mock_tmux):
        started.send_keys(SESSION, 0, "C-c")

        assert mock_tmux.sent_keys == [(SESSION, 0, "C-c", True)]

    def test_send_prompt(self, started, mock_tmux):
        started.send_prompt(SESSION, 0, "fix the tests")

        assert mock_tmux.pasted == [(SESSION, 0, "fix the tests", True)]

    def test_send_prompt_to_missing_window(self, started):
        with pytest.raises(MuxAbsentError):
            started.send_prompt(SESSION, 3, "hello")


class TestPresentation:
    """Tests for status bar, bindings and attach"""

    def test_configure_status(self, started, mock_tmux):
        assert started.configure_status(SESSION, "LEFT") is True

        options = mock_tmux.sessions[SESSION].options
        assert options["status-left"] == "LEFT"
        assert options["window-status-format"] == ""
        assert options["status-format[0]"].startswith("#[align=left]LEFT")

    def test_detach_binding_resizes_first(self, tmux_manager, mock_tmux):
        tmux_manager.install_detach_binding(120, 40)

        assert mock_tmux.bindings["C-q"][3] == "resize-window -x 120 -y 40 ; detach-client"
        assert mock_tmux.bindings["C-q"][4] == "detach-client"

    def test_resize_pane_is_advisory(self, tmux_manager):
        assert tmux_manager.resize_pane(SESSION, 80, 24) is False

    def test_attach(self, started, mock_tmux):
        assert started.attach(SESSION) == 0
        assert mock_tmux.attached == [SESSION]

    def test_attach_absent(self, tmux_manager):
        with pytest.raises(MuxAbsentError):
            tmux_manager.attach(SESSION)
