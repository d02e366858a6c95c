"""
Unit tests for RealTmux's subprocess-backed verbs.

libtmux-backed verbs are exercised by the e2e suite; here run_tmux is
patched so no tmux server is needed.
"""

import subprocess
from unittest.mock import patch

from asmgr.implementations import RealTmux
from asmgr.models import WindowInfo
from asmgr.protocols import TmuxInterface


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["tmux"], returncode=returncode,
                                       stdout=stdout, stderr=stderr)


class TestRealTmux:
    """Tests for RealTmux"""

    def test_satisfies_protocol(self):
        assert isinstance(RealTmux(socket_name="x"), TmuxInterface)

    def test_socket_from_env(self, monkeypatch):
        monkeypatch.setenv("ASMGR_TMUX_SOCKET", "asmgr-test")

        assert RealTmux()._socket_name == "asmgr-test"

    def test_list_windows_parses_rows(self):
        output = "0\t1\t0\tclaude\n1\t0\t1\tshell: logs\nbad row\n"
        with patch("asmgr.implementations.run_tmux", return_value=completed(output)):
            windows = RealTmux().list_windows("asmgr-X")

        assert windows == [
            WindowInfo(index=0, name="claude", active=True, dead=False),
            WindowInfo(index=1, name="shell: logs", active=False, dead=True),
        ]

    def test_list_windows_failure(self):
        with patch("asmgr.implementations.run_tmux", return_value=completed(returncode=1)):
            assert RealTmux().list_windows("asmgr-X") is None

    def test_list_windows_timeout(self):
        with patch("asmgr.implementations.run_tmux", return_value=None):
            assert RealTmux().list_windows("asmgr-X") is None

    def test_respawn_pane_args(self):
        with patch("asmgr.implementations.run_tmux", return_value=completed()) as run:
            assert RealTmux().respawn_pane("asmgr-X", 2, command="claude", cwd="/work")

        assert run.call_args[0][0] == ["respawn-pane", "-k", "-t", "asmgr-X:2", "-c", "/work", "claude"]

    def test_send_keys_literal_flag(self):
        with patch("asmgr.implementations.run_tmux", return_value=completed()) as run:
            RealTmux().send_keys("asmgr-X", 0, "hello", literal=True)
            RealTmux().send_keys("asmgr-X", 0, "Enter", literal=False)

        assert run.call_args_list[0][0][0] == ["send-keys", "-t", "asmgr-X:0", "-l", "hello"]
        assert run.call_args_list[1][0][0] == ["send-keys", "-t", "asmgr-X:0", "Enter"]

    def test_option_scopes(self):
        with patch("asmgr.implementations.run_tmux", return_value=completed()) as run:
            tmux = RealTmux()
            tmux.set_option(None, "focus-events", "on", server=True)
            tmux.set_option("asmgr-X", "remain-on-exit", "on", window=1)
            tmux.set_option("asmgr-X", "mouse", "on")

        calls = [c[0][0] for c in run.call_args_list]
        assert calls == [
            ["set-option", "-s", "focus-events", "on"],
            ["set-option", "-w", "-t", "asmgr-X:1", "remain-on-exit", "on"],
            ["set-option", "-t", "asmgr-X", "mouse", "on"],
        ]

    def test_bind_key_is_root_table(self):
        with patch("asmgr.implementations.run_tmux", return_value=completed()) as run:
            RealTmux().bind_key("C-q", ["detach-client"])

        assert run.call_args[0][0] == ["bind-key", "-n", "C-q", "detach-client"]

    def test_non_zero_exit_is_false(self):
        with patch("asmgr.implementations.run_tmux", return_value=completed(returncode=1, stderr="no")):
            assert RealTmux().set_hook("asmgr-X", "pane-focus-in", "x") is False

    def test_attach_drops_tmux_env(self, monkeypatch):
        monkeypatch.setenv("TMUX", "/tmp/tmux-0/default,1,0")
        with patch("asmgr.implementations.subprocess.run", return_value=completed()) as run:
            assert RealTmux().attach("asmgr-X") == 0

        assert "TMUX" not in run.call_args[1]["env"]
        assert run.call_args[0][0][-3:] == ["attach-session", "-t", "asmgr-X"]

    def test_socket_name_used_by_every_subprocess_verb(self):
        with patch("asmgr.tmux_utils.subprocess.run", return_value=completed()) as run:
            tmux = RealTmux(socket_name="isolated")
            tmux.list_windows("asmgr-X")
            tmux.capture_pane("asmgr-X", 0, 10)
            tmux.paste_text("asmgr-X", 0, "hi")
            tmux.set_hook("asmgr-X", "pane-focus-in", "x")

        for call in run.call_args_list:
            assert call[0][0][:3] == ["tmux", "-L", "isolated"]
        assert len(run.call_args_list) == 4

    def test_attach_uses_socket_name(self):
        with patch("asmgr.implementations.subprocess.run", return_value=completed()) as run:
            RealTmux(socket_name="isolated").attach("asmgr-X")

        assert run.call_args[0][0] == ["tmux", "-L", "isolated", "attach-session", "-t", "asmgr-X"]
