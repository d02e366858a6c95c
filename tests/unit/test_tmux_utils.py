"""
Unit tests for the tmux subprocess helpers.
"""

import os
import subprocess
from unittest.mock import patch

from asmgr.tmux_utils import (
    get_tmux_pane_content,
    paste_text_to_tmux_window,
    run_tmux,
    tmux_command,
)


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["tmux"], returncode=returncode,
                                       stdout=stdout, stderr=stderr)


class TestTmuxCommand:
    """Tests for tmux_command"""

    def test_default_server(self):
        assert tmux_command("list-sessions") == ["tmux", "list-sessions"]

    def test_socket_isolation(self, monkeypatch):
        monkeypatch.setenv("ASMGR_TMUX_SOCKET", "asmgr-test")

        assert tmux_command("list-sessions") == ["tmux", "-L", "asmgr-test", "list-sessions"]

    def test_explicit_socket_wins(self, monkeypatch):
        monkeypatch.setenv("ASMGR_TMUX_SOCKET", "from-env")

        assert tmux_command("ls", socket="isolated") == ["tmux", "-L", "isolated", "ls"]


class TestRunTmux:
    """Tests for run_tmux"""

    def test_passes_timeout(self):
        with patch("asmgr.tmux_utils.subprocess.run", return_value=completed()) as run:
            run_tmux(["list-sessions"], timeout=2.0)

        assert run.call_args[1]["timeout"] == 2.0

    def test_timeout_returns_none(self):
        error = subprocess.TimeoutExpired(cmd="tmux", timeout=1)
        with patch("asmgr.tmux_utils.subprocess.run", side_effect=error):
            assert run_tmux(["list-sessions"]) is None

    def test_missing_binary_returns_none(self):
        with patch("asmgr.tmux_utils.subprocess.run", side_effect=FileNotFoundError()):
            assert run_tmux(["list-sessions"]) is None

    def test_socket_reaches_argv(self):
        with patch("asmgr.tmux_utils.subprocess.run", return_value=completed()) as run:
            run_tmux(["list-sessions"], socket="isolated")

        assert run.call_args[0][0] == ["tmux", "-L", "isolated", "list-sessions"]


class TestPaste:
    """Tests for paste_text_to_tmux_window"""

    def test_single_chained_invocation(self):
        seen = {}

        def fake_run(args, timeout, socket=None):
            buffer_file = args[3]
            with open(buffer_file) as f:
                seen["text"] = f.read()
            seen["args"] = args
            seen["file"] = buffer_file
            return completed()

        with patch("asmgr.tmux_utils.run_tmux", side_effect=fake_run) as run:
            assert paste_text_to_tmux_window("asmgr-X", 1, "line one\nline two") is True

        assert run.call_count == 1
        assert seen["text"] == "line one\nline two"
        args = seen["args"]
        assert args[0] == "load-buffer"
        assert "paste-buffer" in args
        assert args[-4:] == ["send-keys", "-t", "asmgr-X:1", "Enter"]
        assert not os.path.exists(seen["file"])

    def test_without_enter(self):
        with patch("asmgr.tmux_utils.run_tmux", return_value=completed()) as run:
            paste_text_to_tmux_window("asmgr-X", 0, "hi", send_enter=False)

        assert "send-keys" not in run.call_args[0][0]

    def test_failure(self):
        with patch("asmgr.tmux_utils.run_tmux", return_value=completed(returncode=1, stderr="x")):
            assert paste_text_to_tmux_window("asmgr-X", 0, "hi") is False


class TestCapture:
    """Tests for get_tmux_pane_content"""

    def test_capture_args_and_trailing_newlines(self):
        with patch("asmgr.tmux_utils.run_tmux", return_value=completed("a\nb\n\n")) as run:
            assert get_tmux_pane_content("asmgr-X", 0, lines=30) == "a\nb"

        assert run.call_args[0][0] == [
            "capture-pane", "-p", "-e", "-J", "-t", "asmgr-X:0", "-S", "-30",
        ]

    def test_failure_is_none(self):
        with patch("asmgr.tmux_utils.run_tmux", return_value=None):
            assert get_tmux_pane_content("asmgr-X", 0) is None
