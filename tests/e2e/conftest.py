"""
E2E test fixtures for asmgr.

These run against a real tmux server on a private socket, so nothing
touches the user's own tmux sessions or ~/.config.
"""

import os
import subprocess

import pytest

# Test tmux socket (isolated from user's tmux)
TEST_TMUX_SOCKET = f"asmgr-test-{os.getpid()}"


def kill_test_server() -> None:
    subprocess.run(
        ["tmux", "-L", TEST_TMUX_SOCKET, "kill-server"],
        capture_output=True,
        timeout=5,
    )


@pytest.fixture
def e2e_env(tmux_available, tmp_path, monkeypatch):
    """Private config root and tmux socket; the server is killed afterwards."""
    config_root = tmp_path / "asmgr-config"
    monkeypatch.setenv("ASMGR_CONFIG_DIR", str(config_root))
    monkeypatch.setenv("ASMGR_TMUX_SOCKET", TEST_TMUX_SOCKET)
    # Hooks call back into the app; keep them inert here
    monkeypatch.setenv("ASMGR_BIN", "true")
    monkeypatch.setenv("SHELL", "/bin/sh")

    work_dir = tmp_path / "work"
    work_dir.mkdir()

    yield {"config_root": config_root, "work_dir": work_dir}

    kill_test_server()
