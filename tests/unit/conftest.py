"""
Unit test configuration for asmgr.

Every unit test gets its own config root so nothing touches the user's
~/.config/agent-session-manager, and config.yaml lookups never see a real
user config.
"""

import logging

import pytest

from asmgr import config as config_module
from asmgr.mocks import MockTmux
from asmgr.session_manager import SessionManager
from asmgr.settings import MuxSettings
from asmgr.storage import Storage
from asmgr.tmux_manager import TmuxManager


@pytest.fixture(autouse=True)
def isolated_config_root(tmp_path, monkeypatch):
    """Point ASMGR_CONFIG_DIR at a temp dir and drop the tmux socket override."""
    root = tmp_path / "asmgr-config"
    monkeypatch.setenv("ASMGR_CONFIG_DIR", str(root))
    monkeypatch.delenv("ASMGR_TMUX_SOCKET", raising=False)
    monkeypatch.setenv("ASMGR_BIN", "asmgr")
    monkeypatch.setattr(config_module, "CONFIG_PATH", root / "config.yaml")
    yield root


@pytest.fixture(autouse=True)
def reset_asmgr_logger():
    """Undo setup_logging so handlers and propagate=False don't leak between tests."""
    yield
    logger = logging.getLogger("asmgr")
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


@pytest.fixture
def storage(isolated_config_root):
    return Storage(isolated_config_root)


@pytest.fixture
def mock_tmux():
    return MockTmux()


@pytest.fixture
def tmux_manager(mock_tmux):
    return TmuxManager(tmux=mock_tmux, settings=MuxSettings(), app_command="asmgr")


@pytest.fixture
def sessions(storage):
    return SessionManager(storage, None)
