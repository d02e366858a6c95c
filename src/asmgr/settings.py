"""
Centralized paths and timing constants for asmgr.

All state lives under a single config root. Override it with
ASMGR_CONFIG_DIR (tests do this to stay out of the user's home).
"""

import os
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


APP_PREFIX = "asmgr"
DEFAULT_PROJECT_ID = "default"


def get_config_root() -> Path:
    """Get the root directory for persisted state.

    Checks ASMGR_CONFIG_DIR first, falls back to
    ~/.config/agent-session-manager.
    """
    env_dir = os.environ.get("ASMGR_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".config" / "agent-session-manager"


def get_tmux_socket() -> Optional[str]:
    """Get the tmux socket name (-L) for isolation, if any."""
    return os.environ.get("ASMGR_TMUX_SOCKET") or None


def get_log_file() -> Path:
    """Get the path of the debug log written while the TUI owns the terminal."""
    return get_config_root() / "asmgr.log"


def canonical_session_name(instance_id: str) -> str:
    """tmux session name for an instance: '<prefix>-<id>'."""
    return f"{APP_PREFIX}-{instance_id}"


def is_managed_session(session_name: str) -> bool:
    """Whether a tmux session was created by us (shares the app prefix)."""
    return session_name.startswith(f"{APP_PREFIX}-")


@dataclass(frozen=True)
class TickSettings:
    """Ticker timing."""

    tick_ms: int = 100
    slow_multiplier: int = 5
    capture_lines: int = 50
    preview_lines: int = 200


@dataclass(frozen=True)
class MuxSettings:
    """tmux call bounds and session defaults."""

    timeout: float = 5.0
    history_limit: int = 50000
    preview_width: int = 120
    preview_height: int = 40


def load_settings() -> Tuple[TickSettings, MuxSettings]:
    """Merge config.yaml values over the defaults.

    Returns:
        Tuple of (TickSettings, MuxSettings)
    """
    from .config import load_config

    cfg = load_config()

    def _int(key: str, default: int) -> int:
        value = cfg.get(key, default)
        try:
            value = int(value)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    def _float(key: str, default: float) -> float:
        value = cfg.get(key, default)
        try:
            value = float(value)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    tick = TickSettings(
        tick_ms=_int("tick_ms", TickSettings.tick_ms),
        slow_multiplier=_int("slow_multiplier", TickSettings.slow_multiplier),
        capture_lines=_int("capture_lines", TickSettings.capture_lines),
        preview_lines=_int("preview_lines", TickSettings.preview_lines),
    )
    mux = MuxSettings(
        timeout=_float("mux_timeout", MuxSettings.timeout),
        history_limit=_int("history_limit", MuxSettings.history_limit),
        preview_width=_int("preview_width", MuxSettings.preview_width),
        preview_height=_int("preview_height", MuxSettings.preview_height),
    )
    return tick, mux


def get_app_command() -> str:
    """Command tmux hooks use to call back into asmgr.

    ASMGR_BIN wins; otherwise the installed console script.
    """
    env_bin = os.environ.get("ASMGR_BIN")
    if env_bin:
        return env_bin
    found = shutil.which(APP_PREFIX)
    return shlex.quote(found) if found else APP_PREFIX
