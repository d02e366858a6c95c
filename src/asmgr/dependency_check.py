"""
Dependency checking for tmux and agent binaries.

Checks run before any state is mutated, so a missing binary never leaves
a half-created instance behind.
"""

import shutil
import subprocess
from typing import Optional, Tuple

from .agents import AgentKind, agent_binary, get_agent_config
from .exceptions import MissingBinaryError


def find_executable(name: str) -> Optional[str]:
    """Find the path to an executable.

    Args:
        name: Name of the executable (or a path to one)

    Returns:
        Full path to executable, or None if not found
    """
    return shutil.which(name)


def check_tmux() -> Tuple[bool, Optional[str], Optional[str]]:
    """Check if tmux is available and get its version.

    Returns:
        Tuple of (is_available, path, version)
    """
    path = find_executable("tmux")
    if not path:
        return False, None, None

    try:
        result = subprocess.run(
            ["tmux", "-V"],
            capture_output=True,
            text=True,
            timeout=5
        )
        version = result.stdout.strip() if result.returncode == 0 else None
        return True, path, version
    except (subprocess.SubprocessError, OSError):
        return True, path, None


def require_tmux() -> str:
    """Ensure tmux is available, raise if not.

    Returns:
        Path to tmux executable

    Raises:
        MissingBinaryError: If tmux is not found
    """
    available, path, _ = check_tmux()
    if not available:
        raise MissingBinaryError(
            "tmux",
            "Install it with: brew install tmux (macOS) or apt install tmux (Linux)",
        )
    return path


def require_agent(kind: AgentKind, custom_command: str = "") -> Optional[str]:
    """Ensure the binary an agent kind runs is on PATH.

    Args:
        kind: Agent kind
        custom_command: The instance's command, for AgentKind.CUSTOM

    Returns:
        Path to the executable, or None for a plain shell

    Raises:
        MissingBinaryError: If the binary is not found
    """
    binary = agent_binary(kind, custom_command)
    if binary is None:
        if kind == AgentKind.CUSTOM:
            raise MissingBinaryError("(empty custom command)")
        return None
    path = find_executable(binary)
    if not path:
        name = get_agent_config(kind).display_name or kind.value
        raise MissingBinaryError(binary, f"{name} must be installed to start this session")
    return path
