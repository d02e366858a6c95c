"""
Shared tmux subprocess helpers.

Every call here is bounded by a timeout and honours ASMGR_TMUX_SOCKET
(tmux -L) so tests can run against an isolated server.
"""

import os
import subprocess
import tempfile
from typing import List, Optional

from .logging_config import get_logger
from .settings import get_tmux_socket

logger = get_logger("tmux_utils")

DEFAULT_TIMEOUT = 5.0


def tmux_command(*args: str, socket: Optional[str] = None) -> List[str]:
    """Build a tmux argv, adding -L <socket> when one is given or configured."""
    cmd = ["tmux"]
    socket = socket or get_tmux_socket()
    if socket:
        cmd += ["-L", socket]
    cmd += list(args)
    return cmd


def run_tmux(args: List[str], timeout: float = DEFAULT_TIMEOUT,
             socket: Optional[str] = None) -> Optional[subprocess.CompletedProcess]:
    """Run one tmux command.

    Args:
        args: tmux arguments (without the leading "tmux")
        timeout: Wall-clock limit in seconds
        socket: tmux -L socket name (defaults to ASMGR_TMUX_SOCKET)

    Returns:
        CompletedProcess (check returncode), or None if tmux could not be
        run or timed out
    """
    cmd = tmux_command(*args, socket=socket)
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("tmux timed out after %.1fs: %s", timeout, " ".join(args))
        return None
    except (subprocess.SubprocessError, OSError) as e:
        logger.warning("tmux failed to run: %s (%s)", " ".join(args), e)
        return None


def paste_text_to_tmux_window(
    tmux_session: str,
    window: int,
    text: str,
    send_enter: bool = True,
    timeout: float = DEFAULT_TIMEOUT,
    socket: Optional[str] = None,
) -> bool:
    """Paste text into a tmux window, then press Enter.

    The buffer load, the paste and the Enter are chained into a single tmux
    client invocation, so the server runs them back to back and no other
    keystroke can land in between. The buffer goes through a temp file to
    survive newlines and special characters.

    Args:
        tmux_session: Name of the tmux session
        window: Window index within the session
        text: Text to send
        send_enter: Whether to press Enter after the text
        timeout: Wall-clock limit in seconds
        socket: tmux -L socket name (defaults to ASMGR_TMUX_SOCKET)

    Returns:
        True if successful, False otherwise
    """
    target = f"{tmux_session}:{window}"
    buffer_name = f"asmgr-{os.getpid()}"
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(mode="w", delete=False, suffix=".txt") as f:
            temp_path = f.name
            f.write(text)

        args = [
            "load-buffer", "-b", buffer_name, temp_path, ";",
            "paste-buffer", "-d", "-p", "-b", buffer_name, "-t", target,
        ]
        if send_enter:
            args += [";", "send-keys", "-t", target, "Enter"]

        result = run_tmux(args, timeout=timeout, socket=socket)
        if result is None or result.returncode != 0:
            logger.warning("Failed to paste into %s: %s", target,
                           result.stderr.strip() if result else "timeout")
            return False
        return True
    finally:
        if temp_path:
            try:
                os.unlink(temp_path)
            except OSError:
                pass


def get_tmux_pane_content(
    tmux_session: str,
    window: int,
    lines: int = 50,
    escape_sequences: bool = True,
    timeout: float = DEFAULT_TIMEOUT,
    socket: Optional[str] = None,
) -> Optional[str]:
    """Capture the last lines of a tmux pane.

    Args:
        tmux_session: Name of the tmux session
        window: Window index within the session
        lines: Number of scrollback lines to include
        escape_sequences: Keep ANSI colors (-e)
        timeout: Wall-clock limit in seconds
        socket: tmux -L socket name (defaults to ASMGR_TMUX_SOCKET)

    Returns:
        Captured content as string, or None on error
    """
    args = ["capture-pane", "-p", "-J", "-t", f"{tmux_session}:{window}", "-S", f"-{lines}"]
    if escape_sequences:
        args.insert(2, "-e")
    result = run_tmux(args, timeout=timeout, socket=socket)
    if result is None or result.returncode != 0:
        return None
    return result.stdout.rstrip("\n")
