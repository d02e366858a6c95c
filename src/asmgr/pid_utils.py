"""
PID file helpers and the per-project advisory lock.

A lock file holds the pid of its owner. A lock whose pid is no longer
alive is stale and may be taken over.
"""

import os
from pathlib import Path
from typing import Optional, Tuple

from .logging_config import get_logger

logger = get_logger("pid_utils")


def is_pid_alive(pid: int) -> bool:
    """Check whether a process with this pid exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    except OSError:
        return False
    return True


def read_pid_file(pid_file: Path) -> Optional[int]:
    """Read the pid stored in a file, or None if missing/invalid."""
    try:
        return int(Path(pid_file).read_text().strip())
    except (OSError, ValueError):
        return None


def is_process_running(pid_file: Path) -> bool:
    """Check if the process recorded in pid_file is alive.

    Args:
        pid_file: Path to the PID file

    Returns:
        True if the file names a live process
    """
    pid = read_pid_file(pid_file)
    return pid is not None and is_pid_alive(pid)


def get_process_pid(pid_file: Path) -> Optional[int]:
    """Get the pid from pid_file if that process is alive, else None."""
    pid = read_pid_file(pid_file)
    if pid is not None and is_pid_alive(pid):
        return pid
    return None


def write_pid_file(pid_file: Path, pid: Optional[int] = None) -> None:
    """Write a pid (default: ours) followed by a newline."""
    pid_file = Path(pid_file)
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(f"{pid if pid is not None else os.getpid()}\n")


def remove_pid_file(pid_file: Path) -> None:
    """Remove a pid file; missing is fine."""
    try:
        Path(pid_file).unlink()
    except FileNotFoundError:
        pass


def acquire_lock(lock_file: Path) -> Tuple[bool, Optional[int]]:
    """Atomically create lock_file containing our pid.

    An existing lock held by a live process is never taken, even when that
    process is us. A lock naming a dead (or unreadable) pid is removed and
    the acquisition retried once.

    Args:
        lock_file: Path of the lock file

    Returns:
        Tuple of (acquired, holder_pid). holder_pid is the live owner when
        acquisition failed, else None.
    """
    lock_file = Path(lock_file)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    for _ in range(2):
        try:
            fd = os.open(lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            holder = read_pid_file(lock_file)
            if holder is not None and is_pid_alive(holder):
                return False, holder
            logger.info("Removing stale lock %s (pid %s)", lock_file, holder)
            remove_pid_file(lock_file)
            continue
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
            f.flush()
            os.fsync(f.fileno())
        return True, None

    holder = read_pid_file(lock_file)
    return False, holder


def release_lock(lock_file: Path) -> None:
    """Release a lock we hold. A lock owned by another live pid is left alone."""
    holder = read_pid_file(lock_file)
    if holder is not None and holder != os.getpid() and is_pid_alive(holder):
        logger.warning("Not releasing %s: held by pid %d", lock_file, holder)
        return
    remove_pid_file(lock_file)
