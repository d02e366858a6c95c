"""
Exception hierarchy for asmgr.

User-initiated operations raise these; the ticker catches AsmgrError per
instance and re-derives state on the next pass.
"""

from typing import Optional, Sequence


class AsmgrError(Exception):
    """Base class for every error raised by the session core."""


class MissingBinaryError(AsmgrError):
    """An agent (or tmux) executable is not on PATH."""

    def __init__(self, binary: str, hint: Optional[str] = None):
        self.binary = binary
        message = f"'{binary}' was not found on PATH"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class MuxError(AsmgrError):
    """A tmux operation failed."""


class MuxAbsentError(MuxError):
    """The tmux session or window targeted by an operation does not exist."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(f"tmux target '{target}' does not exist")


class MuxIOError(MuxError):
    """A tmux command exited non-zero or timed out."""

    def __init__(self, command: Sequence[str], detail: str = ""):
        self.command = list(command)
        self.detail = detail
        message = f"tmux command failed: {' '.join(self.command)}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class LockHeldError(AsmgrError):
    """Another live process holds the project lock."""

    def __init__(self, project_id: str, pid: int):
        self.project_id = project_id
        self.pid = pid
        super().__init__(f"project '{project_id}' is locked by process {pid}")


class NotRunningError(AsmgrError):
    """Input was sent to an instance that has no live tmux session."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"instance '{instance_id}' is not running")


class InvariantViolationError(AsmgrError):
    """A request would break a structural rule (closing window 0, etc.)."""


class PersistenceError(AsmgrError):
    """Writing state to disk failed."""

    def __init__(self, path, detail: str = ""):
        self.path = path
        self.detail = detail
        message = f"could not write {path}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class NotFoundError(AsmgrError):
    """An id did not resolve to a known project, group or instance."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")


class DuplicateNameError(AsmgrError):
    """A project or group with this name already exists."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} named '{name}' already exists")
