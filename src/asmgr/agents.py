"""
Agent registry: the closed set of agent kinds and how to launch each one.

Adding an agent is a change to REGISTRY, not to the session core. Each
record says which binary to run, whether it can auto-approve and resume
(and with which flags), and where it keeps its transcripts.

Transcript layouts:
- claude: ~/.claude/projects/{encoded-path}/{uuid}.jsonl
- gemini: ~/.gemini/tmp/{sha256(path)}/chats/session-*.json
- codex:  ~/.codex/sessions/**/rollout-*.jsonl (cwd recorded in session_meta)
"""

import hashlib
import json
import os
import re
import shlex
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from .models import Instance


CLAUDE_PROJECTS_PATH = Path.home() / ".claude" / "projects"
GEMINI_TMP_PATH = Path.home() / ".gemini" / "tmp"
CODEX_SESSIONS_PATH = Path.home() / ".codex" / "sessions"

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class AgentKind(str, Enum):
    CLAUDE = "claude"
    GEMINI = "gemini"
    AIDER = "aider"
    CODEX = "codex"
    AMAZONQ = "amazonq"
    OPENCODE = "opencode"
    CURSOR = "cursor"
    CUSTOM = "custom"
    TERMINAL = "terminal"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AgentKind":
        """Parse a persisted agent string.

        Empty means the primary agent (older files omit the field); an
        unknown value is kept runnable as a custom command.
        """
        if not value:
            return cls.CLAUDE
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.CUSTOM


@dataclass(frozen=True)
class AgentConfig:
    """How to launch one agent kind."""

    kind: AgentKind
    command: str = ""
    auto_yes_flag: str = ""
    resume_flag: str = ""
    resume_is_subcommand: bool = False
    # Key sent to a running pane to flip auto-approve, for agents without a flag
    in_band_auto_yes_key: str = ""
    transcript_rule: str = ""
    display_name: str = ""
    icon: str = ""

    @property
    def supports_resume(self) -> bool:
        return bool(self.resume_flag)

    @property
    def supports_auto_approve(self) -> bool:
        return bool(self.auto_yes_flag)

    @property
    def supports_auto_approve_toggle(self) -> bool:
        return self.supports_auto_approve or bool(self.in_band_auto_yes_key)


REGISTRY = {
    AgentKind.CLAUDE: AgentConfig(
        kind=AgentKind.CLAUDE,
        command="claude",
        auto_yes_flag="--dangerously-skip-permissions",
        resume_flag="--resume",
        transcript_rule="claude",
        display_name="Claude Code",
        icon="🤖",
    ),
    AgentKind.GEMINI: AgentConfig(
        kind=AgentKind.GEMINI,
        command="gemini",
        resume_flag="--resume",
        in_band_auto_yes_key="C-y",
        transcript_rule="gemini",
        display_name="Gemini",
        icon="💎",
    ),
    AgentKind.AIDER: AgentConfig(
        kind=AgentKind.AIDER,
        command="aider",
        auto_yes_flag="--yes",
        display_name="Aider",
        icon="🔧",
    ),
    AgentKind.CODEX: AgentConfig(
        kind=AgentKind.CODEX,
        command="codex",
        auto_yes_flag="--full-auto",
        resume_flag="resume",
        resume_is_subcommand=True,
        transcript_rule="codex",
        display_name="Codex",
        icon="📦",
    ),
    AgentKind.AMAZONQ: AgentConfig(
        kind=AgentKind.AMAZONQ,
        command="q",
        auto_yes_flag="--trust-all-tools",
        resume_flag="chat --resume",
        resume_is_subcommand=True,
        display_name="Amazon Q",
        icon="🟠",
    ),
    AgentKind.OPENCODE: AgentConfig(
        kind=AgentKind.OPENCODE,
        command="opencode",
        resume_flag="--session",
        display_name="OpenCode",
        icon="⚡",
    ),
    AgentKind.CURSOR: AgentConfig(
        kind=AgentKind.CURSOR,
        command="cursor",
        display_name="Cursor",
        icon="🖱",
    ),
    AgentKind.CUSTOM: AgentConfig(
        kind=AgentKind.CUSTOM,
        display_name="Custom",
        icon="⚙",
    ),
    AgentKind.TERMINAL: AgentConfig(
        kind=AgentKind.TERMINAL,
        display_name="Terminal",
        icon="💻",
    ),
}


def get_agent_config(kind: AgentKind) -> AgentConfig:
    """Registry record for a kind, with config.yaml overrides applied."""
    from .config import get_agent_overrides

    base = REGISTRY[kind]
    if kind in (AgentKind.CUSTOM, AgentKind.TERMINAL):
        return base
    overrides = get_agent_overrides(kind.value)
    changes = {}
    command = overrides.get("command")
    if isinstance(command, str) and command.strip():
        changes["command"] = command.strip()
    flag = overrides.get("auto_yes_flag")
    if isinstance(flag, str) and flag.strip() and base.supports_auto_approve:
        changes["auto_yes_flag"] = flag.strip()
    return replace(base, **changes) if changes else base


@dataclass
class AgentCommand:
    """Resolved command line for one tmux pane.

    An empty argv means "the user's default shell".
    """

    argv: List[str] = field(default_factory=list)
    cwd: str = ""
    # Custom commands are handed to the shell verbatim
    raw: str = ""

    @property
    def shell(self) -> str:
        if self.raw:
            return self.raw
        return shlex.join(self.argv)

    def __bool__(self) -> bool:
        return bool(self.raw or self.argv)


def build_argv(
    kind: AgentKind,
    custom_command: str = "",
    auto_yes: bool = False,
    resume_token: str = "",
    cwd: str = "",
) -> AgentCommand:
    """Compose the command for an agent kind.

    Flag-style resume: <cmd> [auto-yes] <resume-flag> <token>
    Subcommand resume: <cmd> <resume-subcommand...> [auto-yes] <token>

    Args:
        kind: Agent kind
        custom_command: Used verbatim for AgentKind.CUSTOM
        auto_yes: Append the auto-approve flag when the kind has one
        resume_token: Resume this conversation when the kind supports it
        cwd: Working directory carried along with the argv

    Returns:
        AgentCommand with argv and cwd
    """
    if kind == AgentKind.TERMINAL:
        return AgentCommand(argv=[], cwd=cwd)
    if kind == AgentKind.CUSTOM:
        raw = custom_command.strip()
        try:
            argv = shlex.split(raw)
        except ValueError:
            argv = raw.split()
        return AgentCommand(argv=argv, cwd=cwd, raw=raw)

    config = get_agent_config(kind)
    argv = shlex.split(config.command)
    token = resume_token if config.supports_resume else ""
    yes_flags = shlex.split(config.auto_yes_flag) if auto_yes and config.supports_auto_approve else []

    if token and config.resume_is_subcommand:
        argv += shlex.split(config.resume_flag)
        argv += yes_flags
        argv.append(token)
    else:
        argv += yes_flags
        if token:
            argv += [config.resume_flag, token]
    return AgentCommand(argv=argv, cwd=cwd)


def build_command(instance: "Instance", resume_token: Optional[str] = None) -> AgentCommand:
    """Build window 0's command for an instance.

    Args:
        instance: The instance
        resume_token: Overrides the instance's stored token when given

    Returns:
        AgentCommand for window 0
    """
    token = instance.resume_session_id if resume_token is None else resume_token
    return build_argv(
        instance.agent,
        custom_command=instance.custom_command,
        auto_yes=instance.auto_yes,
        resume_token=token,
        cwd=instance.path,
    )


def agent_binary(kind: AgentKind, custom_command: str = "") -> Optional[str]:
    """Executable that must be on PATH for this kind (None for a plain shell)."""
    if kind == AgentKind.TERMINAL:
        return None
    if kind == AgentKind.CUSTOM:
        raw = custom_command.strip()
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = raw.split()
        return parts[0] if parts else None
    parts = shlex.split(get_agent_config(kind).command)
    return parts[0] if parts else None


def encode_claude_project_path(path: str) -> str:
    """Encode a directory the way Claude Code names its project folders.

    Symlinks are resolved; '/', '_', spaces and non-ASCII become '-'; the
    result always has exactly one leading '-'.
    """
    path = os.path.realpath(path)
    encoded = "".join(
        "-" if c in "/_ " or ord(c) > 127 else c
        for c in path
    )
    if encoded.startswith("-"):
        encoded = encoded[1:]
    return "-" + encoded


def gemini_project_hash(path: str) -> str:
    return hashlib.sha256(path.encode("utf-8")).hexdigest()


def transcripts_root(kind: AgentKind, cwd: str) -> Optional[Path]:
    """Directory holding this kind's transcripts for cwd.

    Returns None for kinds without transcript discovery. Codex keeps one
    tree for every directory; its files are filtered by cwd when scanned.
    """
    rule = REGISTRY[kind].transcript_rule
    if rule == "claude":
        return CLAUDE_PROJECTS_PATH / encode_claude_project_path(cwd)
    if rule == "gemini":
        return GEMINI_TMP_PATH / gemini_project_hash(cwd) / "chats"
    if rule == "codex":
        return CODEX_SESSIONS_PATH
    return None


def has_transcripts(kind: AgentKind, cwd: str) -> bool:
    """Cheap check used before offering a resume choice."""
    root = transcripts_root(kind, cwd)
    return root is not None and root.is_dir()


def extract_session_id(kind: AgentKind, transcript: Path) -> Optional[str]:
    """Stable resume token for a transcript file, or None if it isn't one."""
    rule = REGISTRY[kind].transcript_rule
    if rule == "claude":
        if transcript.suffix != ".jsonl":
            return None
        # agent-*.jsonl files are subagent sidechains
        return transcript.stem if UUID_PATTERN.match(transcript.stem) else None
    if rule == "gemini":
        try:
            with open(transcript) as f:
                data = json.load(f)
        except (OSError, ValueError):
            return None
        session_id = data.get("sessionId") if isinstance(data, dict) else None
        return session_id or None
    if rule == "codex":
        meta = read_codex_session_meta(transcript)
        return meta[0] if meta else None
    return None


def read_codex_session_meta(transcript: Path) -> Optional[Tuple[str, str]]:
    """Return (id, cwd) from a codex rollout's session_meta line."""
    try:
        with open(transcript) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(entry, dict) or entry.get("type") != "session_meta":
                    continue
                payload = entry.get("payload") or {}
                session_id = payload.get("id")
                if session_id:
                    return str(session_id), str(payload.get("cwd", ""))
                return None
    except OSError:
        return None
    return None
