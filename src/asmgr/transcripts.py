"""
Resume-token discovery from agent transcripts.

Only a handful of fields are read from each transcript: the resume token,
when it was last touched, how many real user prompts it holds, and the
first and last prompt. Nothing else about transcript contents is parsed.
"""

import json
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from .agents import (
    AgentKind,
    REGISTRY,
    extract_session_id,
    read_codex_session_meta,
    transcripts_root,
)
from .exceptions import AsmgrError, MissingBinaryError
from .logging_config import get_logger

logger = get_logger("transcripts")

PROMPT_MAX_LEN = 80
FORK_TIMEOUT = 60

# Content that looks like a user turn but was injected by the tool
_SYNTHETIC_PREFIXES = (
    "<bash-notification>",
    "<tool_result>",
    '{"tool_use_id":',
    "<environment_context>",
    "<user_instructions>",
)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass
class ResumeCandidate:
    token: str
    last_modified: datetime
    message_count: int
    first_prompt: str
    last_prompt: str


def truncate_prompt(text: str, max_len: int = PROMPT_MAX_LEN) -> str:
    """Single-line a prompt and cut it to max_len characters."""
    text = text.replace("\n", " ").strip()
    if len(text) <= max_len:
        return text
    return text[:max_len - 1] + "…"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _file_mtime(path: Path) -> datetime:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return _EPOCH


def _user_text(content: Any) -> str:
    """Text of a user turn, or "" for tool results and notifications."""
    if isinstance(content, str):
        if content.startswith(_SYNTHETIC_PREFIXES):
            return ""
        return content
    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict) or block.get("type") == "tool_result":
                continue
            text = block.get("text")
            if isinstance(text, str):
                return "" if text.startswith(_SYNTHETIC_PREFIXES) else text
    return ""


class _PromptTally:
    def __init__(self):
        self.count = 0
        self.first = ""
        self.last = ""
        self.last_ts: Optional[datetime] = None

    def add(self, text: str, ts: Optional[datetime]) -> None:
        if not text.strip():
            return
        self.count += 1
        if not self.first:
            self.first = text
        self.last = text
        if ts is not None and (self.last_ts is None or ts > self.last_ts):
            self.last_ts = ts

    def candidate(self, token: str, path: Path) -> Optional[ResumeCandidate]:
        if self.count == 0 or not self.first:
            return None
        return ResumeCandidate(
            token=token,
            last_modified=self.last_ts or _file_mtime(path),
            message_count=self.count,
            first_prompt=truncate_prompt(self.first),
            last_prompt=truncate_prompt(self.last),
        )


def _iter_jsonl(path: Path):
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except ValueError:
                    continue
                if isinstance(entry, dict):
                    yield entry
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)


def parse_claude_transcript(path: Path) -> Optional[ResumeCandidate]:
    """Count main-chain user prompts in a Claude Code session file.

    Sidechain (subagent) turns and tool results don't count.
    """
    token = extract_session_id(AgentKind.CLAUDE, path)
    if token is None:
        return None
    tally = _PromptTally()
    for entry in _iter_jsonl(path):
        message = entry.get("message")
        if entry.get("type") != "user" or not isinstance(message, dict):
            continue
        if message.get("role") != "user" or entry.get("isSidechain") or entry.get("agentId"):
            continue
        tally.add(_user_text(message.get("content")), parse_timestamp(entry.get("timestamp")))
    return tally.candidate(token, path)


def parse_gemini_transcript(path: Path) -> Optional[ResumeCandidate]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or not data.get("sessionId"):
        return None
    tally = _PromptTally()
    for message in data.get("messages") or []:
        if not isinstance(message, dict) or message.get("type") != "user":
            continue
        content = message.get("content")
        tally.add(content if isinstance(content, str) else "", parse_timestamp(message.get("timestamp")))
    candidate = tally.candidate(str(data["sessionId"]), path)
    if candidate is not None:
        updated = parse_timestamp(data.get("lastUpdated"))
        if updated is not None and updated > candidate.last_modified:
            candidate.last_modified = updated
    return candidate


def parse_codex_transcript(path: Path, cwd: str) -> Optional[ResumeCandidate]:
    """Parse a codex rollout, returning None unless it was recorded in cwd."""
    meta = read_codex_session_meta(path)
    if meta is None:
        return None
    token, recorded_cwd = meta
    if not recorded_cwd or os.path.realpath(recorded_cwd) != os.path.realpath(cwd):
        return None
    tally = _PromptTally()
    for entry in _iter_jsonl(path):
        payload = entry.get("payload")
        if entry.get("type") != "event_msg" or not isinstance(payload, dict):
            continue
        if payload.get("type") != "user_message":
            continue
        message = payload.get("message")
        tally.add(_user_text(message) if isinstance(message, str) else "",
                  parse_timestamp(entry.get("timestamp")))
    return tally.candidate(token, path)


def list_resume_candidates(kind: AgentKind, cwd: str) -> List[ResumeCandidate]:
    """Resume candidates for cwd, newest first.

    Only transcripts holding at least one real user prompt are returned.
    Kinds without resume support (or without a transcript layout) yield [].
    """
    if not REGISTRY[kind].supports_resume:
        return []
    root = transcripts_root(kind, cwd)
    if root is None or not root.is_dir():
        return []

    rule = REGISTRY[kind].transcript_rule
    candidates: List[ResumeCandidate] = []
    if rule == "claude":
        for path in root.glob("*.jsonl"):
            candidate = parse_claude_transcript(path)
            if candidate:
                candidates.append(candidate)
    elif rule == "gemini":
        for path in root.glob("session-*.json"):
            candidate = parse_gemini_transcript(path)
            if candidate:
                candidates.append(candidate)
    elif rule == "codex":
        for path in root.rglob("rollout-*.jsonl"):
            candidate = parse_codex_transcript(path, cwd)
            if candidate:
                candidates.append(candidate)

    candidates.sort(key=lambda c: c.last_modified, reverse=True)
    return candidates


def fork_claude_session(token: str, cwd: str, timeout: float = FORK_TIMEOUT) -> str:
    """Fork a Claude Code conversation and return the new session id.

    Runs `claude --resume <token> --fork-session --output-format json -p .`
    in cwd. The fork is created by that call; nothing is left running.

    Raises:
        MissingBinaryError: If claude is not installed
        AsmgrError: If the fork failed or returned no session id
    """
    if not token:
        raise AsmgrError("no session id to fork; the session may not have started yet")
    cmd = [
        "claude", "--resume", token, "--fork-session",
        "--output-format", "json", "-p", ".",
    ]
    try:
        result = subprocess.run(cmd, cwd=cwd or None, capture_output=True,
                                text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise MissingBinaryError("claude") from e
    except (subprocess.SubprocessError, OSError) as e:
        raise AsmgrError(f"failed to fork session: {e}") from e

    if result.returncode != 0:
        raise AsmgrError(f"failed to fork session: {result.stderr.strip() or result.returncode}")
    try:
        data = json.loads(result.stdout)
    except ValueError as e:
        raise AsmgrError("failed to parse fork output") from e
    session_id = data.get("session_id") if isinstance(data, dict) else None
    if not session_id:
        raise AsmgrError("fork returned an empty session id")
    logger.info("Forked claude session %s -> %s", token, session_id)
    return str(session_id)
