"""
Centralized activity detection patterns.

Every rule the activity classifier applies lives here as data, keyed by
agent kind:
- busy markers (case-sensitive) and spinner glyphs
- waiting/confirmation prompts (matched against lowercased lines)
- last-line filters that skip decorative lines (borders, prompts,
  status bars) when picking the one-line summary

Users can override last-line filters per kind under `filters:` in
config.yaml.
"""

import re
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Optional, Tuple

from .agents import AgentKind

# Regex to match ANSI escape sequences (colors, cursor movement, etc.)
ANSI_ESCAPE_PATTERN = re.compile(r'\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07')

SEPARATOR_CHARS = ("─", "━")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text.

    Captures keep color codes for rendering; matching needs plain text.
    """
    return ANSI_ESCAPE_PATTERN.sub('', text)


def count_separators(line: str) -> int:
    return sum(line.count(c) for c in SEPARATOR_CHARS)


@dataclass
class ActivityPatterns:
    """Busy and waiting markers for one agent kind."""

    # Matched case-sensitively
    busy_patterns: List[str] = field(default_factory=lambda: [
        "esc to interrupt",
        "tokens",
        "Generating",
    ])

    spinners: List[str] = field(default_factory=lambda: [
        "⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏",
    ])

    # Matched against lowercased lines
    waiting_patterns: List[str] = field(default_factory=lambda: [
        "allow once",
        "allow always",
        "yes, allow",
        "no, and tell",
        "esc to cancel",
        "do you want to proceed",
        "waiting for user",
        "waiting for tool",
        "apply this change",
        "[y/n]",
        "(y/n)",
    ])

    # How many trailing lines to inspect when the agent has no input box
    scan_lines: int = 15

    # Agents drawing an input box between two separator rules (Claude Code)
    uses_input_box: bool = False
    input_box_min_separators: int = 20
    # Lines above the input box inspected when the box itself is empty
    above_box_lines: int = 15
    above_box_skip_prefixes: List[str] = field(default_factory=lambda: [
        "╭", "╰", "└", "Tip:",
    ])

    def is_busy(self, line: str) -> bool:
        return any(p in line for p in self.busy_patterns) or any(s in line for s in self.spinners)

    def is_waiting(self, line: str) -> bool:
        lower = line.lower()
        return any(p in lower for p in self.waiting_patterns)


@dataclass
class LineFilter:
    """Rules for picking the one-line summary out of a capture.

    apply() returns (skip, replacement). A replacement, when present, is
    shown instead of the raw line.
    """

    skip_contains: List[str] = field(default_factory=list)
    skip_prefixes: List[str] = field(default_factory=list)
    skip_suffixes: List[str] = field(default_factory=list)
    skip_exact: List[str] = field(default_factory=list)
    # Skip rule lines with more than this many ─/━ characters (0 disables)
    min_separators: int = 0
    # Extract what follows this prefix (e.g. OpenCode's "┃" gutter)
    content_prefix: str = ""
    min_content_len: int = 0
    show_contains: List[str] = field(default_factory=list)
    show_as: List[str] = field(default_factory=list)

    def apply(self, clean_line: str) -> Tuple[bool, str]:
        if self.min_separators > 0 and count_separators(clean_line) > self.min_separators:
            return True, ""
        if clean_line in self.skip_exact:
            return True, ""
        if any(clean_line.startswith(p) for p in self.skip_prefixes):
            return True, ""
        if any(clean_line.endswith(s) for s in self.skip_suffixes):
            return True, ""
        if any(c in clean_line for c in self.skip_contains):
            return True, ""
        for i, marker in enumerate(self.show_contains):
            if marker in clean_line:
                return False, self.show_as[i] if i < len(self.show_as) else marker
        if self.content_prefix and clean_line.startswith(self.content_prefix):
            extracted = clean_line[len(self.content_prefix):].strip()
            if len(extracted) >= self.min_content_len:
                return False, extracted
            return True, ""
        return False, ""


DEFAULT_LINE_FILTERS: Dict[AgentKind, LineFilter] = {
    AgentKind.CLAUDE: LineFilter(
        skip_contains=["? for", "Context left", "accept edits"],
        skip_prefixes=["╭", "╰"],
        skip_exact=[">"],
        min_separators=20,
    ),
    AgentKind.GEMINI: LineFilter(
        skip_contains=["Type your message"],
        skip_prefixes=["╭", "╰", "│", ">", "~/"],
        min_separators=20,
    ),
    AgentKind.AIDER: LineFilter(
        skip_prefixes=[">", "aider>"],
        min_separators=20,
    ),
    AgentKind.CODEX: LineFilter(
        skip_contains=["context left", "? for"],
        skip_prefixes=[">", "codex>", "›", "╭", "╰", "│"],
        min_separators=20,
    ),
    AgentKind.AMAZONQ: LineFilter(
        skip_contains=["Amazon Q"],
        skip_prefixes=[">"],
        min_separators=20,
    ),
    AgentKind.OPENCODE: LineFilter(
        skip_contains=[
            "ctrl+?", "Context:", "press enter to send", "press esc",
            "No diagnostics", "GPT-4o", "Cost:",
        ],
        skip_prefixes=["└", "├", "│", "Glob:", "List:", "Task:"],
        skip_exact=[">", "›"],
        min_separators=15,
        content_prefix="┃",
        min_content_len=15,
        show_contains=["Generating"],
        show_as=["Generating..."],
    ),
}


def get_activity_patterns(kind: AgentKind) -> ActivityPatterns:
    """Activity markers for an agent kind."""
    if kind == AgentKind.CLAUDE:
        patterns = ActivityPatterns(uses_input_box=True)
        patterns.waiting_patterns.append("? for shortcuts")
        return patterns
    return ActivityPatterns()


def _coerce_filter_overrides(raw: dict) -> dict:
    known = {f.name: f for f in fields(LineFilter)}
    changes = {}
    for key, value in raw.items():
        if key not in known:
            continue
        if key in ("min_separators", "min_content_len"):
            try:
                changes[key] = int(value)
            except (TypeError, ValueError):
                continue
        elif key == "content_prefix":
            changes[key] = str(value)
        elif isinstance(value, list):
            changes[key] = [str(v) for v in value]
    return changes


def get_line_filter(kind: AgentKind) -> Optional[LineFilter]:
    """Last-line filter for a kind, with config.yaml overrides merged in.

    Returns None for kinds whose last line is shown unfiltered.
    """
    from .config import get_filter_overrides

    base = DEFAULT_LINE_FILTERS.get(kind)
    overrides = _coerce_filter_overrides(get_filter_overrides(kind.value))
    if not overrides:
        return base
    return replace(base or LineFilter(), **overrides)
