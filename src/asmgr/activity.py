"""
Pure activity classification for captured pane snapshots.

Pure function - no side effects, fully testable. The reconciler feeds it
the text returned by capture-pane; it never touches tmux or the disk.
"""

from typing import List, NamedTuple, Optional

from .agents import AgentKind
from .models import Activity
from .status_patterns import (
    DEFAULT_LINE_FILTERS,
    ActivityPatterns,
    LineFilter,
    count_separators,
    get_activity_patterns,
    strip_ansi,
)

LAST_LINE_MAX_WIDTH = 80

_UNSET = object()


class Classification(NamedTuple):
    activity: Activity
    last_line: str


def truncate_line(line: str, max_width: int = LAST_LINE_MAX_WIDTH) -> str:
    """Collapse to one line and cut to max_width characters, ending in '…'."""
    line = " ".join(line.replace("\r", " ").replace("\n", " ").split())
    if len(line) <= max_width:
        return line
    return line[:max_width - 1] + "…"


def _separator_indices(lines: List[str], threshold: int) -> List[int]:
    return [i for i, line in enumerate(lines) if count_separators(line) > threshold]


def _non_empty(lines: List[str]) -> List[str]:
    return [line for line in lines if line]


def detection_region(lines: List[str], patterns: ActivityPatterns) -> List[str]:
    """Lines worth inspecting for busy/waiting markers, oldest first.

    Agents with an input box are inspected inside the box, plus the lines
    just above it when the box holds nothing but the prompt (that is where
    the spinner sits while the agent thinks). A single rule means a
    confirmation dialog is open below it.
    """
    if not patterns.uses_input_box:
        return _non_empty(lines[-patterns.scan_lines:])

    separators = _separator_indices(lines, patterns.input_box_min_separators)
    if len(separators) >= 2:
        top, bottom = separators[-2], separators[-1]
        inside = _non_empty(lines[top + 1:bottom])
        above: List[str] = []
        if len(inside) <= 1:
            start = max(0, top - patterns.above_box_lines)
            above = [
                line for line in _non_empty(lines[start:top])
                if not any(line.startswith(p) for p in patterns.above_box_skip_prefixes)
            ]
        return above + inside
    if len(separators) == 1:
        return _non_empty(lines[separators[0] + 1:])
    return _non_empty(lines[-10:])


def detect_activity(region: List[str], patterns: ActivityPatterns) -> Activity:
    """Waiting wins unless a busy marker appears on a later line."""
    last_waiting: Optional[int] = None
    last_busy: Optional[int] = None
    for i, line in enumerate(region):
        if patterns.is_waiting(line):
            last_waiting = i
        if patterns.is_busy(line):
            last_busy = i

    if last_waiting is not None and (last_busy is None or last_busy <= last_waiting):
        return Activity.WAITING
    if last_busy is not None:
        return Activity.BUSY
    return Activity.IDLE


def _scan_last_line(lines: List[str], line_filter: Optional[LineFilter]) -> str:
    for line in reversed(lines):
        if not line:
            continue
        if line_filter is not None:
            skip, replacement = line_filter.apply(line)
            if skip:
                continue
            if replacement:
                return replacement
        return line
    return ""


def extract_last_line(
    lines: List[str],
    patterns: ActivityPatterns,
    line_filter: Optional[LineFilter],
) -> str:
    """Last meaningful line of a stripped capture.

    For input-box agents the text above the box is preferred, since the
    box itself only echoes what the user is typing.
    """
    if patterns.uses_input_box:
        separators = _separator_indices(lines, patterns.input_box_min_separators)
        if len(separators) >= 2:
            found = _scan_last_line(lines[:separators[-2]], line_filter)
            if found:
                return found
    return _scan_last_line(lines, line_filter)


def classify(snapshot: str, kind: AgentKind, line_filter=_UNSET) -> Classification:
    """Classify a pane snapshot.

    Pure function - no side effects, fully testable.

    Args:
        snapshot: Captured pane text (ANSI is stripped here)
        kind: Agent kind running in the pane
        line_filter: Last-line filter; defaults to the built-in one for kind.
            Pass None to disable filtering.

    Returns:
        Classification(activity, last_line)
    """
    if line_filter is _UNSET:
        line_filter = DEFAULT_LINE_FILTERS.get(kind)

    if not snapshot:
        return Classification(Activity.IDLE, "")

    lines = [strip_ansi(line).strip() for line in snapshot.rstrip("\n").split("\n")]
    patterns = get_activity_patterns(kind)

    activity = detect_activity(detection_region(lines, patterns), patterns)

    last_line = truncate_line(extract_last_line(lines, patterns, line_filter))
    return Classification(activity, last_line)
