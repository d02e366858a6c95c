"""
Domain model for asmgr: projects, groups, instances and followed windows.

The object graph is a tree. Instances point at their group by id only and
own their followed windows, so everything serializes to JSON directly.
Persisted keys use camelCase; derived fields (status, activity, last line)
are never written and are excluded from equality.
"""

import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .agents import AgentKind


class Status(str, Enum):
    """Derived run state of an instance."""

    STOPPED = "stopped"
    RUNNING = "running"


class Activity(str, Enum):
    """Derived tri-state of what a pane is doing."""

    IDLE = "idle"
    BUSY = "busy"
    WAITING = "waiting"


FAVORITES_GROUP_ID = "__favorites__"

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def new_ulid(now_ms: Optional[int] = None) -> str:
    """Generate a 26-char ULID-like id (48-bit ms timestamp + 80 random bits).

    Ids sort lexically by creation time.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    value = ((now_ms & ((1 << 48) - 1)) << 80) | int.from_bytes(os.urandom(10), "big")
    chars = []
    for _ in range(26):
        chars.append(_CROCKFORD[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def new_group_id() -> str:
    return f"grp_{new_ulid()}"


def new_project_id(name: str) -> str:
    slug = "".join(c if c.isalnum() else "-" for c in name.lower()).strip("-")
    return f"proj_{slug or 'project'}_{new_ulid()}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class Project:
    id: str
    name: str
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass
class Group:
    id: str
    name: str
    color: str = ""
    bg_color: str = ""
    full_row_color: bool = False
    collapsed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "bgColor": self.bg_color,
            "fullRowColor": self.full_row_color,
            "collapsed": self.collapsed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            color=data.get("color") or "",
            bg_color=data.get("bgColor") or "",
            full_row_color=bool(data.get("fullRowColor", False)),
            collapsed=bool(data.get("collapsed", False)),
        )


@dataclass
class FollowedWindow:
    """A tracked tmux window beyond window 0."""

    index: int
    name: str
    agent: AgentKind = AgentKind.TERMINAL
    resume_session_id: str = ""
    auto_yes: bool = False
    notes: str = ""
    custom_command: str = ""

    # Derived, refreshed by reconciliation
    dead: bool = field(default=False, compare=False)
    activity: Activity = field(default=Activity.IDLE, compare=False)
    last_line: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "index": self.index,
            "name": self.name,
            "agent": self.agent.value,
            "resumeSessionId": self.resume_session_id,
            "autoYes": self.auto_yes,
            "notes": self.notes,
        }
        if self.custom_command:
            data["customCommand"] = self.custom_command
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FollowedWindow":
        return cls(
            index=int(data.get("index", 0)),
            name=str(data.get("name", "")),
            agent=AgentKind.parse(data.get("agent")),
            resume_session_id=data.get("resumeSessionId") or "",
            auto_yes=bool(data.get("autoYes", False)),
            notes=data.get("notes") or "",
            custom_command=data.get("customCommand") or "",
        )


@dataclass
class Instance:
    """One managed agent and (when running) its tmux session."""

    id: str
    name: str
    path: str
    agent: AgentKind = AgentKind.CLAUDE
    custom_command: str = ""
    auto_yes: bool = False
    color: str = ""
    bg_color: str = ""
    full_row_color: bool = False
    group_id: str = ""
    favorite: bool = False
    notes: str = ""
    resume_session_id: str = ""
    followed_windows: List[FollowedWindow] = field(default_factory=list)

    # Derived, never persisted
    status: Status = field(default=Status.STOPPED, compare=False)
    activity: Activity = field(default=Activity.IDLE, compare=False)
    last_line: str = field(default="", compare=False)
    displayed_window: int = field(default=0, compare=False)
    window_names: Dict[int, str] = field(default_factory=dict, compare=False)

    @property
    def session_name(self) -> str:
        from .settings import canonical_session_name
        return canonical_session_name(self.id)

    @property
    def is_running(self) -> bool:
        return self.status == Status.RUNNING

    def get_followed(self, index: int) -> Optional[FollowedWindow]:
        for fw in self.followed_windows:
            if fw.index == index:
                return fw
        return None

    def window_auto_yes(self, index: int) -> bool:
        """Auto-approve flag of window 0 or a followed window."""
        if index == 0:
            return self.auto_yes
        fw = self.get_followed(index)
        return fw.auto_yes if fw else False

    def clear_derived(self) -> None:
        self.status = Status.STOPPED
        self.activity = Activity.IDLE
        self.last_line = ""
        self.displayed_window = 0
        self.window_names = {}
        for fw in self.followed_windows:
            fw.dead = False
            fw.activity = Activity.IDLE
            fw.last_line = ""

    def copy_config(self, new_id: str) -> "Instance":
        """New stopped instance with the same configuration (no tabs, no token)."""
        return Instance(
            id=new_id,
            name=self.name,
            path=self.path,
            agent=self.agent,
            custom_command=self.custom_command,
            auto_yes=self.auto_yes,
            color=self.color,
            bg_color=self.bg_color,
            full_row_color=self.full_row_color,
            group_id=self.group_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "agent": self.agent.value,
            "customCommand": self.custom_command,
            "autoYes": self.auto_yes,
            "color": self.color,
            "bgColor": self.bg_color,
            "fullRowColor": self.full_row_color,
            "groupId": self.group_id,
            "favorite": self.favorite,
            "notes": self.notes,
            "resumeSessionId": self.resume_session_id,
            "followedWindows": [fw.to_dict() for fw in self.followed_windows],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Instance":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            path=str(data.get("path", "")),
            agent=AgentKind.parse(data.get("agent")),
            custom_command=data.get("customCommand") or "",
            auto_yes=bool(data.get("autoYes", False)),
            color=data.get("color") or "",
            bg_color=data.get("bgColor") or "",
            full_row_color=bool(data.get("fullRowColor", False)),
            group_id=data.get("groupId") or "",
            favorite=bool(data.get("favorite", False)),
            notes=data.get("notes") or "",
            resume_session_id=data.get("resumeSessionId") or "",
            followed_windows=[
                FollowedWindow.from_dict(fw)
                for fw in data.get("followedWindows") or []
                if isinstance(fw, dict)
            ],
        )


@dataclass
class Settings:
    """Per-project UI preferences."""

    compact_list: bool = False
    hide_status_lines: bool = False
    show_agent_icons: bool = True
    split_view: bool = False
    split_focus: int = 0
    marked_session_id: str = ""
    cursor: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compactList": self.compact_list,
            "hideStatusLines": self.hide_status_lines,
            "showAgentIcons": self.show_agent_icons,
            "splitView": self.split_view,
            "splitFocus": self.split_focus,
            "markedSessionId": self.marked_session_id,
            "cursor": self.cursor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        def _int(key: str) -> int:
            try:
                return int(data.get(key, 0) or 0)
            except (TypeError, ValueError):
                return 0

        return cls(
            compact_list=bool(data.get("compactList", False)),
            hide_status_lines=bool(data.get("hideStatusLines", False)),
            show_agent_icons=bool(data.get("showAgentIcons", True)),
            split_view=bool(data.get("splitView", False)),
            split_focus=_int("splitFocus"),
            marked_session_id=data.get("markedSessionId") or "",
            cursor=_int("cursor"),
        )


@dataclass
class WindowInfo:
    """One row of tmux list-windows."""

    index: int
    name: str
    active: bool = False
    dead: bool = False
