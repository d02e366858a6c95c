"""
Display constants for instance status and activity.

Centralizes the emoji and colours used when listing instances, so the CLI
and any other front end render states the same way.
"""

from .agents import AgentKind, REGISTRY
from .models import Activity, Instance, Status


# =============================================================================
# Activity / Status to Emoji
# =============================================================================

ACTIVITY_EMOJIS = {
    Activity.BUSY: "🟢",
    Activity.WAITING: "🟡",
    Activity.IDLE: "⚪",
}

STOPPED_EMOJI = "⚫"


def get_status_emoji(instance: Instance) -> str:
    """Emoji for an instance: stopped beats any stale activity."""
    if instance.status != Status.RUNNING:
        return STOPPED_EMOJI
    return ACTIVITY_EMOJIS.get(instance.activity, "⚪")


# =============================================================================
# Activity / Status to rich style
# =============================================================================

ACTIVITY_COLORS = {
    Activity.BUSY: "green",
    Activity.WAITING: "yellow",
    Activity.IDLE: "white",
}

STOPPED_COLOR = "bright_black"


def get_status_color(instance: Instance) -> str:
    if instance.status != Status.RUNNING:
        return STOPPED_COLOR
    return ACTIVITY_COLORS.get(instance.activity, "white")


def get_status_label(instance: Instance) -> str:
    if instance.status != Status.RUNNING:
        return Status.STOPPED.value
    return instance.activity.value


def get_agent_icon(kind: AgentKind) -> str:
    return REGISTRY[kind].icon or "?"
