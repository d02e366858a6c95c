"""
tmux status bar rendering for instance sessions.

Pure functions - no side effects, fully testable. TmuxManager installs the
strings built here; the tab list is re-rendered whenever tmux reports a
window change (through the refresh-status CLI hook).
"""

from typing import Dict, List, Optional, Tuple

from .models import WindowInfo

STATUS_BG = "#1a1a2e"
STATUS_STYLE = f"bg={STATUS_BG},fg=#888888"
SEPARATOR_FG = "#555555"
ACTIVE_TAB_FG = "#FAFAFA"
INACTIVE_TAB_FG = "#888888"
AUTO_YES_FG = "#FFA500"
DEFAULT_NAME_BG = "#7D56F4"
DEAD_TAB_PREFIX = "○ "
STATUS_RIGHT = f"#[fg={SEPARATOR_FG}]Alt+</>: tabs | Ctrl+Q: detach "

GRADIENTS: Dict[str, List[str]] = {
    "gradient-rainbow": ["#FF0000", "#FF7F00", "#FFFF00", "#00FF00", "#00FFFF", "#0000FF", "#8B00FF"],
    "gradient-sunset": ["#FF512F", "#F09819", "#FF8C00", "#DD2476", "#FF416C"],
    "gradient-ocean": ["#00D2FF", "#3A7BD5", "#00D2D3", "#54A0FF", "#2E86DE"],
    "gradient-forest": ["#134E5E", "#11998E", "#38EF7D", "#A8E063", "#56AB2F"],
    "gradient-fire": ["#FF0000", "#FF4500", "#FF6347", "#FF8C00", "#FFD700"],
    "gradient-ice": ["#E0FFFF", "#B0E0E6", "#87CEEB", "#00CED1", "#4682B4"],
    "gradient-neon": ["#FF00FF", "#00FFFF", "#39FF14", "#FF6600", "#BF00FF"],
    "gradient-galaxy": ["#0F0C29", "#302B63", "#8E2DE2", "#4A00E0", "#24243E"],
    "gradient-pastel": ["#FFB6C1", "#FFDAB9", "#FFFACD", "#98FB98", "#ADD8E6", "#E6E6FA"],
    "gradient-pink": ["#FF69B4", "#FF1493", "#DB7093", "#FF69B4"],
    "gradient-blue": ["#00BFFF", "#1E90FF", "#4169E1", "#0000FF", "#4169E1", "#1E90FF"],
    "gradient-green": ["#00FF00", "#32CD32", "#228B22", "#006400", "#228B22", "#32CD32"],
}


def _hex_to_rgb(color: str) -> Optional[Tuple[int, int, int]]:
    color = color.lstrip("#")
    if len(color) != 6:
        return None
    try:
        return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)
    except ValueError:
        return None


def contrast_color(bg: str) -> str:
    """Black or white text, whichever reads better on bg."""
    rgb = _hex_to_rgb(bg)
    if rgb is None:
        return "#FFFFFF"
    r, g, b = rgb
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255.0
    return "#000000" if luminance > 0.5 else "#FFFFFF"


def interpolate_color(stops: List[str], position: float) -> str:
    """Color at position (0..1) along a list of hex stops."""
    if len(stops) == 1:
        return stops[0]
    position = min(max(position, 0.0), 1.0)
    scaled = position * (len(stops) - 1)
    i = min(int(scaled), len(stops) - 2)
    frac = scaled - i
    a = _hex_to_rgb(stops[i]) or (255, 255, 255)
    b = _hex_to_rgb(stops[i + 1]) or (255, 255, 255)
    mixed = tuple(round(x + (y - x) * frac) for x, y in zip(a, b))
    return "#{:02X}{:02X}{:02X}".format(*mixed)


def _solid(color: str) -> str:
    """First stop of a gradient, or the color itself."""
    stops = GRADIENTS.get(color)
    return stops[0] if stops else color


def apply_gradient(text: str, gradient: str) -> str:
    stops = GRADIENTS.get(gradient)
    if not stops or not text:
        return text
    out = []
    for i, ch in enumerate(text):
        position = 0.5 if len(text) == 1 else i / (len(text) - 1)
        out.append(f"#[fg={interpolate_color(stops, position)},bold]{ch}")
    return "".join(out)


def escape_format(text: str) -> str:
    """Escape '#' so user text isn't read as a tmux format."""
    return text.replace("#", "##")


def format_session_name(name: str, color: str = "", bg_color: str = "") -> str:
    """Render the instance name with its colors as a tmux style string."""
    name = escape_format(name)
    if color in GRADIENTS:
        return apply_gradient(name, color) + "#[default]"

    bg = _solid(bg_color) if bg_color and bg_color != "auto" else ""
    if color == "auto" and bg:
        return f"#[fg={contrast_color(bg)},bg={bg},bold]{name}#[default]"
    if color and color != "auto":
        if bg:
            return f"#[fg={color},bg={bg},bold]{name}#[default]"
        return f"#[fg={color},bold]{name}#[default]"
    if bg:
        return f"#[fg={ACTIVE_TAB_FG},bg={bg},bold]{name}#[default]"
    return f"#[fg={ACTIVE_TAB_FG},bg={DEFAULT_NAME_BG},bold]{name}#[default]"


def build_status_left(
    name: str,
    windows: List[WindowInfo],
    auto_yes: Dict[int, bool],
    color: str = "",
    bg_color: str = "",
) -> str:
    """Build the status-left template: styled name plus the tab list.

    Args:
        name: Instance display name
        windows: Current tmux windows, in index order
        auto_yes: Window index -> auto-approve flag
        color: Instance foreground (hex, named, "auto" or "gradient-*")
        bg_color: Instance background

    Returns:
        tmux format string
    """
    parts = [f"#[default,bg={STATUS_BG}] {format_session_name(name, color, bg_color)} "]

    if len(windows) > 1:
        parts.append(f"#[fg={SEPARATOR_FG}]| ")
        for win in windows:
            prefix = DEAD_TAB_PREFIX if win.dead else ""
            marker = f" #[fg={AUTO_YES_FG}]!" if auto_yes.get(win.index) else ""
            label = escape_format(win.name)
            if win.active:
                parts.append(f"#[fg={ACTIVE_TAB_FG},bold]{prefix}{label}#[nobold]{marker}")
                parts.append(f"#[fg={SEPARATOR_FG}] | ")
            else:
                parts.append(f"#[fg={INACTIVE_TAB_FG}]{prefix}{label}{marker} #[fg={SEPARATOR_FG}]| ")
    elif auto_yes.get(0):
        parts.append(f"#[fg={AUTO_YES_FG},bold]YOLO !")

    return "".join(parts)


def build_status_format(status_left: str) -> str:
    """Full status-format[0] line: the left template plus the key hints."""
    return f"#[align=left]{status_left}#[align=right]{STATUS_RIGHT}"
