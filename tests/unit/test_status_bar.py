"""
Unit tests for status bar rendering.
"""

from asmgr.models import WindowInfo
from asmgr.status_bar import (
    AUTO_YES_FG,
    DEAD_TAB_PREFIX,
    DEFAULT_NAME_BG,
    GRADIENTS,
    STATUS_RIGHT,
    apply_gradient,
    build_status_format,
    build_status_left,
    contrast_color,
    escape_format,
    format_session_name,
    interpolate_color,
)


class TestColors:
    """Tests for color helpers"""

    def test_contrast_on_light_background(self):
        assert contrast_color("#FFFFFF") == "#000000"

    def test_contrast_on_dark_background(self):
        assert contrast_color("#000080") == "#FFFFFF"

    def test_contrast_on_named_color_defaults_white(self):
        assert contrast_color("red") == "#FFFFFF"

    def test_interpolate_endpoints(self):
        stops = ["#000000", "#FFFFFF"]

        assert interpolate_color(stops, 0.0) == "#000000"
        assert interpolate_color(stops, 1.0) == "#FFFFFF"
        assert interpolate_color(stops, 0.5) == "#808080"

    def test_gradient_colors_each_character(self):
        result = apply_gradient("abc", "gradient-fire")

        assert result.count("#[fg=") == 3
        assert result.startswith(f"#[fg={GRADIENTS['gradient-fire'][0]},bold]a")

    def test_escape_format(self):
        assert escape_format("issue #12") == "issue ##12"


class TestFormatSessionName:
    """Tests for format_session_name"""

    def test_default_colors(self):
        assert DEFAULT_NAME_BG in format_session_name("demo")

    def test_foreground_only(self):
        assert format_session_name("demo", color="#FF0000") == "#[fg=#FF0000,bold]demo#[default]"

    def test_auto_foreground_uses_contrast(self):
        result = format_session_name("demo", color="auto", bg_color="#FFFFFF")

        assert result == "#[fg=#000000,bg=#FFFFFF,bold]demo#[default]"

    def test_gradient_background_uses_first_stop(self):
        result = format_session_name("demo", color="#111111", bg_color="gradient-ocean")

        assert f"bg={GRADIENTS['gradient-ocean'][0]}" in result


class TestBuildStatusLeft:
    """Tests for build_status_left"""

    def test_single_window_has_no_tab_list(self):
        result = build_status_left("demo", [WindowInfo(0, "claude", active=True)], {})

        assert "claude" not in result
        assert "YOLO" not in result

    def test_single_window_auto_yes_shows_yolo(self):
        result = build_status_left("demo", [WindowInfo(0, "claude", active=True)], {0: True})

        assert "YOLO !" in result

    def test_tabs_with_dead_and_auto_yes_markers(self):
        windows = [
            WindowInfo(0, "claude", active=True),
            WindowInfo(1, "shell", dead=True),
            WindowInfo(2, "codex"),
        ]

        result = build_status_left("demo", windows, {2: True})

        assert f"{DEAD_TAB_PREFIX}shell" in result
        assert f"codex #[fg={AUTO_YES_FG}]!" in result
        assert "#[fg=#FAFAFA,bold]claude" in result

    def test_status_format_wraps_left_and_right(self):
        result = build_status_format("LEFT")

        assert result == f"#[align=left]LEFT#[align=right]{STATUS_RIGHT}"
