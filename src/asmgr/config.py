"""
Configuration management for asmgr.

Config file location: <config root>/config.yaml

Example config:
    tick_ms: 100
    slow_multiplier: 5
    mux_timeout: 5
    agents:
      claude:
        command: claude-beta
      aider:
        auto_yes_flag: --yes-always
    filters:
      claude:
        skip_contains: ["Context left", "? for"]
        min_separators: 20
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .settings import get_config_root


# Tests monkeypatch this to point at a temp file; None means the config root.
CONFIG_PATH: Optional[Path] = None


def get_config_path() -> Path:
    """Resolve the config file path."""
    if CONFIG_PATH is not None:
        return CONFIG_PATH
    return get_config_root() / "config.yaml"


def load_config() -> dict:
    """Load configuration from config file.

    Returns:
        The parsed mapping, or {} when the file is missing, invalid YAML,
        or not a mapping.
    """
    path = get_config_path()
    if not path.exists():
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, IOError):
        return {}

    if not isinstance(data, dict):
        return {}
    return data


def save_config(config: dict) -> None:
    """Write configuration back to the config file."""
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)


def _section(name: str, kind: str) -> Dict[str, Any]:
    section = load_config().get(name)
    if not isinstance(section, dict):
        return {}
    entry = section.get(kind)
    return entry if isinstance(entry, dict) else {}


def get_agent_overrides(kind: str) -> Dict[str, Any]:
    """Per-kind agent overrides (command, auto_yes_flag).

    Args:
        kind: Agent kind value, e.g. "claude"

    Returns:
        Mapping of override keys, empty when none configured
    """
    return _section("agents", kind)


def get_filter_overrides(kind: str) -> Dict[str, Any]:
    """Per-kind last-line filter overrides."""
    return _section("filters", kind)
