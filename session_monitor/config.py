#!/usr/bin/env python3
"""
SessionMonitor Configuration Module

Centralized configuration for session-monitor paths and settings.
All modules should import directories and defaults from this module.

Environment Variables:
    SESSION_MONITOR_HOME: Override the data directory (default: ~/.session-monitor)
    CLAUDE_PROJECTS_DIR: Override the Claude transcript directory
    SESSION_MONITOR_POLL_INTERVAL: Seconds between transcript polls (default: 0.5)
    SESSION_MONITOR_RENDER_INTERVAL: Seconds between dashboard redraws (default: 2.0)
    SESSION_MONITOR_ASSESS_EVERY: Tool calls between assessments (default: 10)
    SESSION_MONITOR_ASSESSOR: Assessor backend: api, cli or none (default: api)
    SESSION_MONITOR_MODEL: Model used by the assessor
    SESSION_MONITOR_ASSESSOR_TIMEOUT: Assessor timeout in seconds (default: 15)

Values from ~/.session-monitor/config.yaml override the defaults; environment
variables override both.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# DIRECTORIES
# =============================================================================

MONITOR_DIR = Path(os.environ.get(
    "SESSION_MONITOR_HOME", str(Path.home() / ".session-monitor")
))
CLAUDE_PROJECTS_DIR = Path(os.environ.get(
    "CLAUDE_PROJECTS_DIR", str(Path.home() / ".claude" / "projects")
))
LOG_DIR = MONITOR_DIR / "logs"
CONFIG_PATH = MONITOR_DIR / "config.yaml"

# =============================================================================
# DEFAULTS
# =============================================================================

POLL_INTERVAL = 0.5  # stat polling; change notifications miss appends on macOS
RENDER_INTERVAL = 2.0
ASSESS_EVERY_N_CALLS = 10
ASSESSOR_BACKENDS = ("api", "cli", "none")
DEFAULT_ASSESSOR_BACKEND = "api"
DEFAULT_ASSESSOR_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_ASSESSOR_TIMEOUT = 15.0  # seconds

_ENV_OVERRIDES = {
    "poll_interval": "SESSION_MONITOR_POLL_INTERVAL",
    "render_interval": "SESSION_MONITOR_RENDER_INTERVAL",
    "assess_every": "SESSION_MONITOR_ASSESS_EVERY",
    "assessor_backend": "SESSION_MONITOR_ASSESSOR",
    "assessor_model": "SESSION_MONITOR_MODEL",
    "assessor_timeout": "SESSION_MONITOR_ASSESSOR_TIMEOUT",
}


@dataclass
class MonitorSettings:
    """Runtime settings for one monitor process."""
    poll_interval: float = POLL_INTERVAL
    render_interval: float = RENDER_INTERVAL
    assess_every: int = ASSESS_EVERY_N_CALLS
    assessor_backend: str = DEFAULT_ASSESSOR_BACKEND
    assessor_model: str = DEFAULT_ASSESSOR_MODEL
    assessor_timeout: float = DEFAULT_ASSESSOR_TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_yaml(path: Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML mapping, or an empty dict if the file is missing or invalid
    """
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load config {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: top level is not a mapping")
        return {}
    return data


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Convert a raw config value to the type of its default."""
    try:
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        return str(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {name}: {value!r}, using {default!r}")
        return default


def load_settings(config_path: Optional[Path] = None) -> MonitorSettings:
    """
    Build MonitorSettings from defaults, the YAML file and the environment.

    Args:
        config_path: Optional YAML path (default: ~/.session-monitor/config.yaml)

    Returns:
        Populated MonitorSettings
    """
    settings = MonitorSettings()
    raw = load_yaml(config_path or CONFIG_PATH)

    for name, env_var in _ENV_OVERRIDES.items():
        default = getattr(settings, name)
        value = os.environ.get(env_var, raw.get(name))
        if value is not None:
            setattr(settings, name, _coerce(name, value, default))

    if settings.assessor_backend not in ASSESSOR_BACKENDS:
        logger.warning(
            f"Unknown assessor backend {settings.assessor_backend!r}, "
            f"using {DEFAULT_ASSESSOR_BACKEND!r}"
        )
        settings.assessor_backend = DEFAULT_ASSESSOR_BACKEND
    if settings.assess_every < 1:
        settings.assess_every = ASSESS_EVERY_N_CALLS

    return settings


def ensure_directories():
    """Create required directories if they don't exist."""
    for directory in [MONITOR_DIR, LOG_DIR]:
        directory.mkdir(parents=True, exist_ok=True)
