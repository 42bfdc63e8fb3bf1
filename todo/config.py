"""
Centralized configuration for the todo client.

User preferences live in config.yaml under the app home. Values that vary
by machine can also be overridden via environment variables where marked.

Usage:
    from todo.config import load_config

    config = load_config()
    config.cache.max_age
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import yaml

from . import paths
from .errors import ConfigError
from .models import ExplicitSelection

logger = logging.getLogger(__name__)

# ============================================================
# Asana
# ============================================================

ASANA_API_BASE: str = os.environ.get("TODO_ASANA_API_BASE", "https://app.asana.com/api/1.0")
"""Base URL for the Asana REST API."""

ASANA_TOKEN_URL: str = os.environ.get("TODO_ASANA_TOKEN_URL", "https://app.asana.com/-/oauth_token")
"""OAuth token endpoint used to refresh access tokens."""

ASANA_PAT_ENV = "ASANA_PAT"
"""Personal access token env var; takes precedence over stored credentials."""

DEFAULT_FOCUS_PROJECT_PATTERN = r"\bfocus\b"
DEFAULT_MAX_AGE_MINUTES = 5
DEFAULT_WARN_AFTER_MINUTES = 3


@dataclass
class CacheConfig:
    max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES
    warn_after_minutes: float = DEFAULT_WARN_AFTER_MINUTES

    @property
    def max_age(self) -> timedelta:
        return timedelta(minutes=self.max_age_minutes)

    @property
    def warn_after(self) -> timedelta:
        return timedelta(minutes=self.warn_after_minutes)


@dataclass
class FocusConfig:
    project_pattern: str = DEFAULT_FOCUS_PROJECT_PATTERN

    def matches(self, project_name: str) -> bool:
        return re.search(self.project_pattern, project_name or "", re.IGNORECASE) is not None


@dataclass
class DisplayConfig:
    show_completed: bool = False


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    json: bool | None = None


@dataclass
class Config:
    """User preferences. Read-only input to the focus resolver and grouping."""

    workspace_gid: str | None = None
    focus_project_gid: str | None = None
    cache: CacheConfig = field(default_factory=CacheConfig)
    focus: FocusConfig = field(default_factory=FocusConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def explicit_selection(
        self, workspace_id: str | None = None, focus_project_id: str | None = None
    ) -> ExplicitSelection:
        """Command-line overrides first, then the config file."""
        return ExplicitSelection(
            workspace_id=workspace_id or self.workspace_gid,
            focus_project_id=focus_project_id or self.focus_project_gid,
        )


def _positive_number(section: dict, key: str, default: float, name: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        logger.warning(f"Invalid {name}: {value!r}, using {default}")
        return default
    return value


def _section(data: dict, key: str) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        logger.warning(f"Ignoring {key}: expected a mapping, got {type(value).__name__}")
        return {}
    return value


def _optional_gid(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return str(value)


def parse_config(data: dict | None) -> Config:
    """Build a Config from parsed YAML, applying defaults and validation."""
    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError("config.yaml must contain a mapping at the top level")

    cache_section = _section(data, "cache")
    focus_section = _section(data, "focus")
    display_section = _section(data, "display")
    logging_section = _section(data, "logging")

    pattern = focus_section.get("project_pattern", DEFAULT_FOCUS_PROJECT_PATTERN)
    try:
        re.compile(pattern)
    except (re.error, TypeError):
        logger.warning(f"Invalid focus.project_pattern: {pattern!r}, using default")
        pattern = DEFAULT_FOCUS_PROJECT_PATTERN

    level = str(logging_section.get("level", "WARNING")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        logger.warning(f"Invalid logging.level: {level!r}, using WARNING")
        level = "WARNING"

    json_format = logging_section.get("json")
    if json_format is not None and not isinstance(json_format, bool):
        logger.warning(f"Invalid logging.json: {json_format!r}, auto-detecting")
        json_format = None

    return Config(
        workspace_gid=_optional_gid(data, "workspace_gid"),
        focus_project_gid=_optional_gid(data, "focus_project_gid"),
        cache=CacheConfig(
            max_age_minutes=_positive_number(
                cache_section, "max_age_minutes", DEFAULT_MAX_AGE_MINUTES, "cache.max_age_minutes"
            ),
            warn_after_minutes=_positive_number(
                cache_section,
                "warn_after_minutes",
                DEFAULT_WARN_AFTER_MINUTES,
                "cache.warn_after_minutes",
            ),
        ),
        focus=FocusConfig(project_pattern=pattern),
        display=DisplayConfig(show_completed=bool(display_section.get("show_completed", False))),
        logging=LoggingConfig(level=level, json=json_format),
    )


def load_config(path: str | Path | None = None) -> Config:
    """
    Load user preferences from YAML.

    A missing file yields the defaults. Invalid YAML raises ConfigError.
    """
    config_path = Path(path) if path else paths.config_path()
    logger.debug(f"Loading configuration from {config_path}...")
    if not config_path.exists():
        logger.info(f"No configuration at {config_path}, using defaults")
        return Config()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    return parse_config(data)
