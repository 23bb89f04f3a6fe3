# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for Voicecue.
Handles loading and saving settings from a YAML config file.
"""

import copy
import logging
from pathlib import Path
from typing import Any, TypedDict

import yaml

from .matching_config import TrackingMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".voicecue.yaml"


class TrackingSettings(TypedDict):
    """Type definition for tracking configuration settings."""
    mode: str  # "strict", "mixed" or "loose"
    pause_after_misses: int
    max_log_entries: int


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    # Delay before a live script edit is re-tracked
    script_reload_debounce_ms: int
    # Console logging level name (e.g. "INFO")
    log_level: str
    tracking: TrackingSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,

    "script_reload_debounce_ms": 500,
    "log_level": "WARNING",

    # Tracking behaviour
    "tracking": {
        "mode": TrackingMode.MIXED.value,
        # Unmatched fragments in a row before the status shows "paused"
        "pause_after_misses": 3,
        # Recent fragments kept for the debug view
        "max_log_entries": 20,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    # Start with defaults
    config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)  # type: ignore[arg-type]

    # Load from file if it exists
    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", config_path, e)

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", config_path, e)
        return False


def get_tracking_settings(config: Config) -> TrackingSettings:
    """
    Extract tracking settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Tracking settings dictionary.
    """
    return config.get("tracking", DEFAULT_CONFIG["tracking"]).copy()  # type: ignore[return-value]


def parse_tracking_mode(name: str | None) -> TrackingMode | None:
    """Parse a mode name ("strict", "Mixed", ...), or None if unknown."""
    if not name:
        return None
    try:
        return TrackingMode(str(name).strip().lower())
    except ValueError:
        return None


def get_tracking_mode(config: Config) -> TrackingMode:
    """
    Get the configured tracking mode, falling back to mixed.

    Args:
        config: Configuration dictionary.

    Returns:
        The tracking mode.
    """
    name = get_tracking_settings(config).get("mode")
    mode = parse_tracking_mode(name)
    if mode is None:
        logger.warning("Unknown tracking mode %r, using mixed", name)
        return TrackingMode.MIXED
    return mode
