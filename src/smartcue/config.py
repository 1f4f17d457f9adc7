# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for smartcue.
Handles loading and saving settings from a YAML config file.
"""

import copy
import logging
import math
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".smartcue.yaml"


class PrompterSettings(TypedDict):
    """Type definition for prompter display and timing settings."""
    mode: str  # "timed" or "follow"
    speed: int
    wordsPerMinute: int | None
    fontSize: int
    lineHeight: float
    letterSpacing: float
    textAlign: str
    baselinePercent: int  # Focus line position, percent of viewport height
    focusEnabled: bool
    countdown: int  # Seconds before a timed scroll starts
    fontColor: str
    bgColor: str


class TrackingSettings(TypedDict):
    """Type definition for speech matching settings."""
    strategy: str  # "anchor" or "fuzzy"
    search_window: int
    buffer_size: int
    max_suffix_length: int
    min_latin_suffix: int
    # (min suffix length, max distance) pairs, longest first
    distance_thresholds: list[list[int]]
    short_distance: int
    cjk_multiplier: float
    coverage_threshold: float


class MotionSettings(TypedDict):
    """Type definition for scroll motion settings."""
    ease_rate: float
    dead_zone: float
    momentum_decay: float
    momentum_threshold: float
    release_timeout: float
    layout_retry_ms: int


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    frame_rate: int
    # UI settings
    display: PrompterSettings
    tracking: TrackingSettings
    motion: MotionSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,
    # Timer fallback rate for the frame loop
    "frame_rate": 60,

    # Prompter display settings
    "display": {
        "mode": "timed",
        "speed": 5,
        "wordsPerMinute": None,
        "fontSize": 40,
        "lineHeight": 1.6,
        "letterSpacing": 0,
        "textAlign": "center",
        "baselinePercent": 50,
        "focusEnabled": False,
        "countdown": 0,
        "fontColor": "#ffffff",
        "bgColor": "#000000",
    },

    # Speech matching
    "tracking": {
        "strategy": "anchor",
        # Script characters to look ahead (observed values 80-300)
        "search_window": 150,
        "buffer_size": 60,
        "max_suffix_length": 20,
        "min_latin_suffix": 4,
        "distance_thresholds": [[8, 150], [5, 80], [3, 30]],
        "short_distance": 10,
        "cjk_multiplier": 1.5,
        "coverage_threshold": 0.6,
    },

    # Scroll motion
    "motion": {
        "ease_rate": 24.0,
        "dead_zone": 1.0,
        "momentum_decay": 0.95,
        "momentum_threshold": 10.0,
        "release_timeout": 0.1,
        "layout_retry_ms": 100,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.
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

    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))

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

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False,
                           sort_keys=False, allow_unicode=True)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", config_path, e)
        return False


def get_display_settings(config: Config) -> PrompterSettings:
    """Extract prompter display settings from config."""
    return _deep_merge(DEFAULT_CONFIG["display"],
                       config.get("display", {}))  # type: ignore[return-value]


def get_tracking_settings(config: Config) -> TrackingSettings:
    """Extract speech matching settings from config."""
    return _deep_merge(DEFAULT_CONFIG["tracking"],
                       config.get("tracking", {}))  # type: ignore[return-value]


def get_motion_settings(config: Config) -> MotionSettings:
    """Extract scroll motion settings from config."""
    return _deep_merge(DEFAULT_CONFIG["motion"],
                       config.get("motion", {}))  # type: ignore[return-value]


NUMERIC_DISPLAY_KEYS: tuple[str, ...] = (
    "speed", "wordsPerMinute", "fontSize", "lineHeight",
    "letterSpacing", "baselinePercent", "countdown",
)
# letterSpacing may tighten text below zero
NON_NEGATIVE_DISPLAY_KEYS: frozenset[str] = frozenset(NUMERIC_DISPLAY_KEYS) - {"letterSpacing"}


def coerce_display_settings(changes: dict[str, Any]) -> dict[str, Any]:
    """
    Check the numeric fields of a display settings change.

    Numeric strings are converted to floats. wordsPerMinute may be None.

    Returns:
        A new dict with coerced values.

    Raises:
        ValueError: If a numeric field is not a number or is out of range.
    """
    result: dict[str, Any] = dict(changes)
    for key in NUMERIC_DISPLAY_KEYS:
        if key not in result:
            continue
        value = result[key]
        if value is None and key == "wordsPerMinute":
            continue
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                raise ValueError(f"{key} must be a number, got {value!r}") from None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValueError(f"{key} must be finite, got {value!r}")
        if key in NON_NEGATIVE_DISPLAY_KEYS and value < 0:
            raise ValueError(f"{key} must not be negative, got {value!r}")
        result[key] = value
    return result


def update_config_display(config: Config, display_settings: PrompterSettings) -> Config:
    """
    Update the display section of the config with new settings.
    Returns a new config dict.
    """
    new_config: dict[str, Any] = _deep_merge({}, config)
    new_config["display"] = _deep_merge(
        new_config.get("display", {}),
        display_settings
    )
    return new_config  # type: ignore[return-value]
