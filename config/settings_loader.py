"""
YAML settings loader for the surveillance engine.
Provides cached access to base.yaml settings and the detection config built from them.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.exceptions import ConfigValidationError, MissingConfigError
from surveillance.config import AnomalyDetectionConfig, merge_config

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SURVEILLANCE_CONFIG_PATH"

_settings_cache: Optional[Dict[str, Any]] = None


def get_config_path() -> Path:
    """Return path to the settings file."""
    # Environment variable first, then the bundled base.yaml
    env_path = os.getenv(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return Path(__file__).parent / "base.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(
                "Settings file is not valid YAML", context={"path": str(path)}, cause=e
            ) from e
    if not isinstance(data, dict):
        raise ConfigValidationError(
            "Settings file must contain a mapping", context={"path": str(path)}
        )
    return data


def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """
    Load and cache settings.

    A missing default file yields empty settings; a missing file named by
    SURVEILLANCE_CONFIG_PATH is an error.
    """
    global _settings_cache
    if _settings_cache is not None and not force_reload:
        return _settings_cache

    config_path = get_config_path()
    if not config_path.exists():
        if os.getenv(CONFIG_PATH_ENV):
            raise MissingConfigError(
                "Settings file not found", context={"path": str(config_path), "env": CONFIG_PATH_ENV}
            )
        logger.debug(f"No settings file at {config_path}, using defaults")
        _settings_cache = {}
        return _settings_cache

    _settings_cache = _read_yaml(config_path)
    return _settings_cache


def load_settings_file(path: str | Path) -> Dict[str, Any]:
    """Read a settings file without touching the cache."""
    p = Path(path)
    if not p.exists():
        raise MissingConfigError("Settings file not found", context={"path": str(p)})
    return _read_yaml(p)


def get_setting(path: str, default: Any = None) -> Any:
    """
    Get a nested setting by dot-notation path.
    Example: get_setting("anomaly_detection.thresholds.volume_z_score", 2.5)
    """
    value: Any = load_settings()
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def load_detection_config(settings: Optional[Dict[str, Any]] = None) -> AnomalyDetectionConfig:
    """
    Build the detection config from the ``anomaly_detection`` section of
    the settings (cached settings when none are given), over the defaults.

    Raises:
        ConfigValidationError: If the section is not a mapping or fails validation
    """
    source = load_settings() if settings is None else settings
    section = source.get("anomaly_detection") or {}
    if not isinstance(section, dict):
        raise ConfigValidationError("anomaly_detection must be a mapping")
    return merge_config(section)


def get_default_window_ms() -> int:
    """Scan window, falling back to the short detection window."""
    configured = get_setting("scan.window_ms")
    if configured is None:
        return load_detection_config().windows.short
    return int(configured)


def clear_settings_cache() -> None:
    global _settings_cache
    _settings_cache = None
