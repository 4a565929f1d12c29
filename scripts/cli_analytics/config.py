"""
Configuration for the analytics tracker.

Provides:
- Config: the values a Tracker is constructed with
- AnalyticsSettings: JSON file loading with defaults, environment variable
  overrides and dot-notation access, used by the console script
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from .client import CollectorClient, SegmentClient

logger = logging.getLogger("cli_analytics")


@dataclass
class Config:
    """
    Tracker configuration.

    Attributes:
        write_key: Collector write key
        dir: State directory, relative to the home directory
        log: Logger for diagnostics (optional)
        client_factory: Builds a collector client from the write key
    """
    write_key: str
    dir: str
    log: Optional[logging.Logger] = None
    client_factory: Callable[[str], CollectorClient] = field(default=SegmentClient)

    def __post_init__(self):
        if not self.write_key:
            raise ValueError("write_key is required")
        if not self.dir:
            raise ValueError("dir is required")
        if self.log is None:
            self.log = logger


DEFAULTS = {
    "write_key": "",
    "dir": ".cli-analytics",
    "flush": {
        "above_size": 15,
        "above_duration_sec": 60.0
    }
}

ENV_OVERRIDES = {
    "CLI_ANALYTICS_WRITE_KEY": ("write_key", str),
    "CLI_ANALYTICS_DIR": ("dir", str),
    "CLI_ANALYTICS_FLUSH_SIZE": ("flush.above_size", int),
    "CLI_ANALYTICS_FLUSH_INTERVAL_SEC": ("flush.above_duration_sec", float),
}


class AnalyticsSettings:
    """
    Settings loaded from an optional JSON file and the environment.

    Usage:
        settings = AnalyticsSettings.load(Path("analytics.json"))
        tracker = Tracker(settings.to_config())
        tracker.conditional_flush(settings.above_size, settings.above_duration)
    """

    def __init__(self, values: Optional[dict] = None):
        self._config = copy.deepcopy(DEFAULTS)
        if values:
            _merge(self._config, values)

    @classmethod
    def load(cls, config_path: Optional[Path] = None, environ=None) -> "AnalyticsSettings":
        """
        Load settings from file, then apply environment overrides.

        Args:
            config_path: Path to a JSON settings file (optional)
            environ: Environment mapping (defaults to os.environ)

        Returns:
            AnalyticsSettings instance
        """
        settings = cls()

        if config_path is not None and Path(config_path).exists():
            try:
                with open(config_path) as f:
                    _merge(settings._config, json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load config from %s: %s", config_path, e)

        settings._apply_env_overrides(os.environ if environ is None else environ)
        return settings

    def _apply_env_overrides(self, environ):
        """Apply environment variable overrides."""
        for name, (key, cast) in ENV_OVERRIDES.items():
            if name not in environ:
                continue
            try:
                self.set(key, cast(environ[name]))
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", name, environ[name])

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value with dot notation.

        Args:
            key: Configuration key (e.g., "flush.above_size")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for k in key.split('.'):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def set(self, key: str, value: Any):
        """Set a value with dot notation (runtime only, not persisted)."""
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            config = config.setdefault(k, {})

        config[keys[-1]] = value

    @property
    def above_size(self) -> int:
        return int(self.get("flush.above_size"))

    @property
    def above_duration(self) -> timedelta:
        return timedelta(seconds=float(self.get("flush.above_duration_sec")))

    def to_config(self, **overrides) -> Config:
        """Build a tracker Config from these settings."""
        values = {"write_key": self.get("write_key"), "dir": self.get("dir")}
        values.update(overrides)
        return Config(**values)

    def get_all(self) -> dict:
        return copy.deepcopy(self._config)


def _merge(target: dict, source: dict):
    """Deep merge source dictionary into target."""
    for key, value in source.items():
        if key in target and isinstance(target[key], dict) and isinstance(value, dict):
            _merge(target[key], value)
        else:
            target[key] = value
