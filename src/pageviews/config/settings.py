"""Centralized configuration for the rollup engine.

Priority (highest to lowest):
1. Environment variables (PAGEVIEWS_*)
2. .env file
3. YAML config file (pageviews.yaml)
4. Dataclass defaults

Missing or invalid settings raise ConfigError with a clear message.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

__all__ = [
    "ConfigError",
    "Settings",
    "get_settings",
    "load_env_file",
    "load_settings",
    "load_yaml_config",
]

DEFAULT_CONFIG_FILE = "pageviews.yaml"

# Environment variable -> Settings field
ENV_MAPPINGS = {
    "PAGEVIEWS_DB_PATH": "db_path",
    "PAGEVIEWS_RETENTION_DAYS": "retention_days",
    "PAGEVIEWS_CACHE_TTL_SECONDS": "boundary_cache_ttl_seconds",
    "PAGEVIEWS_ALIGN_CUTOFF": "align_cutoff_to_local_day",
    "PAGEVIEWS_LANDING_PATH": "landing_path",
    "PAGEVIEWS_CHECKOUT_PATH": "checkout_path",
    "PAGEVIEWS_LOG_LEVEL": "log_level",
    "PAGEVIEWS_LOG_DIR": "log_dir",
}


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


@dataclass
class Settings:
    """Settings for the rollup engine.

    Attributes
    ----------
    db_path : Path
        SQLite database holding page views, summaries and orders (required)
    retention_days : int
        Age in days after which raw page views are archived and purged
    boundary_cache_ttl_seconds : int
        Lifetime of cached day/month boundaries
    align_cutoff_to_local_day : bool
        Snap the retention cutoff to the start of its local day
    landing_path : str
        Tracked landing page path
    checkout_path : str
        Tracked checkout page path
    log_level : str
        Logging level
    log_dir : Path | None
        Directory for the JSONL log file
    """

    db_path: Path
    retention_days: int = 3
    boundary_cache_ttl_seconds: int = 300
    align_cutoff_to_local_day: bool = True
    landing_path: str = "/"
    checkout_path: str = "/checkout"
    log_level: str = "INFO"
    log_dir: Path | None = None

    def __post_init__(self):
        """Validate settings after initialization."""
        if not self.db_path:
            raise ConfigError(
                "db_path is required. Set PAGEVIEWS_DB_PATH in .env or environment "
                "(e.g., PAGEVIEWS_DB_PATH=data/pageviews.db)"
            )

        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if self.log_dir and isinstance(self.log_dir, str):
            self.log_dir = Path(self.log_dir)

        try:
            self.retention_days = int(self.retention_days)
            self.boundary_cache_ttl_seconds = int(self.boundary_cache_ttl_seconds)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc

        if isinstance(self.align_cutoff_to_local_day, str):
            self.align_cutoff_to_local_day = self.align_cutoff_to_local_day.lower() in ("1", "true", "yes")

        if self.retention_days < 1:
            raise ConfigError(f"retention_days must be at least 1, got {self.retention_days}")
        if self.boundary_cache_ttl_seconds < 0:
            raise ConfigError(f"boundary_cache_ttl_seconds must be >= 0, got {self.boundary_cache_ttl_seconds}")
        if self.landing_path == self.checkout_path:
            raise ConfigError("landing_path and checkout_path must differ")

        self.log_level = str(self.log_level).upper()

    @property
    def retention_window(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def boundary_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.boundary_cache_ttl_seconds)


def load_env_file(env_file: Path) -> None:
    """Load environment variables from .env file.

    Existing environment variables win over the file.

    Parameters
    ----------
    env_file
        Path to .env file
    """
    with open(env_file, encoding="utf-8") as f:
        for line in f:
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()

                # Remove quotes
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                os.environ.setdefault(key, value)


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load the ``pageviews`` section (or the whole document) of a YAML file.

    Raises
    ------
    ConfigError
        If the file cannot be parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config from {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    section = data.get("pageviews", data)
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")
    return dict(section)


# Global settings instance
_settings: Settings | None = None


def load_settings(
    config_path: Path | str | None = None,
    env_file: Path | str | None = None,
) -> Settings:
    """Load settings from YAML, .env and environment.

    Parameters
    ----------
    config_path
        YAML config file (default: pageviews.yaml when present)
    env_file
        .env file (default: .env when present)

    Returns
    -------
    Settings
        Loaded settings

    Raises
    ------
    ConfigError
        If required settings are missing or invalid
    """
    global _settings

    values: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        values.update(load_yaml_config(config_path))
    elif Path(DEFAULT_CONFIG_FILE).exists():
        values.update(load_yaml_config(Path(DEFAULT_CONFIG_FILE)))

    env_path = Path(env_file) if env_file is not None else Path(".env")
    if env_path.exists():
        load_env_file(env_path)

    for env_var, field_name in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            values[field_name] = value

    if "db_path" not in values:
        raise ConfigError(
            "PAGEVIEWS_DB_PATH is required.\n\n"
            "Quick fix:\n"
            "  1. Set db_path in pageviews.yaml, or\n"
            "  2. Add PAGEVIEWS_DB_PATH=data/pageviews.db to .env, or\n"
            "  3. export PAGEVIEWS_DB_PATH=data/pageviews.db"
        )

    _settings = Settings(**values)
    return _settings


def get_settings() -> Settings:
    """Get current settings.

    Raises
    ------
    ConfigError
        If settings not loaded
    """
    if _settings is None:
        raise ConfigError("Settings not loaded. Call load_settings() first or set PAGEVIEWS_DB_PATH.")
    return _settings
