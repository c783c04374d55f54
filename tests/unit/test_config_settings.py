"""Tests for configuration loading."""

import os
from datetime import timedelta
from pathlib import Path

import pytest

from pageviews.config.settings import (
    ConfigError,
    Settings,
    get_settings,
    load_env_file,
    load_settings,
)


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    """Isolate each test from the caller's environment and working directory."""
    original_env = os.environ.copy()

    for var in [k for k in os.environ if k.startswith("PAGEVIEWS_")]:
        del os.environ[var]

    import pageviews.config.settings as settings_module

    settings_module._settings = None
    monkeypatch.chdir(tmp_path)

    yield

    os.environ.clear()
    os.environ.update(original_env)
    settings_module._settings = None


def test_settings_defaults():
    settings = Settings(db_path=Path("/data/pageviews.db"))

    assert settings.retention_days == 3
    assert settings.retention_window == timedelta(days=3)
    assert settings.boundary_cache_ttl == timedelta(minutes=5)
    assert settings.align_cutoff_to_local_day is True
    assert (settings.landing_path, settings.checkout_path) == ("/", "/checkout")


def test_settings_coerces_strings():
    settings = Settings(
        db_path="data/pv.db",
        retention_days="7",
        align_cutoff_to_local_day="false",
        log_level="debug",
        log_dir="logs",
    )

    assert settings.db_path == Path("data/pv.db")
    assert settings.retention_days == 7
    assert settings.align_cutoff_to_local_day is False
    assert settings.log_level == "DEBUG"
    assert settings.log_dir == Path("logs")


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"db_path": ""}, "db_path is required"),
        ({"db_path": "x.db", "retention_days": 0}, "retention_days"),
        ({"db_path": "x.db", "retention_days": "three"}, "Invalid numeric"),
        ({"db_path": "x.db", "landing_path": "/a", "checkout_path": "/a"}, "must differ"),
    ],
)
def test_invalid_settings(kwargs, message):
    with pytest.raises(ConfigError, match=message):
        Settings(**kwargs)


def test_load_settings_requires_db_path():
    with pytest.raises(ConfigError, match="PAGEVIEWS_DB_PATH is required"):
        load_settings()


def test_get_settings_before_load():
    with pytest.raises(ConfigError, match="not loaded"):
        get_settings()


def test_load_from_environment():
    os.environ["PAGEVIEWS_DB_PATH"] = "env.db"
    os.environ["PAGEVIEWS_RETENTION_DAYS"] = "5"

    settings = load_settings()

    assert settings.db_path == Path("env.db")
    assert settings.retention_days == 5
    assert get_settings() is settings


def test_load_env_file(tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text('# comment\n\nPAGEVIEWS_DB_PATH="quoted.db"\nPAGEVIEWS_CACHE_TTL_SECONDS=60\n')

    settings = load_settings(env_file=env_file)

    assert settings.db_path == Path("quoted.db")
    assert settings.boundary_cache_ttl_seconds == 60


def test_env_file_does_not_override_environment(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("PAGEVIEWS_DB_PATH=file.db\n")
    os.environ["PAGEVIEWS_DB_PATH"] = "env.db"

    load_env_file(env_file)

    assert os.environ["PAGEVIEWS_DB_PATH"] == "env.db"


def test_yaml_config_with_env_override(tmp_path):
    config = tmp_path / "pageviews.yaml"
    config.write_text("pageviews:\n  db_path: yaml.db\n  retention_days: 4\n  checkout_path: /buy\n")
    os.environ["PAGEVIEWS_RETENTION_DAYS"] = "6"

    settings = load_settings()

    assert settings.db_path == Path("yaml.db")
    assert settings.checkout_path == "/buy"
    assert settings.retention_days == 6


def test_yaml_unknown_keys_rejected(tmp_path):
    config = tmp_path / "other.yaml"
    config.write_text("db_path: a.db\nretention_weeks: 2\n")

    with pytest.raises(ConfigError, match="retention_weeks"):
        load_settings(config_path=config)


def test_yaml_missing_file():
    with pytest.raises(ConfigError, match="not found"):
        load_settings(config_path="missing.yaml")


def test_yaml_parse_error(tmp_path):
    config = tmp_path / "broken.yaml"
    config.write_text("pageviews: [unclosed\n")

    with pytest.raises(ConfigError, match="Failed to load"):
        load_settings(config_path=config)
