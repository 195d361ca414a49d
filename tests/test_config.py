"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from relbatch import ConfigurationError, load_config
from relbatch.models import DEFAULT_DATABASE_URL, DEFAULT_DB_CONNECT_TIMEOUT


def test_defaults() -> None:
    config = load_config(environ={}, dotenv=False)
    assert config.default_connection == "default"
    assert config.databases["default"].url == DEFAULT_DATABASE_URL
    assert config.databases["default"].connect_timeout == DEFAULT_DB_CONNECT_TIMEOUT
    assert config.databases["default"].echo is False
    assert config.registry_path is None
    assert config.log_level == "INFO"


def test_extra_connections_and_flags() -> None:
    config = load_config(
        environ={
            "RELBATCH_DATABASE_URL": "sqlite:///main.db",
            "RELBATCH_DATABASE_URL_REPORTING": "sqlite:///reporting.db",
            "RELBATCH_CONNECT_TIMEOUT": "5",
            "RELBATCH_ECHO_SQL": "yes",
            "RELBATCH_REGISTRY": "records.yaml",
            "LOG_LEVEL": "debug",
        },
        dotenv=False,
    )
    assert set(config.databases) == {"default", "reporting"}
    assert config.databases["reporting"].url == "sqlite:///reporting.db"
    assert config.databases["reporting"].connect_timeout == 5.0
    assert config.databases["default"].echo is True
    assert config.registry_path == "records.yaml"
    assert config.log_level == "DEBUG"


def test_renamed_default_connection() -> None:
    config = load_config(environ={"RELBATCH_DEFAULT_CONNECTION": "main"}, dotenv=False)
    assert config.default_connection == "main"
    assert list(config.databases) == ["main"]


def test_bad_timeout_falls_back() -> None:
    config = load_config(environ={"RELBATCH_CONNECT_TIMEOUT": "soon"}, dotenv=False)
    assert config.databases["default"].connect_timeout == DEFAULT_DB_CONNECT_TIMEOUT


def test_negative_timeout_is_clamped() -> None:
    config = load_config(environ={"RELBATCH_CONNECT_TIMEOUT": "-3"}, dotenv=False)
    assert config.databases["default"].connect_timeout == 0.0


@pytest.mark.parametrize(
    "environ",
    [
        {"RELBATCH_DATABASE_URL": "  "},
        {"RELBATCH_DATABASE_URL_": "sqlite://"},
        {"RELBATCH_DATABASE_URL_OTHER": ""},
    ],
)
def test_invalid_urls(environ) -> None:
    with pytest.raises(ConfigurationError):
        load_config(environ=environ, dotenv=False)
