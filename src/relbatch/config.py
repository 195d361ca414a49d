"""Configuration loading for relbatch."""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import (DEFAULT_CONNECTION_NAME, DEFAULT_DATABASE_URL,
                     DEFAULT_DB_CONNECT_TIMEOUT, DEFAULT_LOG_LEVEL,
                     DatabaseConfig, RelbatchConfig)

URL_PREFIX = "RELBATCH_DATABASE_URL_"
TRUTHY = {"1", "true", "yes", "on"}


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def load_config(
    environ: Optional[Mapping[str, str]] = None, dotenv: bool = True
) -> RelbatchConfig:
    """Load configuration from environment variables (and ``.env`` when present)."""
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    connect_timeout = max(
        0.0,
        _float(environ.get("RELBATCH_CONNECT_TIMEOUT"), DEFAULT_DB_CONNECT_TIMEOUT),
    )
    echo = _bool(environ.get("RELBATCH_ECHO_SQL"))

    default_url = environ.get("RELBATCH_DATABASE_URL", DEFAULT_DATABASE_URL).strip()
    if not default_url:
        raise ConfigurationError("RELBATCH_DATABASE_URL must not be empty")

    default_name = (
        environ.get("RELBATCH_DEFAULT_CONNECTION", DEFAULT_CONNECTION_NAME).strip()
        or DEFAULT_CONNECTION_NAME
    )
    databases: Dict[str, DatabaseConfig] = {
        default_name: DatabaseConfig(
            url=default_url, connect_timeout=connect_timeout, echo=echo
        )
    }
    # Extra connections: RELBATCH_DATABASE_URL_REPORTING -> "reporting".
    for key, value in environ.items():
        if not key.startswith(URL_PREFIX):
            continue
        name = key[len(URL_PREFIX):].lower()
        url = value.strip()
        if not name or not url:
            raise ConfigurationError(f"{key} must name a connection and a URL")
        databases[name] = DatabaseConfig(
            url=url, connect_timeout=connect_timeout, echo=echo
        )

    return RelbatchConfig(
        databases=databases,
        default_connection=default_name,
        registry_path=environ.get("RELBATCH_REGISTRY") or None,
        log_level=environ.get("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
