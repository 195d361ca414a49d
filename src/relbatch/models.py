from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

DEFAULT_DATABASE_URL = "sqlite:///relbatch.db"
DEFAULT_CONNECTION_NAME = "default"
DEFAULT_DB_CONNECT_TIMEOUT = 30.0
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    connect_timeout: float = DEFAULT_DB_CONNECT_TIMEOUT
    echo: bool = False


@dataclass(frozen=True)
class TableBinding:
    """Binds an ad-hoc record type to a table on a named connection."""

    table_name: str
    connection_name: str = DEFAULT_CONNECTION_NAME


@dataclass(frozen=True)
class RelbatchConfig:
    databases: Dict[str, DatabaseConfig] = field(default_factory=dict)
    default_connection: str = DEFAULT_CONNECTION_NAME
    registry_path: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
