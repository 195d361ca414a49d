from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, Union

from pydantic import BaseModel
from sqlalchemy import Connection, Engine, MetaData, Table, create_engine, text
from sqlalchemy.exc import OperationalError

from .dialects import Dialect, dialect_for
from .errors import ConfigurationError, ConnectionTimeoutError
from .models import DEFAULT_CONNECTION_NAME, DatabaseConfig, RelbatchConfig, TableBinding
from .schema import RecordSpec, RelationSpec, record_spec_from_table
from .statement import Statement

LOGGER = logging.getLogger("relbatch.db")


class DbConnection:
    """Connection boundary every builder submits its statements through."""

    def __init__(self, connection: Connection, name: str = DEFAULT_CONNECTION_NAME) -> None:
        self.connection = connection
        self.name = name
        self.dialect: Dialect = dialect_for(connection.dialect.name)
        self._preparer = connection.dialect.identifier_preparer

    def quote_column_name(self, name: str) -> str:
        return self._preparer.quote(name)

    def quote_table_name(self, name: str) -> str:
        return ".".join(self._preparer.quote(part) for part in name.split("."))

    def execute(self, statement: Statement) -> int:
        """Run a mutation and return the driver-reported affected-row count."""
        clause, params = statement.compile()
        LOGGER.debug("%s [%d params] on %s", statement.sql, len(params), self.name)
        result = self.connection.execute(clause, params)
        return result.rowcount

    def insert(self, statement: Statement, returning: Sequence[str] = ()) -> Dict[str, Any]:
        """Run a single-row INSERT and return the generated key values."""
        if returning and self.dialect.insert_returning:
            statement.sql += " RETURNING " + ", ".join(
                self.quote_column_name(name) for name in returning
            )
        clause, params = statement.compile()
        LOGGER.debug("%s [%d params] on %s", statement.sql, len(params), self.name)
        result = self.connection.execute(clause, params)
        if not returning:
            return {}
        if self.dialect.insert_returning:
            row = result.mappings().first()
            return dict(row) if row is not None else {}
        if len(returning) == 1 and result.lastrowid:
            return {returning[0]: result.lastrowid}
        return {}

    def query(self, statement: Statement) -> List[Dict[str, Any]]:
        clause, params = statement.compile()
        LOGGER.debug("%s [%d params] on %s", statement.sql, len(params), self.name)
        return [dict(row) for row in self.connection.execute(clause, params).mappings()]


class DatabaseSession:
    """Manage the SQLAlchemy engine and the reflected table cache of one database."""

    def __init__(self, config: DatabaseConfig, name: str = DEFAULT_CONNECTION_NAME) -> None:
        self._config = config
        self.name = name
        self._engine: Optional[Engine] = None
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}

    def open(self) -> Engine:
        if self._engine is not None:
            return self._engine

        deadline = time.time() + self._config.connect_timeout
        attempts = 0
        while True:
            attempts += 1
            try:
                LOGGER.info("Creating SQLAlchemy engine for %s (attempt %s)", self.name, attempts)
                engine = create_engine(self._config.url, echo=self._config.echo)
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                self._engine = engine
                LOGGER.info("Connected to database %s", self.name)
                break
            except OperationalError as exc:
                if time.time() >= deadline:
                    raise ConnectionTimeoutError(
                        f"Database connection {self.name!r} timed out"
                    ) from exc
                LOGGER.warning("Database %s not ready yet (%s), retrying...", self.name, exc)
                time.sleep(min(2 * attempts, 10))

        return self._engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Engine not initialised; call open()")
        return self._engine

    @contextmanager
    def begin(self) -> Iterator[DbConnection]:
        """Transaction scope: commits on success, rolls back on any error."""
        with self.open().begin() as connection:
            yield DbConnection(connection, self.name)

    def table_schema(self, table_name: str) -> Table:
        table = self._tables.get(table_name)
        if table is None:
            schema, _, name = table_name.rpartition(".")
            table = Table(
                name, self._metadata, schema=schema or None, autoload_with=self.open()
            )
            self._tables[table_name] = table
        return table

    def record_spec(
        self,
        table: Union[str, TableBinding],
        name: Optional[str] = None,
        primary_key: Optional[Sequence[str]] = None,
        relations: Sequence[RelationSpec] = (),
        validator: Optional[Type[BaseModel]] = None,
    ) -> RecordSpec:
        table_name = table.table_name if isinstance(table, TableBinding) else table
        return record_spec_from_table(
            self.table_schema(table_name),
            name=name,
            primary_key=primary_key,
            relations=relations,
            validator=validator,
        )

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._tables.clear()
        self._metadata = MetaData()


class Databases:
    """Named database sessions."""

    def __init__(
        self,
        sessions: Dict[str, DatabaseSession],
        default: str = DEFAULT_CONNECTION_NAME,
    ) -> None:
        self._sessions = dict(sessions)
        self.default = default

    @classmethod
    def from_config(cls, config: RelbatchConfig) -> "Databases":
        sessions = {
            name: DatabaseSession(db_config, name)
            for name, db_config in config.databases.items()
        }
        return cls(sessions, config.default_connection)

    def get(self, name: Optional[str] = None) -> DatabaseSession:
        key = name or self.default
        try:
            return self._sessions[key]
        except KeyError:
            raise ConfigurationError(f"Unknown database connection {key!r}") from None

    def session_for(self, binding: TableBinding) -> DatabaseSession:
        return self.get(binding.connection_name)

    def record_spec(self, binding: TableBinding, **kwargs: Any) -> RecordSpec:
        return self.session_for(binding).record_spec(binding, **kwargs)

    def dispose(self) -> None:
        for session in self._sessions.values():
            session.dispose()
