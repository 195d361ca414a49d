"""Dialect-specific fragments of the batch statements."""

from __future__ import annotations

import enum
from typing import Dict, Sequence


class InsertMode(str, enum.Enum):
    INSERT = "INSERT"
    REPLACE = "REPLACE"
    INSERT_IGNORE = "INSERT IGNORE"


class Dialect:
    """MySQL-flavoured defaults; other engines override what differs."""

    name = "mysql"
    insert_returning = False

    def insert_keyword(self, mode: InsertMode) -> str:
        return InsertMode(mode).value

    def insert_suffix(
        self, mode: InsertMode, primary_key: Sequence[str], columns: Sequence[str]
    ) -> str:
        return ""

    def upsert_clause(
        self, primary_key: Sequence[str], update_columns: Sequence[str]
    ) -> str:
        if not update_columns:
            return ""
        sets = ", ".join(f"{col} = VALUES({col})" for col in update_columns)
        return f" ON DUPLICATE KEY UPDATE {sets}"

    def row_in(self, columns: Sequence[str], rows: Sequence[str]) -> str:
        """``columns IN rows`` where each row is an already rendered ``(?, ?)`` group."""
        if len(columns) == 1:
            return f"{columns[0]} IN ({', '.join(rows)})"
        return f"({', '.join(columns)}) IN ({', '.join(rows)})"

    def empty_insert(self, table: str) -> str:
        return f"INSERT INTO {table} () VALUES ()"


class SQLiteDialect(Dialect):
    name = "sqlite"

    def insert_keyword(self, mode: InsertMode) -> str:
        if InsertMode(mode) is InsertMode.INSERT_IGNORE:
            return "INSERT OR IGNORE"
        return InsertMode(mode).value

    def upsert_clause(
        self, primary_key: Sequence[str], update_columns: Sequence[str]
    ) -> str:
        target = ", ".join(primary_key)
        if not update_columns:
            return f" ON CONFLICT ({target}) DO NOTHING"
        sets = ", ".join(f"{col} = excluded.{col}" for col in update_columns)
        return f" ON CONFLICT ({target}) DO UPDATE SET {sets}"

    def row_in(self, columns: Sequence[str], rows: Sequence[str]) -> str:
        # SQLite only accepts a subquery on the right of a row-value IN.
        if len(columns) == 1:
            return super().row_in(columns, rows)
        return f"({', '.join(columns)}) IN (VALUES {', '.join(rows)})"

    def empty_insert(self, table: str) -> str:
        return f"INSERT INTO {table} DEFAULT VALUES"


class PostgreSQLDialect(SQLiteDialect):
    name = "postgresql"
    insert_returning = True

    def insert_keyword(self, mode: InsertMode) -> str:
        return "INSERT"

    def insert_suffix(
        self, mode: InsertMode, primary_key: Sequence[str], columns: Sequence[str]
    ) -> str:
        mode = InsertMode(mode)
        if mode is InsertMode.INSERT_IGNORE:
            return " ON CONFLICT DO NOTHING"
        if mode is InsertMode.REPLACE:
            return self.upsert_clause(
                primary_key, [c for c in columns if c not in primary_key]
            )
        return ""

    def row_in(self, columns: Sequence[str], rows: Sequence[str]) -> str:
        return Dialect.row_in(self, columns, rows)


DIALECTS: Dict[str, Dialect] = {
    "mysql": Dialect(),
    "mariadb": Dialect(),
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
}


def dialect_for(name: str) -> Dialect:
    return DIALECTS.get(name, DIALECTS["mysql"])
