"""Pytest configuration and fixtures."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import (JSON, Column, ForeignKey, Integer, MetaData, Table,
                        Text, create_engine, text)
from sqlalchemy.dialects.mysql.base import MySQLDialect
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.dialects.sqlite.base import SQLiteDialect

from relbatch import DbConnection, record_spec_from_table
from relbatch.statement import Statement

metadata = MetaData()

parents = Table(
    "parents",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", Text, nullable=False),
    Column("score", Integer),
    Column("payload", JSON),
)

children = Table(
    "children",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("parent_id", Integer, ForeignKey("parents.id")),
    Column("x", Integer),
    Column("label", Text),
)

order_lines = Table(
    "order_lines",
    metadata,
    Column("order_id", Integer, primary_key=True),
    Column("line", Integer, primary_key=True),
    Column("qty", Integer),
    Column("note", Text),
)


class ParentRow(BaseModel):
    """Validation rules for ``parents`` rows."""

    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    title: str = Field(min_length=1)
    score: Optional[int] = None


DIALECTS = {
    "mysql": MySQLDialect,
    "postgresql": PGDialect,
    "sqlite": SQLiteDialect,
}


class RecordingDb(DbConnection):
    """Connection double that records statements instead of running them."""

    def __init__(self, dialect: str = "mysql", rowcount: int = 1) -> None:
        super().__init__(SimpleNamespace(dialect=DIALECTS[dialect]()), name="recording")
        self.statements: List[Statement] = []
        self.rowcount = rowcount

    def execute(self, statement: Statement) -> int:
        self.statements.append(statement)
        return self.rowcount

    def query(self, statement: Statement) -> List[Dict[str, Any]]:
        self.statements.append(statement)
        return []


def fetch(db: DbConnection, sql: str, **params: Any) -> List[Dict[str, Any]]:
    return [dict(row) for row in db.connection.execute(text(sql), params).mappings()]


@pytest.fixture
def engine():
    """In-memory SQLite engine with the test tables created."""
    engine = create_engine("sqlite://")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with engine.begin() as connection:
        yield DbConnection(connection)


@pytest.fixture
def mysql_db() -> RecordingDb:
    return RecordingDb("mysql")


@pytest.fixture
def child_spec():
    return record_spec_from_table(children)


@pytest.fixture
def parent_spec(child_spec):
    return record_spec_from_table(parents, validator=ParentRow).with_relation(
        "children", child_spec, {"parent_id": "id"}
    )


@pytest.fixture
def plain_parent_spec():
    return record_spec_from_table(parents)


@pytest.fixture
def line_spec():
    return record_spec_from_table(order_lines)
