"""Tests for the YAML record registry."""

from __future__ import annotations

import io
import textwrap

import pytest
from sqlalchemy import create_engine

from relbatch import (ConditionDelete, Databases, DatabaseSession,
                      RecordRegistry, RegistryError)
from relbatch.models import DatabaseConfig

from .conftest import metadata

DOCUMENT = textwrap.dedent(
    """
    records:
      parents:
        table: parents
        relations:
          children:
            target: kids
            link: {parent_id: id}
            on_delete:
              condition: {where: {x__gt: 10}}
      kids:
        table: children
      lines:
        table: order_lines
        primary_key: [order_id, line]
    """
)


@pytest.fixture
def databases(tmp_path):
    url = f"sqlite:///{tmp_path / 'registry.db'}"
    engine = create_engine(url)
    metadata.create_all(engine)
    engine.dispose()
    databases = Databases({"default": DatabaseSession(DatabaseConfig(url=url))})
    yield databases
    databases.dispose()


def test_load_yaml_builds_related_specs(databases) -> None:
    registry = RecordRegistry().load_yaml(io.StringIO(DOCUMENT), databases)
    assert len(registry) == 3
    assert "kids" in registry

    parents = registry.get("parents")
    relation = parents.relation("children")
    assert relation.target is registry.get("kids")
    assert relation.link == {"parent_id": "id"}
    assert relation.on_delete == ConditionDelete({"where": {"x__gt": 10}})
    assert registry.get("lines").primary_key == ("order_id", "line")


def test_load_yaml_from_path(tmp_path, databases) -> None:
    path = tmp_path / "records.yaml"
    path.write_text(DOCUMENT, encoding="utf-8")
    registry = RecordRegistry().load_yaml(path, databases)
    assert sorted(registry) == ["kids", "lines", "parents"]


def test_unknown_record(databases) -> None:
    with pytest.raises(RegistryError, match="'missing'"):
        RecordRegistry().get("missing")


@pytest.mark.parametrize(
    ("document", "message"),
    [
        ({}, "records"),
        ({"records": {"a": {"table": "parents", "relations": {"r": {"target": "b"}}}}}, "'b'"),
        ({"records": {"a": {"table": "parents", "relations": {"r": {}}}}}, "target"),
        (
            {
                "records": {
                    "a": {"table": "parents", "relations": {"r": {"target": "b"}}},
                    "b": {"table": "children", "relations": {"r": {"target": "a"}}},
                }
            },
            "cycle",
        ),
        (
            {
                "records": {
                    "a": {"table": "children"},
                    "b": {
                        "table": "parents",
                        "relations": {"r": {"target": "a", "on_delete": "cascade"}},
                    },
                }
            },
            "on_delete",
        ),
    ],
)
def test_invalid_documents(databases, document, message) -> None:
    with pytest.raises(RegistryError, match=message):
        RecordRegistry().load_document(document, databases)
