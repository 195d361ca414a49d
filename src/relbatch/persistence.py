"""Entry points that classify a payload and pick the batch or per-row path."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Union

from .batch import delete, insert_many, update_many, update_where, upsert_many
from .cascade import check_exist, create_record, find_exists, update_record
from .db_connector import DbConnection
from .dialects import InsertMode
from .schema import RecordSpec
from .values import as_rows

LOGGER = logging.getLogger("relbatch.persistence")

Result = Union[int, List[Dict[str, Any]]]

__all__ = ["create", "update", "delete", "insert"]


def create(db: DbConnection, spec: RecordSpec, body: Any, batch: bool = True) -> Result:
    """Create one row or many.

    ``batch`` writes everything with multi-row statements and returns the
    affected-row count; otherwise each row is created on its own and the
    created representations (children included) are returned.
    """
    rows = as_rows(body)
    if not batch:
        return [create_record(db, spec, row) for row in rows]
    return upsert_many(db, spec, rows, with_update=False)


def update(
    db: DbConnection,
    spec: RecordSpec,
    body: Any,
    only_update: bool = False,
    reference_columns: Optional[Sequence[str]] = None,
    batch: bool = True,
) -> Result:
    """Update rows.

    - ``{"edit": {...}, "where": {...}}`` updates every row matching the condition.
    - ``only_update`` issues a single CASE-based UPDATE keyed by ``reference_columns``.
    - ``batch=False`` matches each row against persisted rows and saves it with
      its relations, inserting rows that do not exist yet.
    - otherwise rows are upserted in one statement.
    """
    if isinstance(body, Mapping) and body.get("edit"):
        return update_where(db, spec, body["edit"], body)

    rows = as_rows(body)
    if only_update:
        return update_many(db, spec, rows, reference_columns)
    if not batch:
        existing = find_exists(db, spec, rows)
        LOGGER.debug("%d of %d %s rows already exist", len(existing), len(rows), spec.name)
        return [
            update_record(db, spec, row, check_exist(row, existing, spec.primary_key))
            for row in rows
        ]
    return upsert_many(db, spec, rows, with_update=True)


def insert(
    db: DbConnection,
    spec: RecordSpec,
    body: Any,
    mode: InsertMode = InsertMode.INSERT,
) -> int:
    return insert_many(db, spec, body, mode)
