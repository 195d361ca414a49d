"""Per-row create/update path that walks declared relations one record at a time."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence

from .batch import apply_delete_policy, link_children
from .db_connector import DbConnection
from .errors import PersistenceError, ValidationAggregateError
from .record import Record
from .schema import RecordSpec
from .statement import Statement
from .values import as_rows, encode_value

LOGGER = logging.getLogger("relbatch.cascade")


def _raise_for(record: Record, action: str) -> None:
    if record.has_errors():
        raise ValidationAggregateError(
            [record.first_error() or ""], {0: record.first_errors()}
        )
    raise PersistenceError(f"Failed to {action} the {record.spec.name} for unknown reason.")


def create_record(db: DbConnection, spec: RecordSpec, body: Mapping[str, Any]) -> Dict[str, Any]:
    """Insert one row, then every related child present in ``body``."""
    record = Record(spec, db)
    record.load(body)
    if not record.save():
        _raise_for(record, "create")

    result = record.to_dict()
    for relation in spec.relations:
        if not body.get(relation.name):
            continue
        children = link_children(relation, record, as_rows(body[relation.name]))
        result[relation.name] = [
            create_record(db, relation.target, child) for child in children
        ]
        LOGGER.debug("Created %d %s rows under %s", len(children), relation.name, spec.name)
    return result


def find_exists(db: DbConnection, spec: RecordSpec, rows: Any) -> List[Dict[str, Any]]:
    """Fetch persisted rows whose primary key values appear among ``rows``.

    Every primary-key column must occur in at least one candidate; otherwise
    there is nothing to match and an empty list is returned.
    """
    rows = as_rows(rows)
    condition: Dict[str, List[Any]] = {}
    for key in spec.primary_key:
        for row in rows:
            if key in row:
                condition.setdefault(key, []).append(row[key])
    if not condition or len(condition) != len(spec.primary_key):
        return []

    stmt = Statement()
    parts = []
    for key, values in condition.items():
        markers = ", ".join(stmt.add(encode_value(v, spec.column(key))) for v in values)
        parts.append(f"{db.quote_column_name(key)} IN ({markers})")
    stmt.sql = f"SELECT * FROM {db.quote_table_name(spec.table_name)} WHERE {' AND '.join(parts)}"
    return db.query(stmt)


def check_exist(
    row: Mapping[str, Any],
    existing: Sequence[Mapping[str, Any]],
    key_columns: Sequence[str] = (),
) -> Optional[Dict[str, Any]]:
    """Return the first existing row equal to ``row`` on every key column."""
    if not existing or not key_columns:
        return None
    for candidate in existing:
        if all(
            row.get(key) is not None and key in candidate and row[key] == candidate[key]
            for key in key_columns
        ):
            return dict(candidate)
    return None


def update_record(
    db: DbConnection,
    spec: RecordSpec,
    body: Mapping[str, Any],
    existing: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Save one row against its persisted baseline, then cascade into relations.

    ``existing`` is the matched persisted row, or ``None`` to insert.
    """
    record = Record(spec, db)
    record.set_old_attributes(existing)
    record.load(body)
    if not record.save():
        _raise_for(record, "update")

    result = record.to_dict()
    for relation in spec.relations:
        if not body.get(relation.name):
            continue
        children = as_rows(body[relation.name])
        apply_delete_policy(db, relation, children)
        persisted = find_exists(db, relation.target, children)
        results = []
        for child in link_children(relation, record, children):
            match = check_exist(child, persisted, relation.target.primary_key)
            results.append(update_record(db, relation.target, child, match))
        result[relation.name] = results
    return result
