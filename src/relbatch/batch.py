"""Multi-row INSERT, upsert, CASE-based UPDATE and DELETE statements."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .conditions import hash_condition, is_search_key, search_condition
from .db_connector import DbConnection
from .dialects import InsertMode
from .errors import InvalidArgumentError, ValidationAggregateError
from .record import Record
from .schema import CallbackDelete, ConditionDelete, RecordSpec, RelationSpec
from .statement import Statement
from .values import (as_rows, cast_value, encode_value, is_reference_scalar,
                     is_row_list, resolve_columns)

LOGGER = logging.getLogger("relbatch.batch")


def _dump(row: Mapping[str, Any]) -> str:
    return json.dumps(row, default=str, ensure_ascii=False)


def validate_rows(db: DbConnection, spec: RecordSpec, rows: Sequence[Mapping[str, Any]]) -> List[Record]:
    """Load and validate every row; raise one aggregated error for all failures."""
    records: List[Record] = []
    messages: List[str] = []
    errors: Dict[int, Dict[str, str]] = {}
    for index, body in enumerate(rows):
        record = Record(spec, db)
        record.load(body)
        if not record.validate():
            messages.append(record.first_error() or f"row {index} is invalid")
            errors[index] = record.first_errors()
            continue
        record.is_new = False
        records.append(record)
    if messages:
        raise ValidationAggregateError(messages, errors)
    return records


def row_values(spec: RecordSpec, record: Record, body: Mapping[str, Any]) -> Dict[str, Any]:
    values = record.to_dict()
    for key in spec.primary_key:
        if values.get(key) is None and body.get(key) is not None:
            values[key] = body[key]
    return values


def _values_groups(
    spec: RecordSpec, columns: Sequence[str], rows: Sequence[Mapping[str, Any]], stmt: Statement
) -> str:
    groups = []
    for values in rows:
        placeholders = [
            stmt.add(encode_value(values.get(name), spec.column(name))) for name in columns
        ]
        groups.append("(" + ", ".join(placeholders) + ")")
    return ", ".join(groups)


def _insert_statement(
    db: DbConnection, spec: RecordSpec, keyword: str, rows: Sequence[Mapping[str, Any]]
) -> Tuple[Statement, List[str]]:
    columns = resolve_columns(rows[0])
    if not columns:
        raise InvalidArgumentError(f"first {spec.name} row has no known columns")
    stmt = Statement()
    cols = ", ".join(db.quote_column_name(name) for name in columns)
    values = _values_groups(spec, columns, rows, stmt)
    stmt.sql = f"{keyword} INTO {db.quote_table_name(spec.table_name)} ({cols}) VALUES {values}"
    return stmt, columns


def insert_many(
    db: DbConnection,
    spec: RecordSpec,
    rows: Any,
    mode: InsertMode = InsertMode.INSERT,
) -> int:
    """Insert all rows with one ``INSERT``/``REPLACE``/``INSERT IGNORE`` statement."""
    rows = as_rows(rows)
    if not rows:
        return 0
    records = validate_rows(db, spec, rows)
    values = [row_values(spec, record, body) for record, body in zip(records, rows)]

    stmt, columns = _insert_statement(db, spec, db.dialect.insert_keyword(mode), values)
    stmt.sql += db.dialect.insert_suffix(
        mode,
        [db.quote_column_name(key) for key in spec.primary_key],
        [db.quote_column_name(name) for name in columns],
    )
    count = db.execute(stmt)
    LOGGER.debug("%s of %d rows into %s affected %d", InsertMode(mode).value, len(rows), spec.name, count)
    return count


def apply_delete_policy(
    db: DbConnection, relation: RelationSpec, children: List[Dict[str, Any]]
) -> None:
    policy = relation.on_delete
    if isinstance(policy, ConditionDelete):
        removed = delete_matching(db, relation.target, policy.condition)
        LOGGER.debug("Delete policy of %s removed %d rows", relation.name, removed)
    elif isinstance(policy, CallbackDelete):
        policy.callback(relation.target, children)


def link_children(
    relation: RelationSpec, parent: Record, children: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    for child in children:
        for child_attr, parent_attr in relation.link.items():
            child[child_attr] = parent.get_attribute(parent_attr)
    return children


def upsert_many(
    db: DbConnection,
    spec: RecordSpec,
    rows: Any,
    with_update: bool = True,
) -> int:
    """Insert all rows with one statement, cascading declared relations first.

    With ``with_update`` every non-key column is refreshed on a key conflict.
    A child batch that affects no rows aborts the call and returns 0.
    """
    rows = as_rows(rows)
    if not rows:
        return 0
    records = validate_rows(db, spec, rows)

    values: List[Dict[str, Any]] = []
    for record, body in zip(records, rows):
        item = {**body, **record.to_dict()}
        for relation in spec.relations:
            if not item.get(relation.name):
                continue
            children = link_children(relation, record, as_rows(item[relation.name]))
            apply_delete_policy(db, relation, children)
            if upsert_many(db, relation.target, children, with_update=False) == 0:
                LOGGER.info(
                    "Cascade into %s.%s affected no rows; skipping %s",
                    spec.name,
                    relation.name,
                    spec.name,
                )
                return 0
        values.append(row_values(spec, record, body))

    stmt, columns = _insert_statement(db, spec, "INSERT", values)
    if with_update:
        stmt.sql += db.dialect.upsert_clause(
            [db.quote_column_name(key) for key in spec.primary_key],
            [db.quote_column_name(c) for c in columns if c not in spec.primary_key],
        )
    count = db.execute(stmt)
    LOGGER.debug("Upsert of %d rows into %s affected %d", len(rows), spec.name, count)
    return count


def _reference_key(
    spec: RecordSpec, index: int, row: Mapping[str, Any], references: Sequence[str]
) -> Tuple[Any, ...]:
    key = []
    for ref in references:
        if row.get(ref) is None:
            raise InvalidArgumentError(f"row {index} has no field {ref!r}\n{_dump(row)}")
        value = cast_value(row[ref], spec.column(ref))
        if not is_reference_scalar(value):
            raise InvalidArgumentError(
                f"row {index}: value of {ref!r} is not supported\n{_dump(row)}"
            )
        key.append(value)
    return tuple(key)


def _key_groups(keys: Sequence[Tuple[Any, ...]], stmt: Statement) -> List[str]:
    if keys and len(keys[0]) == 1:
        return [stmt.bind_all(key) for key in keys]
    return ["(" + stmt.bind_all(key) + ")" for key in keys]


def update_many(
    db: DbConnection,
    spec: RecordSpec,
    rows: Any,
    reference_columns: Optional[Sequence[str]] = None,
) -> int:
    """Update many rows at once with one ``CASE`` per column.

    Rows are matched on ``reference_columns`` (the primary key by default); the
    updated columns are the first row's keys minus the reference columns.
    """
    rows = as_rows(rows)
    if not rows:
        return 0
    references = tuple(reference_columns) if reference_columns else spec.primary_key
    update_columns = [
        name for name in rows[0] if name not in references and spec.has_column(name)
    ]
    keys = [_reference_key(spec, index, row, references) for index, row in enumerate(rows)]
    if not update_columns:
        LOGGER.debug("Nothing to update in %s: no columns besides %s", spec.name, references)
        return 0

    stmt = Statement()
    quoted_refs = [db.quote_column_name(ref) for ref in references]
    match = " AND ".join(f"{ref} = ?" for ref in quoted_refs)
    sets = []
    for name in update_columns:
        col = db.quote_column_name(name)
        branches = []
        for row, key in zip(rows, keys):
            stmt.params.extend(key)
            value = stmt.add(encode_value(row.get(name), spec.column(name)))
            branches.append(f"WHEN {match} THEN {value}")
        sets.append(f"{col} = CASE {' '.join(branches)} ELSE {col} END")

    # One WHERE tuple per distinct key; duplicate rows still get their own WHEN.
    targets = list(dict.fromkeys(keys))
    where = db.dialect.row_in(quoted_refs, _key_groups(targets, stmt))
    stmt.sql = f"UPDATE {db.quote_table_name(spec.table_name)} SET {', '.join(sets)} WHERE {where}"
    count = db.execute(stmt)
    LOGGER.debug("CASE update of %d rows in %s affected %d", len(rows), spec.name, count)
    return count


def _delete_by(db: DbConnection, spec: RecordSpec, condition: Statement) -> int:
    if not condition.sql:
        LOGGER.warning("Refusing to delete from %s without a condition", spec.name)
        return 0
    stmt = Statement()
    where = stmt.extend(condition)
    stmt.sql = f"DELETE FROM {db.quote_table_name(spec.table_name)} WHERE {where}"
    return db.execute(stmt)


def delete_where(db: DbConnection, spec: RecordSpec, condition: Mapping[str, Any]) -> int:
    """Delete rows matching a ``column -> value`` mapping."""
    return _delete_by(db, spec, hash_condition(db, spec, condition))


def delete_matching(db: DbConnection, spec: RecordSpec, condition: Mapping[str, Any]) -> int:
    if any(is_search_key(key) for key in condition):
        return _delete_by(db, spec, search_condition(db, spec, condition))
    return delete_where(db, spec, condition)


def delete_many(db: DbConnection, spec: RecordSpec, rows: Any) -> int:
    """Delete rows by primary key, deleting their declared children first."""
    rows = as_rows(rows)
    if not rows:
        return 0

    keys: List[Tuple[Any, ...]] = []
    for row in rows:
        record = Record(spec, db)
        record.load(row)
        record.is_new = False
        for relation in spec.relations:
            if not row.get(relation.name):
                continue
            if delete_many(db, relation.target, row[relation.name]) == 0:
                LOGGER.info(
                    "Cascade delete of %s.%s removed nothing; keeping %s",
                    spec.name,
                    relation.name,
                    spec.name,
                )
                return 0
        key = tuple(record.get_attribute(name) for name in spec.primary_key)
        if all(value is not None for value in key):
            keys.append(key)

    if not keys:
        return 0

    stmt = Statement()
    groups = []
    for key in keys:
        markers = [
            stmt.add(encode_value(value, spec.column(name)))
            for name, value in zip(spec.primary_key, key)
        ]
        joined = ", ".join(markers)
        groups.append(joined if len(markers) == 1 else f"({joined})")
    where = db.dialect.row_in([db.quote_column_name(k) for k in spec.primary_key], groups)
    stmt.sql = f"DELETE FROM {db.quote_table_name(spec.table_name)} WHERE {where}"
    count = db.execute(stmt)
    LOGGER.debug("Delete of %d keys from %s affected %d", len(keys), spec.name, count)
    return count


def delete(db: DbConnection, spec: RecordSpec, body: Any) -> int:
    """Delete by row list, by primary-key mapping, or by a ``where`` payload."""
    if is_row_list(body):
        return delete_many(db, spec, body)
    if not isinstance(body, Mapping):
        return 0

    if set(body) & set(spec.primary_key):
        condition = {
            key: body[key] for key in spec.primary_key if body.get(key) is not None
        }
        if not condition:
            return 0
        for relation in spec.relations:
            children = body.get(relation.name)
            if not children:
                continue
            if is_row_list(children):
                removed = delete_many(db, relation.target, children)
            else:
                removed = delete_matching(db, relation.target, children)
            if removed == 0:
                LOGGER.info("No %s rows matched %r; keeping %s", relation.name, children, spec.name)
                return 0
        return delete_where(db, spec, condition)

    if any(is_search_key(key) for key in body):
        return _delete_by(db, spec, search_condition(db, spec, body))
    return 0


def update_where(
    db: DbConnection,
    spec: RecordSpec,
    values: Mapping[str, Any],
    condition: Mapping[str, Any],
) -> int:
    """``UPDATE ... SET values WHERE <search condition of condition>``."""
    stmt = Statement()
    sets = [
        f"{db.quote_column_name(name)} = {stmt.add(encode_value(value, spec.column(name)))}"
        for name, value in values.items()
        if spec.has_column(name)
    ]
    if not sets:
        return 0
    where = search_condition(db, spec, condition)
    if not where.sql:
        LOGGER.warning("Refusing to update %s without a condition", spec.name)
        return 0
    clause = stmt.extend(where)
    stmt.sql = f"UPDATE {db.quote_table_name(spec.table_name)} SET {', '.join(sets)} WHERE {clause}"
    return db.execute(stmt)
