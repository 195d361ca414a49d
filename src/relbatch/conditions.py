"""Translate generic mapping payloads into WHERE clauses."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, List, Tuple

from .db_connector import DbConnection
from .errors import InvalidArgumentError
from .schema import RecordSpec
from .statement import Statement
from .values import encode_value

OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "in": "IN",
    "notin": "NOT IN",
    "like": "LIKE",
    "contains": "LIKE",
    "startswith": "LIKE",
    "endswith": "LIKE",
    "isnull": "IS NULL",
}


def parse_filter_key(key: str) -> Tuple[str, str]:
    """Split ``age__gte`` into ``("age", "gte")``; bare names compare with ``eq``."""
    if "__" in key:
        column, op = key.rsplit("__", 1)
        if op in OPERATORS:
            return column, op
    return key, "eq"


def _column(db: DbConnection, spec: RecordSpec, name: str) -> str:
    if not spec.has_column(name):
        raise InvalidArgumentError(f"{spec.name} has no column {name!r}")
    return db.quote_column_name(name)


def _list_values(value: Any) -> List[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, set, frozenset)):
        return [value]
    return list(value)


def build_filter(
    db: DbConnection, spec: RecordSpec, key: str, value: Any, stmt: Statement
) -> str:
    name, op = parse_filter_key(key)
    col = _column(db, spec, name)
    schema = spec.column(name)

    if op == "eq" and value is None:
        return f"{col} IS NULL"
    if op == "ne" and value is None:
        return f"{col} IS NOT NULL"
    if op == "isnull":
        return f"{col} IS NULL" if value else f"{col} IS NOT NULL"
    if op in ("in", "notin"):
        values = _list_values(value)
        if not values:
            # Empty IN never matches; empty NOT IN always does.
            return "1 = 0" if op == "in" else "1 = 1"
        markers = ", ".join(stmt.add(encode_value(v, schema)) for v in values)
        return f"{col} {OPERATORS[op]} ({markers})"
    if op in ("contains", "startswith", "endswith"):
        pattern = {
            "contains": "%{}%",
            "startswith": "{}%",
            "endswith": "%{}",
        }[op].format(value)
        stmt.params.append(pattern)
        return f"{col} LIKE ?"
    if op == "like":
        stmt.params.append(value)
        return f"{col} LIKE ?"
    return f"{col} {OPERATORS[op]} {stmt.add(encode_value(value, schema))}"


def hash_condition(
    db: DbConnection, spec: RecordSpec, condition: Mapping[str, Any]
) -> Statement:
    """``{"a": 1, "b": [2, 3]}`` -> ``a = ? AND b IN (?, ?)``."""
    stmt = Statement()
    parts = []
    for key, value in condition.items():
        col = _column(db, spec, key)
        if value is None:
            parts.append(f"{col} IS NULL")
        elif isinstance(value, (list, tuple, set, frozenset)):
            parts.append(build_filter(db, spec, f"{key}__in", value, stmt))
        else:
            parts.append(f"{col} = {stmt.add(encode_value(value, spec.column(key)))}")
    stmt.sql = " AND ".join(parts)
    return stmt


def _filter_group(db: DbConnection, spec: RecordSpec, group: Any, stmt: Statement) -> str:
    if isinstance(group, Mapping):
        parts = [build_filter(db, spec, key, value, stmt) for key, value in group.items()]
        if not parts:
            return ""
        return parts[0] if len(parts) == 1 else "(" + " AND ".join(parts) + ")"
    if isinstance(group, Sequence) and not isinstance(group, (str, bytes)):
        parts = [p for p in (_filter_group(db, spec, g, stmt) for g in group) if p]
        if not parts:
            return ""
        return parts[0] if len(parts) == 1 else "(" + " OR ".join(parts) + ")"
    raise InvalidArgumentError(f"unsupported condition {group!r}")


def is_search_key(key: str) -> bool:
    return "where" in key.lower()


def search_condition(
    db: DbConnection, spec: RecordSpec, body: Mapping[str, Any]
) -> Statement:
    """Combine every ``*where*`` key of ``body``; ``or``-prefixed keys are OR-ed."""
    conjunctions: List[Statement] = []
    disjunctions: List[Statement] = []
    for key, group in body.items():
        if not is_search_key(key):
            continue
        part = Statement()
        part.sql = _filter_group(db, spec, group, part)
        if not part.sql:
            continue
        if key.lower().startswith("or"):
            disjunctions.append(part)
        else:
            conjunctions.append(part)

    # Parameters are re-collected in the order the fragments appear in the SQL.
    stmt = Statement()
    sql = " AND ".join(stmt.extend(part) for part in conjunctions)
    if disjunctions:
        head = [f"({sql})"] if sql else []
        sql = " OR ".join(head + [stmt.extend(part) for part in disjunctions])
    stmt.sql = sql
    return stmt
