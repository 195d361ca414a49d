from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import (Any, Callable, Dict, List, Mapping,
                    Optional, Sequence, Tuple, Type, Union)

from dateutil import parser as dtparse
from pydantic import BaseModel
from sqlalchemy import (JSON, Boolean, Date, DateTime, Float, Integer,
                        Numeric, Table)
from sqlalchemy.types import TypeEngine

from .values import JsonValue, RawExpression

ScalarType = str  # "boolean" | "integer" | "number" | "datetime" | "date" | "json" | "text"
Caster = Callable[[Any], Any]


def _as_datetime(value: str) -> Optional[datetime]:
    try:
        return dtparse.parse(value)
    except (ValueError, OverflowError):
        return None


def convert_scalar(scalar_type: ScalarType, value: Any) -> Any:
    """Convert an input value into the Python type stored in the column."""
    if value is None:
        return None

    if scalar_type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes"}:
                return True
            if lowered in {"false", "0", "no"}:
                return False
        return None

    if scalar_type == "integer":
        if isinstance(value, bool):
            return int(value)
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    if scalar_type == "number":
        if isinstance(value, (float, Decimal)):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    if scalar_type == "datetime":
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return _as_datetime(value)
        return None

    if scalar_type == "date":
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            parsed = _as_datetime(value)
            return parsed.date() if parsed is not None else None
        return None

    if scalar_type == "json":
        if isinstance(value, (Mapping, list, tuple)):
            return JsonValue(value)
        return value

    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


def scalar_type_for(column_type: TypeEngine) -> ScalarType:
    if isinstance(column_type, Boolean):
        return "boolean"
    if isinstance(column_type, Integer):
        return "integer"
    if isinstance(column_type, (Float, Numeric)):
        return "number"
    if isinstance(column_type, DateTime):
        return "datetime"
    if isinstance(column_type, Date):
        return "date"
    if isinstance(column_type, JSON):
        return "json"
    return "text"


@dataclass(frozen=True)
class ColumnSchema:
    """A table column and the caster mapping raw input to its storage type."""

    name: str
    scalar_type: ScalarType = "text"
    caster: Optional[Caster] = None

    def cast(self, value: Any) -> Any:
        if isinstance(value, RawExpression):
            return value
        if self.caster is not None:
            return self.caster(value)
        return convert_scalar(self.scalar_type, value)


@dataclass(frozen=True)
class NoDelete:
    pass


@dataclass(frozen=True)
class ConditionDelete:
    """Delete children matching ``condition`` before they are written again."""

    condition: Dict[str, Any]


@dataclass(frozen=True)
class CallbackDelete:
    """Call ``callback(child_spec, child_rows)`` before children are written."""

    callback: Callable[["RecordSpec", List[Dict[str, Any]]], Any]


DeletePolicy = Union[NoDelete, ConditionDelete, CallbackDelete]
NO_DELETE = NoDelete()


@dataclass(frozen=True)
class RelationSpec:
    """A child relation keyed by ``name`` in input bodies.

    ``link`` maps child attribute -> parent attribute and is copied into every
    child body before the child is written.
    """

    name: str
    target: "RecordSpec"
    link: Dict[str, str] = field(default_factory=dict)
    on_delete: DeletePolicy = NO_DELETE


@dataclass(frozen=True)
class RecordSpec:
    """Table metadata and relations for one record type."""

    name: str
    table_name: str
    primary_key: Tuple[str, ...]
    columns: Dict[str, ColumnSchema]
    relations: Tuple[RelationSpec, ...] = ()
    validator: Optional[Type[BaseModel]] = None

    def __post_init__(self) -> None:
        if isinstance(self.primary_key, str):
            object.__setattr__(self, "primary_key", (self.primary_key,))
        else:
            object.__setattr__(self, "primary_key", tuple(self.primary_key))
        object.__setattr__(self, "relations", tuple(self.relations))

    def column(self, name: str) -> Optional[ColumnSchema]:
        return self.columns.get(name)

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def relation(self, name: str) -> Optional[RelationSpec]:
        for relation in self.relations:
            if relation.name == name:
                return relation
        return None

    def with_relation(
        self,
        name: str,
        target: "RecordSpec",
        link: Optional[Mapping[str, str]] = None,
        on_delete: DeletePolicy = NO_DELETE,
    ) -> "RecordSpec":
        """Return a copy of this spec with one more relation declared."""
        relation = RelationSpec(
            name=name, target=target, link=dict(link or {}), on_delete=on_delete
        )
        kept = tuple(r for r in self.relations if r.name != name)
        return replace(self, relations=kept + (relation,))


def columns_from_table(table: Table) -> Dict[str, ColumnSchema]:
    columns: Dict[str, ColumnSchema] = {}
    for column in table.columns:
        columns[column.name] = ColumnSchema(
            name=column.name, scalar_type=scalar_type_for(column.type)
        )
    return columns


def record_spec_from_table(
    table: Table,
    name: Optional[str] = None,
    primary_key: Optional[Sequence[str]] = None,
    relations: Sequence[RelationSpec] = (),
    validator: Optional[Type[BaseModel]] = None,
) -> RecordSpec:
    """Build a :class:`RecordSpec` from a SQLAlchemy ``Table``."""
    keys = tuple(primary_key) if primary_key else tuple(c.name for c in table.primary_key)
    table_name = f"{table.schema}.{table.name}" if table.schema else table.name
    return RecordSpec(
        name=name or table.name,
        table_name=table_name,
        primary_key=keys,
        columns=columns_from_table(table),
        relations=tuple(relations),
        validator=validator,
    )
