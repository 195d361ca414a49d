"""A single row bound to a :class:`RecordSpec` and a connection."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from .db_connector import DbConnection
from .errors import PersistenceError
from .schema import RecordSpec, RelationSpec
from .statement import Statement
from .values import encode_value, is_plain

LOGGER = logging.getLogger("relbatch.record")

_MISSING = object()


class Record:
    def __init__(self, spec: RecordSpec, db: DbConnection) -> None:
        self.spec = spec
        self.db = db
        self.is_new = True
        self._attributes: Dict[str, Any] = {}
        self._old_attributes: Optional[Dict[str, Any]] = None
        self._errors: Dict[str, List[str]] = {}

    def __repr__(self) -> str:
        return f"<Record {self.spec.name} {self._attributes!r}>"

    def primary_key(self) -> Tuple[str, ...]:
        return self.spec.primary_key

    def attributes(self) -> List[str]:
        return list(self.spec.columns)

    def relations(self) -> Tuple[RelationSpec, ...]:
        return self.spec.relations

    def has_attribute(self, name: str) -> bool:
        return name in self.spec.columns

    def get_attribute(self, name: str) -> Any:
        return self._attributes.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        if not self.has_attribute(name):
            raise AttributeError(f"{self.spec.name} has no attribute {name!r}")
        self._attributes[name] = value

    def load(self, body: Mapping[str, Any]) -> bool:
        """Copy known columns from ``body``; other keys are ignored."""
        loaded = False
        for name in self.spec.columns:
            value = body.get(name, _MISSING)
            if value is not _MISSING:
                self._attributes[name] = value
                loaded = True
        return loaded

    def set_old_attributes(self, values: Optional[Mapping[str, Any]]) -> None:
        """Seed the persisted baseline; ``None`` marks the record as new."""
        if values is None:
            self._old_attributes = None
            self.is_new = True
            return
        self._old_attributes = dict(values)
        self._attributes = dict(values)
        self.is_new = False

    def dirty_attributes(self) -> Dict[str, Any]:
        old = self._old_attributes or {}
        return {
            name: value
            for name, value in self._attributes.items()
            if name not in old or old[name] != value or not is_plain(value)
        }

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._attributes)

    # -- validation ----------------------------------------------------------

    def validate(self) -> bool:
        self._errors = {}
        validator = self.spec.validator
        if validator is None:
            return True

        data = {k: v for k, v in self._attributes.items() if is_plain(v)}
        try:
            validated = validator.model_validate(data)
        except ValidationError as exc:
            for error in exc.errors():
                loc = error.get("loc") or ("__root__",)
                self.add_error(str(loc[0]), error.get("msg", "invalid value"))
            return False

        fields = type(validated).model_fields
        for name in data:
            if name in fields:
                self._attributes[name] = getattr(validated, name)
        return True

    def add_error(self, attribute: str, message: str) -> None:
        self._errors.setdefault(attribute, []).append(message)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def first_errors(self) -> Dict[str, str]:
        return {name: messages[0] for name, messages in self._errors.items() if messages}

    def first_error(self) -> Optional[str]:
        for name, message in self.first_errors().items():
            return f"{name}: {message}"
        return None

    # -- persistence ---------------------------------------------------------

    def save(self, run_validation: bool = True) -> bool:
        if run_validation and not self.validate():
            LOGGER.debug("Validation failed for %s: %s", self.spec.name, self.first_errors())
            return False
        if self.is_new:
            return self.insert(run_validation=False)
        return self.update(run_validation=False) is not False

    def insert(self, run_validation: bool = True) -> bool:
        if run_validation and not self.validate():
            return False

        table = self.db.quote_table_name(self.spec.table_name)
        stmt = Statement()
        keys = self.primary_key()
        names = [
            name
            for name in self.spec.columns
            if name in self._attributes
            and not (name in keys and self._attributes[name] is None)
        ]
        if names:
            cols = ", ".join(self.db.quote_column_name(name) for name in names)
            values = ", ".join(
                stmt.add(encode_value(self._attributes[name], self.spec.column(name)))
                for name in names
            )
            stmt.sql = f"INSERT INTO {table} ({cols}) VALUES ({values})"
        else:
            stmt.sql = self.db.dialect.empty_insert(table)

        missing = tuple(k for k in keys if self._attributes.get(k) is None)
        generated = self.db.insert(stmt, returning=missing)
        for name, value in generated.items():
            self._attributes[name] = value

        self._old_attributes = dict(self._attributes)
        self.is_new = False
        return True

    def _key_condition(self, stmt: Statement) -> str:
        old = self._old_attributes or {}
        parts = []
        for name in self.primary_key():
            value = old.get(name, self._attributes.get(name))
            if value is None:
                raise PersistenceError(
                    f"{self.spec.name} has no value for primary key {name!r}"
                )
            marker = stmt.add(encode_value(value, self.spec.column(name)))
            parts.append(f"{self.db.quote_column_name(name)} = {marker}")
        return " AND ".join(parts)

    def update(self, run_validation: bool = True) -> Any:
        """Write dirty attributes; returns the affected-row count or ``False``."""
        if run_validation and not self.validate():
            return False
        dirty = self.dirty_attributes()
        if not dirty:
            return 0

        stmt = Statement()
        sets = ", ".join(
            f"{self.db.quote_column_name(name)} = "
            + stmt.add(encode_value(value, self.spec.column(name)))
            for name, value in dirty.items()
        )
        where = self._key_condition(stmt)
        stmt.sql = f"UPDATE {self.db.quote_table_name(self.spec.table_name)} SET {sets} WHERE {where}"
        count = self.db.execute(stmt)
        self._old_attributes = dict(self._attributes)
        return count

    def delete(self) -> int:
        if self.is_new:
            raise PersistenceError(f"cannot delete an unsaved {self.spec.name}")
        stmt = Statement()
        where = self._key_condition(stmt)
        stmt.sql = f"DELETE FROM {self.db.quote_table_name(self.spec.table_name)} WHERE {where}"
        count = self.db.execute(stmt)
        self._old_attributes = None
        self.is_new = True
        return count
