"""Declarative record registry loaded from YAML.

Example document::

    records:
      order_items:
        table: order_items
      orders:
        table: orders
        connection: default
        relations:
          items:
            target: order_items
            link: {order_id: id}
            on_delete:
              condition: {where: {status: draft}}

Targets must be declared before the records that reference them, or anywhere
in the document as long as there is no cycle.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Any, Dict, Iterator, Mapping, Optional, Union

import yaml

from .db_connector import Databases
from .errors import RegistryError
from .models import TableBinding
from .schema import NO_DELETE, ConditionDelete, DeletePolicy, RecordSpec, RelationSpec

LOGGER = logging.getLogger("relbatch.registry")


class RecordRegistry:
    def __init__(self) -> None:
        self._specs: Dict[str, RecordSpec] = {}

    def register(self, spec: RecordSpec) -> RecordSpec:
        self._specs[spec.name] = spec
        return spec

    def get(self, name: str) -> RecordSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise RegistryError(f"Unknown record type {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def load_yaml(
        self, source: Union[str, Path, IO[str]], databases: Databases
    ) -> "RecordRegistry":
        if isinstance(source, (str, Path)):
            with Path(source).open("r", encoding="utf-8") as fh:
                document = yaml.safe_load(fh)
        else:
            document = yaml.safe_load(source)
        return self.load_document(document, databases)

    def load_document(self, document: Any, databases: Databases) -> "RecordRegistry":
        records = (document or {}).get("records") if isinstance(document, Mapping) else None
        if not isinstance(records, Mapping):
            raise RegistryError("registry document needs a 'records' mapping")

        building: set[str] = set()

        def build(name: str) -> RecordSpec:
            if name in self._specs:
                return self._specs[name]
            entry = records.get(name)
            if not isinstance(entry, Mapping):
                raise RegistryError(f"Unknown record type {name!r}")
            if name in building:
                raise RegistryError(f"Relation cycle through {name!r}")
            building.add(name)

            relations = []
            for rel_name, rel in (entry.get("relations") or {}).items():
                if not isinstance(rel, Mapping) or "target" not in rel:
                    raise RegistryError(f"{name}.{rel_name} needs a target")
                relations.append(
                    RelationSpec(
                        name=rel_name,
                        target=build(rel["target"]),
                        link=dict(rel.get("link") or {}),
                        on_delete=_delete_policy(name, rel_name, rel.get("on_delete")),
                    )
                )

            binding = TableBinding(
                table_name=entry.get("table", name),
                connection_name=entry.get("connection") or databases.default,
            )
            spec = databases.record_spec(
                binding,
                name=name,
                primary_key=_primary_key(entry.get("primary_key")),
                relations=relations,
            )
            building.discard(name)
            LOGGER.debug("Registered %s on %s", name, binding.table_name)
            return self.register(spec)

        for name in records:
            build(name)
        return self


def _primary_key(value: Any) -> Optional[list]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


def _delete_policy(owner: str, relation: str, value: Any) -> DeletePolicy:
    if not value:
        return NO_DELETE
    if isinstance(value, Mapping) and isinstance(value.get("condition"), Mapping):
        return ConditionDelete(dict(value["condition"]))
    raise RegistryError(f"{owner}.{relation}: on_delete supports only a condition mapping")
