"""Value kinds understood by the statement builders and their SQL encoding."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union

from .errors import InvalidArgumentError

if TYPE_CHECKING:
    from .schema import ColumnSchema


@dataclass(frozen=True)
class RawExpression:
    """Literal SQL inlined into a statement; ``params`` bind as ``:name``.

    A bare ``?`` in ``text`` counts as a positional marker; write operators such
    as jsonb ``?`` through their function form (``jsonb_exists``).
    """

    text: str
    params: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class JsonValue:
    payload: Any

    def dumps(self) -> str:
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, default=str)


Value = Union[RawExpression, JsonValue, Any]
Encoded = Tuple[str, Tuple[Any, ...], Dict[str, Any]]


def is_plain(value: Any) -> bool:
    return not isinstance(value, (RawExpression, JsonValue))


def is_reference_scalar(value: Any) -> bool:
    """Reference columns only match on strings, integers and floats."""
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def cast_value(value: Any, column: Optional["ColumnSchema"] = None) -> Any:
    if column is None or not is_plain(value):
        return value
    return column.cast(value)


def encode_value(value: Any, column: Optional["ColumnSchema"] = None) -> Encoded:
    """Turn one attribute value into ``(sql_fragment, positional, named)``."""
    value = cast_value(value, column)
    if isinstance(value, RawExpression):
        return value.text, (), dict(value.params)
    if isinstance(value, JsonValue):
        return "?", (value.dumps(),), {}
    return "?", (value,), {}


def resolve_columns(row: Mapping[str, Any]) -> List[str]:
    """Column list for a whole batch, fixed from its first row."""
    return sorted(row)


def as_rows(body: Any) -> List[Dict[str, Any]]:
    """Normalise a single mapping or a list of mappings into a list of row copies."""
    if body is None:
        return []
    if isinstance(body, Mapping):
        return [dict(body)]
    if isinstance(body, Sequence) and not isinstance(body, (str, bytes)):
        rows = []
        for index, item in enumerate(body):
            if not isinstance(item, Mapping):
                raise InvalidArgumentError(
                    f"row {index} is not a mapping: {item!r}"
                )
            rows.append(dict(item))
        return rows
    raise InvalidArgumentError(f"expected a mapping or a list of mappings, got {body!r}")


def is_row_list(body: Any) -> bool:
    return isinstance(body, Sequence) and not isinstance(body, (str, bytes, Mapping))
