from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import TextClause, text

from .errors import InvalidArgumentError
from .values import Encoded

# Positional markers outside single-quoted literals.
_PLACEHOLDER_RE = re.compile(r"'(?:[^']|'')*'|\?")
POSITIONAL_PREFIX = "pos_"


@dataclass
class Statement:
    """SQL text with ``?`` placeholders plus its positional and named parameters."""

    sql: str = ""
    params: List[Any] = field(default_factory=list)
    named: Dict[str, Any] = field(default_factory=dict)

    def add(self, encoded: Encoded) -> str:
        fragment, positional, named = encoded
        self.params.extend(positional)
        self.named.update(named)
        return fragment

    def extend(self, other: "Statement") -> str:
        self.params.extend(other.params)
        self.named.update(other.named)
        return other.sql

    def bind_all(self, values: Iterable[Any]) -> str:
        markers = []
        for value in values:
            self.params.append(value)
            markers.append("?")
        return ", ".join(markers)

    def compile(self) -> Tuple[TextClause, Dict[str, Any]]:
        """Rename positional markers to named binds so any driver paramstyle works."""
        markers = sum(1 for match in _PLACEHOLDER_RE.finditer(self.sql) if match.group(0) == "?")
        if markers != len(self.params):
            raise InvalidArgumentError(
                f"{markers} positional markers but {len(self.params)} parameters in: {self.sql}"
            )
        counter = iter(range(markers))

        def _rename(match: re.Match) -> str:
            token = match.group(0)
            if token != "?":
                return token
            return f":{POSITIONAL_PREFIX}{next(counter)}"

        sql = _PLACEHOLDER_RE.sub(_rename, self.sql)
        bound = dict(self.named)
        for index, value in enumerate(self.params):
            bound[f"{POSITIONAL_PREFIX}{index}"] = value
        return text(sql), bound

    def __str__(self) -> str:
        return self.sql
