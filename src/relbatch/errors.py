"""Exceptions raised by the batch persistence layer."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence


class RelbatchError(Exception):
    """Base class for all relbatch errors."""


class ConfigurationError(RelbatchError):
    pass


class ConnectionTimeoutError(RelbatchError):
    pass


class RegistryError(RelbatchError):
    pass


class InvalidArgumentError(RelbatchError):
    """A payload does not have the shape an operation needs."""


class PersistenceError(RelbatchError):
    """A save/update/delete failed while the record reported no validation errors."""


class ValidationAggregateError(RelbatchError):
    """One or more rows of a call failed validation.

    ``messages`` holds the first error of every invalid row, in row order.
    ``errors`` maps the row index to the full ``first_errors()`` mapping of that row.
    """

    def __init__(
        self,
        messages: Sequence[str],
        errors: Optional[Mapping[int, Mapping[str, str]]] = None,
    ) -> None:
        self.messages = list(messages)
        self.errors: Dict[int, Dict[str, str]] = {
            index: dict(first) for index, first in (errors or {}).items()
        }
        super().__init__("\n".join(self.messages))
