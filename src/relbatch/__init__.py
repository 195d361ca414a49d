"""Relation-aware batch persistence on top of SQLAlchemy connections."""

from .batch import (delete, delete_many, delete_where, insert_many,
                    update_many, update_where, upsert_many)
from .cascade import check_exist, create_record, find_exists, update_record
from .config import load_config
from .db_connector import Databases, DatabaseSession, DbConnection
from .dialects import InsertMode
from .errors import (ConfigurationError, ConnectionTimeoutError,
                     InvalidArgumentError, PersistenceError, RegistryError,
                     RelbatchError, ValidationAggregateError)
from .models import DatabaseConfig, RelbatchConfig, TableBinding
from .persistence import create, insert, update
from .record import Record
from .registry import RecordRegistry
from .schema import (CallbackDelete, ColumnSchema, ConditionDelete, NoDelete,
                     RecordSpec, RelationSpec, record_spec_from_table)
from .statement import Statement
from .values import JsonValue, RawExpression

__version__ = "0.1.0"

__all__ = [
    "CallbackDelete",
    "ColumnSchema",
    "ConditionDelete",
    "ConfigurationError",
    "ConnectionTimeoutError",
    "DatabaseConfig",
    "DatabaseSession",
    "Databases",
    "DbConnection",
    "InsertMode",
    "InvalidArgumentError",
    "JsonValue",
    "NoDelete",
    "PersistenceError",
    "RawExpression",
    "Record",
    "RecordRegistry",
    "RecordSpec",
    "RegistryError",
    "RelationSpec",
    "RelbatchConfig",
    "RelbatchError",
    "Statement",
    "TableBinding",
    "ValidationAggregateError",
    "check_exist",
    "create",
    "create_record",
    "delete",
    "delete_many",
    "delete_where",
    "find_exists",
    "insert",
    "insert_many",
    "load_config",
    "record_spec_from_table",
    "update",
    "update_many",
    "update_record",
    "update_where",
    "upsert_many",
]
