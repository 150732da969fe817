"""
Record mapping over PostgreSQL, SQLite, MySQL, SQL Server and Oracle.

All record operations can be called either as:
- Module functions: recordmap.insert(db, user)
- Database methods: db.insert(user)
"""
__version__ = '0.1.0'

from typing import Any, TypeVar

from recordmap.capabilities import CAPABILITIES, DialectCapabilities
from recordmap.capabilities import get_capabilities
from recordmap.connection import Database, connect
from recordmap.data import RetrievalStrategy, WriteSpec, build_insert
from recordmap.data import build_update, plan_generated_key
from recordmap.exceptions import DatabaseError, IntegrityError, InvalidIdentifier
from recordmap.exceptions import MissingReturningClause, MultipleRows, NotFound
from recordmap.exceptions import OperationalError, ProgrammingError, TypeMismatch
from recordmap.exceptions import UnknownModel, ValidationError
from recordmap.logger import no_arg_logging, no_logging, no_query_logging
from recordmap.options import DatabaseOptions
from recordmap.registry import Int32, Int64, ModelMetadata, Registry
from recordmap.registry import RegistryBuilder, column
from recordmap.row import deserialize, deserialize_into
from recordmap.sql import quote_identifier, validate_identifier
from recordmap.transaction import Transaction as transaction
from recordmap.types import Kind, coerce

T = TypeVar('T')


def execute(db: Database, sql: str, *args: Any) -> int:
    """Execute a SQL statement and return affected row count.
    """
    return db.execute(sql, *args)


def select(db: Database, sql: str, *args: Any) -> list[dict[str, Any]]:
    """Execute a query and return rows as dicts.
    """
    return db.select(sql, *args)


def query_all(db: Database, cls: type[T], sql: str, *args: Any) -> list[T]:
    """Execute a query and return every row as a record.
    """
    return db.query_all(cls, sql, *args)


def query_first(db: Database, cls: type[T], sql: str, *args: Any) -> T | None:
    """Execute a query and return the first row as a record, or None.
    """
    return db.query_first(cls, sql, *args)


def query_one(db: Database, cls: type[T], sql: str, *args: Any) -> T:
    """Execute a query and return its single row as a record.

    Raises NotFound for zero rows and MultipleRows for more than one.
    """
    return db.query_one(cls, sql, *args)


def load(db: Database, record: T) -> T:
    """Reload a record by primary key.
    """
    return db.load(record)


def load_by(db: Database, record: T, *fields: str) -> T:
    """Reload a record by the named fields.
    """
    return db.load_by(record, *fields)


def insert(db: Database, record: T) -> T:
    """Insert a record, filling in its generated key.
    """
    return db.insert(record)


def insert_and_load(db: Database, record: T) -> T:
    """Insert a record and reload it.
    """
    return db.insert_and_load(record)


def update(db: Database, record: Any) -> int:
    """Update a record by primary key.
    """
    return db.update(record)


def insert_and_get_id(db: Database, sql: str, *args: Any) -> Any:
    """Execute an INSERT and return its generated key.
    """
    return db.insert_and_get_id(sql, *args)


__all__ = [
    'connect',
    'Database',
    'transaction',
    'DatabaseOptions',
    'RegistryBuilder',
    'Registry',
    'ModelMetadata',
    'column',
    'Int32',
    'Int64',
    'Kind',
    'coerce',
    'CAPABILITIES',
    'DialectCapabilities',
    'get_capabilities',
    'quote_identifier',
    'validate_identifier',
    'build_insert',
    'build_update',
    'plan_generated_key',
    'WriteSpec',
    'RetrievalStrategy',
    'deserialize',
    'deserialize_into',
    'execute',
    'select',
    'query_all',
    'query_first',
    'query_one',
    'load',
    'load_by',
    'insert',
    'insert_and_load',
    'update',
    'insert_and_get_id',
    'no_logging',
    'no_query_logging',
    'no_arg_logging',
    'DatabaseError',
    'TypeMismatch',
    'InvalidIdentifier',
    'MissingReturningClause',
    'NotFound',
    'MultipleRows',
    'ValidationError',
    'UnknownModel',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
]
