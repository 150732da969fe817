"""
Database executor over a SQLAlchemy connection.

This module provides:
1. The `connect()` function for opening a `Database`
2. The `Database` class with record-level operations:
   - execute(sql, *args) - Execute SQL and return affected row count
   - select(sql, *args) - Raw rows as dicts with lower-cased keys
   - query_all / query_first / query_one(cls, sql, *args) - Rows as records
   - load(record) / load_by(record, *fields) - Reload a record
   - insert(record) / insert_and_load(record) / update(record)
   - insert_and_get_id(sql, *args) - Caller-written INSERT returning its key

SQL passed in uses the dialect's native placeholders (`$1`, `?`, `@p1`,
`:1`); `?` works everywhere.
"""
import dataclasses
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Self, TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from recordmap.cursor import Cursor
from recordmap.data import RetrievalStrategy, build_insert, build_update
from recordmap.data import plan_generated_key
from recordmap.exceptions import DatabaseError, MultipleRows, NotFound
from recordmap.exceptions import TypeMismatch, ValidationError
from recordmap.options import DatabaseOptions
from recordmap.query import build_load
from recordmap.registry import ModelMetadata, Registry, get_baseline, snapshot
from recordmap.row import deserialize, deserialize_into, normalize_row
from recordmap.strategy import get_strategy
from recordmap.types import is_zero

__all__ = [
    'Database',
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def create_url_from_options(options: DatabaseOptions) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    return get_strategy(options.drivername).build_connection_url(options)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine for the given options.

    Pooling is left to the driver and the caller, so engines use NullPool.
    """
    strategy = get_strategy(options.drivername)
    engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
    engine_kwargs.update(strategy.get_engine_kwargs(options))
    engine_kwargs.update(kwargs)
    engine = engine_factory(create_url_from_options(options), **engine_kwargs)
    logger.debug(f'Created new engine for {options.drivername}')
    return engine


class Database:
    """Record-level operations over one SQLAlchemy connection.

    At most one statement is in flight per instance. Statements commit
    immediately unless a `Transaction` is active.
    """

    def __init__(self, sa_connection: sa.engine.Connection, registry: Registry,
                 options: DatabaseOptions | None = None, owns_engine: bool = False) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.registry = registry
        self.options = options
        self.log = options.logger if options is not None else logging.getLogger('recordmap')
        self.strategy = get_strategy(sa_connection.dialect.name)
        self.capabilities = self.strategy.capabilities
        self.paramstyle = sa_connection.dialect.paramstyle
        self.calls = 0
        self.time = 0.0
        self.in_transaction = False
        self._owns_engine = owns_engine
        self.strategy.register_type_adapters(sa_connection.connection.driver_connection)

    @classmethod
    def from_connection(cls, sa_connection: sa.engine.Connection, registry: Registry,
                        options: DatabaseOptions | None = None) -> Self:
        """Wrap an already-open SQLAlchemy connection."""
        return cls(sa_connection, registry, options)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """Return the canonical dialect name."""
        return self.strategy.dialect_name

    def cursor(self) -> Cursor:
        return Cursor(self)

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def close(self) -> None:
        """Commit outstanding work (outside transactions) and close the connection.
        """
        if self.sa_connection.closed:
            return
        if not self.in_transaction and self.sa_connection.in_transaction():
            self.sa_connection.commit()
        self.sa_connection.close()
        if self._owns_engine:
            self.engine.dispose()
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per query)')

    @contextmanager
    def _statement(self, operation: str) -> Iterator[None]:
        """Commit on success and attribute engine errors to `operation`.

        SQLAlchemy wraps driver errors; the driver's own exception is
        re-raised with a note naming the operation.
        """
        dbapi = getattr(self.sa_connection.dialect, 'loaded_dbapi', None)
        driver_errors = getattr(dbapi, 'Error', ())
        try:
            yield
        except sa.exc.DBAPIError as err:
            self._rollback_unless_in_transaction()
            orig = err.orig if isinstance(err.orig, BaseException) else err
            orig.add_note(f'recordmap: raised by {operation}')
            raise orig from None
        except driver_errors as err:
            self._rollback_unless_in_transaction()
            err.add_note(f'recordmap: raised by {operation}')
            raise
        except Exception:
            self._rollback_unless_in_transaction()
            raise
        if not self.in_transaction:
            self.sa_connection.commit()

    def _rollback_unless_in_transaction(self) -> None:
        if not self.in_transaction and self.sa_connection.in_transaction():
            self.sa_connection.rollback()

    def _fetch(self, operation: str, sql: str, args: Sequence[Any],
               redacted: Sequence[int] = ()) -> list[dict[str, Any]]:
        with self._statement(operation):
            result = self.cursor().execute(sql, args, redacted)
            return [normalize_row(row) for row in result.mappings().all()]

    def _fetch_one(self, operation: str, metadata: ModelMetadata, sql: str,
                   args: Sequence[Any], redacted: Sequence[int] = ()) -> dict[str, Any]:
        rows = self._fetch(operation, sql, args, redacted)
        if not rows:
            raise NotFound(f'{metadata.name}: no rows')
        if len(rows) > 1:
            raise MultipleRows(len(rows), f'{metadata.name}: expected one row, got {len(rows)}')
        return rows[0]

    def execute(self, sql: str, *args: Any) -> int:
        """Execute a SQL statement and return affected row count.
        """
        with self._statement('execute'):
            return self.cursor().execute(sql, args).rowcount

    def select(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Execute a query and return rows as dicts with lower-cased column names.
        """
        return self._fetch('select', sql, args)

    def query_all(self, cls: type[T], sql: str, *args: Any) -> list[T]:
        """Execute a query and deserialize every row; empty list when none match.
        """
        metadata = self.registry[cls]
        return [deserialize(row, metadata) for row in self._fetch('query_all', sql, args)]

    def query_first(self, cls: type[T], sql: str, *args: Any) -> T | None:
        """Execute a query and deserialize the first row, or return None.
        """
        metadata = self.registry[cls]
        rows = self._fetch('query_first', sql, args)
        return deserialize(rows[0], metadata) if rows else None

    def query_one(self, cls: type[T], sql: str, *args: Any) -> T:
        """Execute a query expecting exactly one row.

        Raises
            NotFound: No row matched
            MultipleRows: More than one row matched
        """
        metadata = self.registry[cls]
        return deserialize(self._fetch_one('query_one', metadata, sql, args), metadata)

    def load(self, record: T) -> T:
        """Reload all mapped columns of a record by its primary key.
        """
        metadata = self.registry.metadata_for(record)
        key = metadata.require_primary_key()
        missing = [f.name for f in key if is_zero(f.get(record), f.kind)]
        if missing:
            raise ValidationError(metadata.name, [f'primary key {name} is not set' for name in missing])
        sql, args, redacted = build_load(metadata, record, self.capabilities, key)
        row = self._fetch_one('load', metadata, sql, args, redacted)
        return deserialize_into(record, row, metadata)

    def load_by(self, record: T, *fields: str) -> T:
        """Reload a record using the current values of the named fields.
        """
        if not fields:
            raise ValueError('load_by needs at least one field name')
        metadata = self.registry.metadata_for(record)
        by = [metadata.field(name) for name in fields]
        sql, args, redacted = build_load(metadata, record, self.capabilities, by)
        row = self._fetch_one('load_by', metadata, sql, args, redacted)
        return deserialize_into(record, row, metadata)

    def _assign_key(self, metadata: ModelMetadata, record: Any,
                    columns: Sequence[str], row: Mapping[str, Any] | None) -> None:
        if not row:
            raise DatabaseError(f'{metadata.name}: INSERT returned no generated key')
        for column in columns:
            field = metadata.column(column)
            if column.lower() not in row:
                raise DatabaseError(f'{metadata.name}: INSERT did not return column {column!r}')
            try:
                field.set(record, field.coerce(row[column.lower()]))
            except TypeMismatch as e:
                raise e.with_column(column) from None

    def insert(self, record: T) -> T:
        """Insert a record and write any generated key back into it.
        """
        metadata = self.registry.metadata_for(record)
        spec = build_insert(metadata, record, self.capabilities)
        with self._statement('insert'):
            cursor = self.cursor()
            match spec.retrieval:
                case RetrievalStrategy.RETURNING_CLAUSE | RetrievalStrategy.OUTPUT_CLAUSE:
                    row = self.strategy.execute_returning(
                        cursor, spec.sql, spec.args, spec.returning, spec.redacted)
                    self._assign_key(metadata, record, spec.returning, row)
                case RetrievalStrategy.LAST_INSERT_ID:
                    result = cursor.execute(spec.sql, spec.args, spec.redacted)
                    row = {spec.returning[0].lower(): self.strategy.last_insert_id(result)}
                    self._assign_key(metadata, record, spec.returning, row)
                case _:
                    cursor.execute(spec.sql, spec.args, spec.redacted)
        return record

    def insert_and_load(self, record: T) -> T:
        """Insert a record, then reload it so database defaults are visible.
        """
        return self.load(self.insert(record))

    def update(self, record: Any) -> int:
        """Update a record by primary key and return the affected row count.

        Partial-update models write only fields changed since the last load
        and take a fresh baseline afterwards. Nothing is executed when no
        field changed.
        """
        metadata = self.registry.metadata_for(record)
        baseline = get_baseline(record) if metadata.partial_update else None
        spec = build_update(metadata, record, self.capabilities, baseline=baseline)
        if spec is None:
            return 0
        with self._statement('update'):
            rowcount = self.cursor().execute(spec.sql, spec.args, spec.redacted).rowcount
        if metadata.partial_update:
            snapshot(metadata, record)
        return rowcount

    def insert_and_get_id(self, sql: str, *args: Any) -> Any:
        """Execute caller-written INSERT SQL and return the generated key.

        Raises
            MissingReturningClause: The dialect needs RETURNING/OUTPUT and the SQL has none
        """
        plan = plan_generated_key(self.capabilities, sql, len(args))
        with self._statement('insert_and_get_id'):
            cursor = self.cursor()
            if plan.strategy is RetrievalStrategy.LAST_INSERT_ID:
                return self.strategy.last_insert_id(cursor.execute(plan.sql, args))
            row = self.strategy.execute_returning(cursor, plan.sql, args, plan.columns)
        if not row:
            raise DatabaseError('INSERT returned no generated key')
        return row.get(plan.columns[0].lower())


def connect(options: DatabaseOptions | Mapping[str, Any], registry: Registry,
            **kwargs: Any) -> Database:
    """Open a connection and wrap it in a `Database`.

    Args:
        options: DatabaseOptions or a mapping of its fields
        registry: Built model registry
        kwargs: Field overrides applied on top of `options`
    """
    if isinstance(options, DatabaseOptions):
        if kwargs:
            options = dataclasses.replace(options, **kwargs)
    else:
        options = DatabaseOptions(**{**options, **kwargs})

    engine = get_engine_for_options(options)
    return Database(engine.connect(), registry, options, owns_engine=True)
