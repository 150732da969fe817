"""
Write builder: parameterized INSERT/UPDATE generation for registered records.

Every table and column name is rendered through `quote_identifier`; values
only ever travel as bind arguments. Builders are pure and raise before any
statement reaches the database.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from recordmap.capabilities import DialectCapabilities, get_capabilities
from recordmap.exceptions import MissingReturningClause, ValidationError
from recordmap.registry import FieldDescriptor, ModelMetadata
from recordmap.sql import find_returning_clause, make_placeholders
from recordmap.sql import quote_identifier
from recordmap.types import Kind, is_zero

logger = logging.getLogger(__name__)

__all__ = [
    'RetrievalStrategy',
    'WriteSpec',
    'KeyRetrieval',
    'build_insert',
    'build_update',
    'changed_fields',
    'plan_generated_key',
]


class RetrievalStrategy(Enum):
    """How a generated primary key comes back from an INSERT."""
    RETURNING_CLAUSE = 'returning_clause'
    OUTPUT_CLAUSE = 'output_clause'
    LAST_INSERT_ID = 'last_insert_id'
    NONE = 'none'


@dataclass(frozen=True)
class WriteSpec:
    """A built statement ready for execution.

    `returning` lists the key columns the retrieval strategy yields and
    `redacted` the argument positions hidden from log events.
    """
    sql: str
    args: tuple
    retrieval: RetrievalStrategy = RetrievalStrategy.NONE
    returning: tuple[str, ...] = ()
    redacted: tuple[int, ...] = ()


@dataclass(frozen=True)
class KeyRetrieval:
    """Generated-key plan for caller-written INSERT SQL."""
    strategy: RetrievalStrategy
    sql: str
    columns: tuple[str, ...] = ()


class _Binder:
    """Accumulates bind arguments and renders their native placeholders."""

    def __init__(self, caps: DialectCapabilities) -> None:
        self.caps = caps
        self.args: list[Any] = []
        self.redacted: list[int] = []

    def bind(self, field: FieldDescriptor, value: Any) -> str:
        self.args.append(field.to_param(value, self.caps.array_literals))
        if field.redact:
            self.redacted.append(len(self.args) - 1)
        return self.caps.placeholder(len(self.args))


def _unset_key(metadata: ModelMetadata, record: Any) -> list[FieldDescriptor]:
    return [f for f in metadata.primary_key if is_zero(f.get(record), f.kind)]


def build_insert(metadata: ModelMetadata, record: Any, dialect: str | DialectCapabilities, *,
                 partial: bool = False, return_key: bool | None = None) -> WriteSpec:
    """Build an INSERT for a record.

    Zero values are written as-is. With `partial=True`, fields of a
    partial-update model that still hold their zero value are left to the
    column default instead. Primary key fields that are unset are omitted
    and, unless `return_key=False`, retrieved after execution.

    Args:
        metadata: Registered model metadata
        record: Record to insert
        dialect: Dialect name or capability record
        partial: Skip zero-valued partial-update-eligible fields
        return_key: Request the generated key (default: when the key is unset)

    Returns
        WriteSpec with the generated-key retrieval strategy

    Raises
        ValidationError: Nothing to insert, or key retrieval impossible for this key
        MissingReturningClause: Dialect has no way to return the key
    """
    caps = get_capabilities(dialect)
    unset = _unset_key(metadata, record)
    if return_key is None:
        return_key = bool(unset)

    binder = _Binder(caps)
    columns: list[str] = []
    exprs: list[str] = []
    for field in metadata.fields:
        if not field.insert or field in unset:
            continue
        if field.auto_timestamp:
            columns.append(quote_identifier(caps, field.column_name))
            exprs.append(caps.timestamp_function)
            continue
        value = field.get(record)
        if partial and field.partial_update_eligible and is_zero(value, field.kind):
            continue
        columns.append(quote_identifier(caps, field.column_name))
        exprs.append(binder.bind(field, value))

    if not columns:
        raise ValidationError(metadata.name, ['no columns to insert'])

    table = quote_identifier(caps, metadata.table_name)
    column_list = ', '.join(columns)
    values = ', '.join(exprs)

    if not return_key:
        sql = f'INSERT INTO {table} ({column_list}) VALUES ({values})'
        return WriteSpec(sql, tuple(binder.args), redacted=tuple(binder.redacted))

    key = unset or list(metadata.require_primary_key())
    returning = tuple(f.column_name for f in key)
    quoted_key = [quote_identifier(caps, c) for c in returning]

    if caps.supports_returning:
        clause = ' RETURNING ' + ', '.join(quoted_key)
        if caps.returning_into:
            clause += ' INTO ' + make_placeholders(caps, len(returning), start=len(binder.args) + 1)
        sql = f'INSERT INTO {table} ({column_list}) VALUES ({values}){clause}'
        retrieval = RetrievalStrategy.RETURNING_CLAUSE
    elif caps.supports_output:
        output = ', '.join(f'INSERTED.{c}' for c in quoted_key)
        sql = f'INSERT INTO {table} ({column_list}) OUTPUT {output} VALUES ({values})'
        retrieval = RetrievalStrategy.OUTPUT_CLAUSE
    elif caps.supports_last_insert_id:
        if len(returning) != 1:
            raise ValidationError(metadata.name, [
                f'{caps.name} returns generated keys through last-insert-id, '
                'which needs a single-column key'])
        sql = f'INSERT INTO {table} ({column_list}) VALUES ({values})'
        retrieval = RetrievalStrategy.LAST_INSERT_ID
    else:
        raise MissingReturningClause(caps.name)

    return WriteSpec(sql, tuple(binder.args), retrieval, returning, tuple(binder.redacted))


def changed_fields(metadata: ModelMetadata, record: Any,
                   baseline: dict[str, Any]) -> tuple[str, ...]:
    """Names of updatable fields whose value differs from the baseline.

    Pointer fields left as None count as not provided and never appear.
    """
    changed = []
    for field in metadata.fields:
        if field.primary or not field.update or field.auto_timestamp:
            continue
        current = field.get(record)
        if field.kind is Kind.POINTER and current is None:
            continue
        if field.name not in baseline or baseline[field.name] != current:
            changed.append(field.name)
    return tuple(changed)


def build_update(metadata: ModelMetadata, record: Any, dialect: str | DialectCapabilities, *,
                 baseline: dict[str, Any] | None = None,
                 partial: bool | None = None) -> WriteSpec | None:
    """Build an UPDATE by primary key.

    Full mode (the default for models without `partial_update`) writes every
    updatable non-key field with its current value, zero values included.
    Partial mode writes only fields that differ from `baseline`; without a
    baseline it falls back to full mode. Auto-timestamp columns are set to
    the database clock whenever anything else is written.

    Returns
        WriteSpec, or None when there is nothing to write

    Raises
        ValidationError: Model has no primary key, or a key field is unset
    """
    caps = get_capabilities(dialect)
    key = metadata.require_primary_key()
    missing = [f.name for f in key if is_zero(f.get(record), f.kind)]
    if missing:
        raise ValidationError(metadata.name, [f'primary key {name} is not set' for name in missing])

    use_partial = metadata.partial_update if partial is None else partial
    changed = None
    if use_partial:
        if baseline is None:
            logger.debug(f'No baseline for {metadata.name}; falling back to full update')
        else:
            changed = set(changed_fields(metadata, record, baseline))

    binder = _Binder(caps)
    assignments: list[str] = []
    stamps: list[str] = []
    for field in metadata.fields:
        if field.primary or not field.update:
            continue
        column = quote_identifier(caps, field.column_name)
        if field.auto_timestamp:
            stamps.append(f'{column} = {caps.timestamp_function}')
            continue
        if changed is not None and field.name not in changed:
            continue
        assignments.append(f'{column} = {binder.bind(field, field.get(record))}')

    if not assignments:
        logger.debug(f'Nothing to update for {metadata.name}')
        return None

    where = ' AND '.join(
        f'{quote_identifier(caps, f.column_name)} = {binder.bind(f, f.get(record))}' for f in key)
    table = quote_identifier(caps, metadata.table_name)
    sql = f'UPDATE {table} SET {", ".join(assignments + stamps)} WHERE {where}'
    return WriteSpec(sql, tuple(binder.args), redacted=tuple(binder.redacted))


def plan_generated_key(dialect: str | DialectCapabilities, sql: str,
                       arg_count: int = 0) -> KeyRetrieval:
    """Decide how to retrieve the generated key of caller-written INSERT SQL.

    1. RETURNING in the SQL and the dialect supports it: scan the returned row.
    2. OUTPUT in the SQL and the dialect supports it: scan the returned row.
    3. No clause, dialect exposes last-insert-id: use it.
    4. A clause the dialect does not list as supported: still scan the row.
    5. Otherwise the dialect needs a clause the SQL lacks.

    For dialects that return through out binds, a missing `INTO` target list
    is appended, numbered after the statement's `arg_count` arguments.

    Raises
        MissingReturningClause: Case 5
        InvalidIdentifier: Malformed column list in the clause
    """
    caps = get_capabilities(dialect)
    clause = find_returning_clause(sql, caps)

    if clause is None:
        if caps.supports_last_insert_id:
            return KeyRetrieval(RetrievalStrategy.LAST_INSERT_ID, sql)
        raise MissingReturningClause(caps.name)

    if clause.keyword == 'RETURNING':
        if caps.returning_into and not clause.into:
            sql = sql.rstrip().rstrip(';') + ' INTO ' + make_placeholders(
                caps, len(clause.columns), start=arg_count + 1)
        return KeyRetrieval(RetrievalStrategy.RETURNING_CLAUSE, sql, clause.columns)
    return KeyRetrieval(RetrievalStrategy.OUTPUT_CLAUSE, sql, clause.columns)
