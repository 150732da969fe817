"""
SELECT generation for loading registered records.
"""
import logging
from collections.abc import Sequence
from typing import Any

from recordmap.capabilities import DialectCapabilities, get_capabilities
from recordmap.registry import FieldDescriptor, ModelMetadata
from recordmap.sql import quote_identifier

logger = logging.getLogger(__name__)

__all__ = ['build_select_sql', 'build_load']


def build_select_sql(dialect: str | DialectCapabilities, table: str,
                     columns: Sequence[str] | None = None,
                     where: Sequence[str] | None = None) -> str:
    """Generate a SELECT with equality predicates on `where` columns.

    Args:
        dialect: Dialect name or capability record
        table: Table name
        columns: Columns to select (None for *)
        where: Columns compared to consecutive bind arguments

    Returns
        SQL query string with native placeholders
    """
    caps = get_capabilities(dialect)
    quoted_table = quote_identifier(caps, table)

    if columns:
        select_clause = 'SELECT ' + ', '.join(quote_identifier(caps, c) for c in columns)
    else:
        select_clause = 'SELECT *'

    sql = f'{select_clause} FROM {quoted_table}'

    if where:
        predicates = [f'{quote_identifier(caps, c)} = {caps.placeholder(n)}'
                      for n, c in enumerate(where, 1)]
        sql += ' WHERE ' + ' AND '.join(predicates)

    return sql


def build_load(metadata: ModelMetadata, record: Any, dialect: str | DialectCapabilities,
               by: Sequence[FieldDescriptor]) -> tuple[str, tuple, tuple[int, ...]]:
    """SELECT all mapped columns of a record, filtered by the current values of `by`.

    Returns
        tuple: SQL, bind arguments and the argument positions of redacted fields
    """
    caps = get_capabilities(dialect)
    sql = build_select_sql(
        caps,
        metadata.table_name,
        [f.column_name for f in metadata.fields],
        [f.column_name for f in by],
        )
    args = tuple(f.to_param(f.get(record), caps.array_literals) for f in by)
    redacted = tuple(n for n, f in enumerate(by) if f.redact)
    return sql, args, redacted
