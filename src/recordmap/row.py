"""
Row deserialization into registered records.
"""
import logging
from collections.abc import Mapping
from typing import Any

from recordmap.exceptions import TypeMismatch
from recordmap.registry import ModelMetadata, snapshot

logger = logging.getLogger(__name__)

__all__ = ['deserialize', 'deserialize_into', 'normalize_row']


def normalize_row(row: Mapping[Any, Any]) -> dict[str, Any]:
    """Lower-case column names of a driver row."""
    return {str(k).lower(): v for k, v in row.items()}


def deserialize_into(record: Any, row: Mapping[str, Any], metadata: ModelMetadata) -> Any:
    """Populate an existing record from a row.

    Fields are visited in registration order. Columns absent from the row
    leave the field untouched, so partial SELECT lists are fine. The record
    may be a fresh allocation or an attribute of an enclosing object; only
    the field setters are used.

    Raises
        TypeMismatch: Naming the first column whose value cannot be coerced
    """
    lowered = None
    for field in metadata.fields:
        if field.column_name in row:
            value = row[field.column_name]
        else:
            if lowered is None:
                lowered = normalize_row(row)
            key = field.column_name.lower()
            if key not in lowered:
                continue
            value = lowered[key]
        try:
            field.set(record, field.coerce(value))
        except TypeMismatch as e:
            raise e.with_column(field.column_name) from None

    if metadata.partial_update:
        snapshot(metadata, record)
    return record


def deserialize(row: Mapping[str, Any], metadata: ModelMetadata) -> Any:
    """Build a new record from a row.

    Unmapped or missing columns keep the field's declared default, or its
    zero value when the dataclass declares none.
    """
    return deserialize_into(metadata.new(), row, metadata)
