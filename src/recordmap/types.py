"""
Type coercion between driver values and record fields.

This module provides:
- Kind: target kinds a record field can declare
- RawKind: closed classification of the scalars a driver hands back
- coerce: convert one raw value into a target kind
- serialize: convert a field value into a bind parameter
- TypeConverter: convert Python values to database-compatible parameters
"""
import datetime
import json
import logging
import math
import re
import uuid
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd

from recordmap.exceptions import TypeMismatch

logger = logging.getLogger(__name__)

__all__ = [
    'Kind',
    'RawKind',
    'raw_kind',
    'coerce',
    'serialize',
    'zero_value',
    'is_zero',
    'TypeConverter',
]

UTC = datetime.timezone.utc
ZERO_TIME = datetime.datetime.min.replace(tzinfo=UTC)


class Kind(Enum):
    """Target kind of a record field."""
    INT = 'int'
    INT32 = 'int32'
    INT64 = 'int64'
    FLOAT = 'float'
    BOOL = 'bool'
    STRING = 'string'
    TIME = 'time'
    JSON_OBJECT = 'json_object'
    JSON_ARRAY = 'json_array'
    INT_ARRAY = 'int_array'
    STRING_ARRAY = 'string_array'
    STRING_MAP = 'string_map'
    POINTER = 'pointer'
    GENERIC = 'generic'


class RawKind(Enum):
    """Closed set of raw value shapes produced by drivers."""
    NULL = 'null'
    INTEGER = 'integer'
    FLOAT = 'float'
    BOOL = 'bool'
    STRING = 'string'
    BYTES = 'bytes'
    TIME = 'time'
    JSON = 'json'
    OTHER = 'other'


_INT_RANGES = {
    Kind.INT: (-2**63, 2**63 - 1),
    Kind.INT64: (-2**63, 2**63 - 1),
    Kind.INT32: (-2**31, 2**31 - 1),
}

_INT_STRING = re.compile(r'[+-]?[0-9]+')

# Tried in order, first match wins
_TIME_FORMATS = (
    ('rfc3339', re.compile(
        r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(Z|[+-]\d{2}:\d{2})', re.IGNORECASE)),
    ('rfc3339-fractional', re.compile(
        r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{1,9}(Z|[+-]\d{2}:\d{2})', re.IGNORECASE)),
    ('sql', re.compile(r'\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}')),
    ('sql-fractional', re.compile(r'\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{1,9}')),
    ('date', re.compile(r'\d{4}-\d{2}-\d{2}')),
)


def _normalize(value: Any) -> Any:
    """Unwrap NumPy scalars and buffer types into plain Python values."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, bytearray | memoryview):
        return bytes(value)
    return value


def raw_kind(value: Any) -> RawKind:
    """Classify a raw driver value."""
    match _normalize(value):
        case None:
            return RawKind.NULL
        case bool():
            return RawKind.BOOL
        case int():
            return RawKind.INTEGER
        case float() | Decimal():
            return RawKind.FLOAT
        case str():
            return RawKind.STRING
        case bytes():
            return RawKind.BYTES
        case datetime.datetime() | datetime.date() | datetime.time():
            return RawKind.TIME
        case dict() | list():
            return RawKind.JSON
        case _:
            return RawKind.OTHER


def _kind_name(kind: Kind, inner: Kind | None = None) -> str:
    if kind is Kind.POINTER and inner is not None:
        return f'pointer[{inner.value}]'
    return kind.value


def _preview(value: Any, limit: int = 64) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[:limit - 3] + '...'


def _mismatch(value: Any, kind: Kind, detail: str | None = None) -> TypeMismatch:
    return TypeMismatch(raw_kind(value).value, _kind_name(kind), value=value, detail=detail)


def zero_value(kind: Kind) -> Any:
    """Zero value of a kind, used for NULL into non-pointer fields and unset fields."""
    match kind:
        case Kind.INT | Kind.INT32 | Kind.INT64:
            return 0
        case Kind.FLOAT:
            return 0.0
        case Kind.BOOL:
            return False
        case Kind.STRING:
            return ''
        case Kind.TIME:
            return ZERO_TIME
        case Kind.JSON_OBJECT | Kind.STRING_MAP:
            return {}
        case Kind.JSON_ARRAY | Kind.INT_ARRAY | Kind.STRING_ARRAY:
            return []
        case _:
            return None


def is_zero(value: Any, kind: Kind) -> bool:
    """Check whether a field value is unset.

    A pointer is zero only when it is None; a non-null pointer to a zero
    primitive counts as explicitly set.
    """
    if value is None:
        return True
    if kind in {Kind.POINTER, Kind.GENERIC}:
        return False
    if kind is Kind.TIME and isinstance(value, datetime.datetime):
        return value.replace(tzinfo=None) == datetime.datetime.min
    return value == zero_value(kind)


def _decode(value: bytes, kind: Kind) -> str:
    try:
        return value.decode('utf-8')
    except UnicodeDecodeError:
        raise _mismatch(value, kind, 'bytes are not valid UTF-8') from None


def _to_int(value: Any, kind: Kind) -> int:
    match value:
        case bool():
            raise _mismatch(value, kind)
        case int():
            number = value
        case float():
            if not math.isfinite(value) or not value.is_integer():
                raise _mismatch(value, kind, 'fractional part')
            number = int(value)
        case Decimal():
            if not value.is_finite() or value != value.to_integral_value():
                raise _mismatch(value, kind, 'fractional part')
            number = int(value)
        case str() | bytes():
            text = (_decode(value, kind) if isinstance(value, bytes) else value).strip()
            if not _INT_STRING.fullmatch(text):
                raise _mismatch(value, kind, f'not an integer: {_preview(value)}')
            number = int(text)
        case _:
            raise _mismatch(value, kind)

    low, high = _INT_RANGES[kind]
    if not low <= number <= high:
        raise _mismatch(value, kind, f'{number} out of range')
    return number


def _to_float(value: Any, kind: Kind) -> float:
    match value:
        case bool():
            raise _mismatch(value, kind)
        case int() | float() | Decimal():
            return float(value)
        case str() | bytes():
            text = (_decode(value, kind) if isinstance(value, bytes) else value).strip()
            try:
                return float(text)
            except ValueError:
                raise _mismatch(value, kind, f'not a number: {_preview(value)}') from None
        case _:
            raise _mismatch(value, kind)


def _to_bool(value: Any, kind: Kind) -> bool:
    match value:
        case bool():
            return value
        case int():
            return value != 0
        case 'true' | '1' | b'true' | b'1':
            return True
        case 'false' | '0' | b'false' | b'0':
            return False
        case _:
            raise _mismatch(value, kind, f'not a boolean: {_preview(value)}')


def _to_string(value: Any, kind: Kind) -> str:
    match value:
        case None:
            return ''
        case bool():
            return 'true' if value else 'false'
        case str():
            return value
        case bytes():
            return _decode(value, kind)
        case datetime.datetime() if value.tzinfo is None:
            return value.isoformat(sep=' ')
        case datetime.datetime() | datetime.date() | datetime.time():
            return value.isoformat()
        case dict() | list():
            return json.dumps(value)
        case _:
            return str(value)


def _parse_time(text: str, kind: Kind, original: Any) -> datetime.datetime:
    text = text.strip()
    for name, pattern in _TIME_FORMATS:
        if not pattern.fullmatch(text):
            continue
        try:
            parsed = dateutil.parser.isoparse(text)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        logger.debug(f'Parsed time {text!r} as {name}')
        return parsed
    raise _mismatch(original, kind, f'unrecognized time format: {_preview(original)}')


def _to_time(value: Any, kind: Kind) -> datetime.datetime:
    match value:
        case datetime.datetime():
            return value
        case datetime.date():
            return datetime.datetime(value.year, value.month, value.day, tzinfo=UTC)
        case str():
            return _parse_time(value, kind, value)
        case bytes():
            return _parse_time(_decode(value, kind), kind, value)
        case _:
            raise _mismatch(value, kind)


def _to_json(value: Any, kind: Kind) -> dict | list:
    expected = dict if kind is Kind.JSON_OBJECT else list
    match value:
        case dict() | list():
            parsed = value
        case str() | bytes():
            try:
                parsed = json.loads(value)
            except ValueError:
                raise _mismatch(value, kind, f'malformed JSON: {_preview(value)}') from None
        case _:
            raise _mismatch(value, kind)
    if not isinstance(parsed, expected):
        raise _mismatch(value, kind, f'JSON is not an {"object" if expected is dict else "array"}')
    return parsed


# PostgreSQL array literal element: quoted with backslash escapes, or bare
_ARRAY_ELEMENT = re.compile(
    r'\s*(?:"(?P<quoted>(?:[^"\\]|\\.)*)"|(?P<bare>[^,"{}]*))\s*(?P<sep>,|\Z)', re.DOTALL)
_ARRAY_ESCAPE = re.compile(r'\\(.)', re.DOTALL)


def _split_array_literal(text: str, kind: Kind, original: Any) -> list[str | None]:
    """Split a one-dimensional PostgreSQL array literal such as `{1,2,3}`.

    Unquoted NULL elements come back as None.
    """
    if len(text) < 2 or text[0] != '{' or text[-1] != '}':
        raise _mismatch(original, kind, f'not an array literal: {_preview(original)}')
    body = text[1:-1]
    if not body.strip():
        return []

    items: list[str | None] = []
    pos = 0
    while True:
        match = _ARRAY_ELEMENT.match(body, pos)
        if match is None:
            raise _mismatch(original, kind, f'malformed array literal: {_preview(original)}')
        if match['quoted'] is not None:
            items.append(_ARRAY_ESCAPE.sub(r'\1', match['quoted']))
        else:
            bare = match['bare'].strip()
            items.append(None if bare.upper() == 'NULL' else bare)
        if not match['sep']:
            return items
        pos = match.end()


def _to_array(value: Any, kind: Kind) -> list:
    """Typed arrays accept sequences, JSON array text and PostgreSQL array literals."""
    match value:
        case list() | tuple():
            items = value
        case str() | bytes():
            text = (_decode(value, kind) if isinstance(value, bytes) else value).strip()
            if text.startswith('['):
                try:
                    items = json.loads(text)
                except ValueError:
                    raise _mismatch(value, kind, f'malformed JSON: {_preview(value)}') from None
            else:
                items = _split_array_literal(text, kind, value)
        case _:
            raise _mismatch(value, kind)

    result = []
    for n, item in enumerate(items):
        item = _normalize(item)
        try:
            if kind is Kind.INT_ARRAY:
                result.append(_to_int(item, Kind.INT))
            else:
                result.append(_to_string(item, Kind.STRING))
        except TypeMismatch as e:
            detail = f'element {n}: {e.source_kind}' + (f', {e.detail}' if e.detail else '')
            raise _mismatch(value, kind, detail) from None
    return result


def _to_string_map(value: Any, kind: Kind) -> dict[str, str]:
    match value:
        case dict():
            parsed = value
        case str() | bytes():
            try:
                parsed = json.loads(value)
            except ValueError:
                raise _mismatch(value, kind, f'malformed JSON: {_preview(value)}') from None
            if not isinstance(parsed, dict):
                raise _mismatch(value, kind, 'JSON is not an object')
        case _:
            raise _mismatch(value, kind)
    return {str(k): _to_string(_normalize(v), Kind.STRING) for k, v in parsed.items()}



def _to_generic(value: Any, python_type: type | None) -> Any:
    if python_type is None or python_type is Any or isinstance(value, python_type):
        return value
    try:
        if issubclass(python_type, Enum):
            return python_type(value)
        if python_type is Decimal and isinstance(value, int | float | str):
            return Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
        if python_type is uuid.UUID and isinstance(value, str | bytes):
            return uuid.UUID(value.decode() if isinstance(value, bytes) else value)
        if python_type is datetime.date:
            if isinstance(value, datetime.datetime):
                return value.date()
            if isinstance(value, str):
                return datetime.date.fromisoformat(value.strip())
    except (ValueError, TypeError, InvalidOperation):
        pass
    raise TypeMismatch(raw_kind(value).value, python_type.__name__, value=value)


def coerce(value: Any, kind: Kind, *, inner: Kind | None = None,
           python_type: type | None = None) -> Any:
    """Convert a raw driver value into the target kind.

    Parameters
        value: Raw value from a row
        kind: Target kind
        inner: Element kind when `kind` is POINTER
        python_type: Declared type for GENERIC targets (and pointer-to-generic)

    Returns
        The coerced value. NULL into a pointer yields None; NULL into any
        other kind yields that kind's zero value.

    Raises
        TypeMismatch: If the value cannot be represented as the target kind
    """
    value = _normalize(value)

    if kind is Kind.POINTER:
        if value is None:
            return None
        if inner is None or inner is Kind.POINTER:
            raise ValueError('pointer targets need a non-pointer inner kind')
        try:
            return coerce(value, inner, python_type=python_type)
        except TypeMismatch as e:
            raise TypeMismatch(e.source_kind, _kind_name(kind, inner),
                               value=value, detail=e.detail) from None

    if value is None and kind is not Kind.STRING:
        return zero_value(kind)

    match kind:
        case Kind.INT | Kind.INT32 | Kind.INT64:
            return _to_int(value, kind)
        case Kind.FLOAT:
            return _to_float(value, kind)
        case Kind.BOOL:
            return _to_bool(value, kind)
        case Kind.STRING:
            return _to_string(value, kind)
        case Kind.TIME:
            return _to_time(value, kind)
        case Kind.JSON_OBJECT | Kind.JSON_ARRAY:
            return _to_json(value, kind)
        case Kind.INT_ARRAY | Kind.STRING_ARRAY:
            return _to_array(value, kind)
        case Kind.STRING_MAP:
            return _to_string_map(value, kind)
        case Kind.GENERIC:
            return _to_generic(value, python_type)
    raise ValueError(f'Unknown kind: {kind}')


class TypeConverter:
    """Universal type conversion for database parameters.

    Handles NumPy and Pandas types.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, type(pd.NaT)):
            return None

        if isinstance(value, np.generic):
            return TypeConverter.convert_value(value.item())

        if isinstance(value, dict | list):
            return json.dumps(value)

        if isinstance(value, Enum):
            return value.value

        if pd.api.types.is_scalar(value) and pd.isna(value):
            return None

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters for database operations."""
        if params is None:
            return None

        if isinstance(params, dict):
            return {k: TypeConverter.convert_value(v) for k, v in params.items()}

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


def _array_literal(items: list, kind: Kind) -> str:
    """Render a PostgreSQL array literal (`{1,2,3}`, `{a,"b,c"}`)."""
    parts = []
    for item in items:
        item = _normalize(item)
        if kind is Kind.INT_ARRAY:
            parts.append(str(_to_int(item, Kind.INT)))
            continue
        text = _to_string(item, Kind.STRING)
        escaped = text.replace('\\', '\\\\').replace('"', '\\"')
        if not text or text.upper() == 'NULL' or re.search(r'[,"{}\\\s]', text):
            escaped = f'"{escaped}"'
        parts.append(escaped)
    return '{' + ','.join(parts) + '}'


def serialize(value: Any, kind: Kind, inner: Kind | None = None, *,
              array_literals: bool = False) -> Any:
    """Convert a field value into a bind parameter.

    Typed arrays become PostgreSQL array literals when the dialect has
    native arrays and JSON array text otherwise; string maps become JSON
    object text. Everything else goes through `TypeConverter`.

    Raises
        TypeMismatch: If a typed array holds an element of the wrong kind
    """
    if kind is Kind.POINTER and inner is not None:
        kind = inner
    if value is None:
        return None
    match kind:
        case Kind.INT_ARRAY | Kind.STRING_ARRAY if isinstance(value, list | tuple):
            if array_literals:
                return _array_literal(list(value), kind)
            return json.dumps(_to_array(value, kind))
        case Kind.STRING_MAP if isinstance(value, dict):
            return json.dumps(_to_string_map(value, kind))
    return TypeConverter.convert_value(value)
