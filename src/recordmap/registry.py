"""
Model metadata registry.

Records are dataclasses. Registration happens once, single-threaded, at
start-up through a `RegistryBuilder`; `build()` freezes the result into a
`Registry` that is passed to every operation and only ever read afterwards.

    builder = RegistryBuilder()

    @builder.model('users', partial_update=True)
    @dataclass
    class User:
        id: int = column(primary=True, default=0)
        name: str = ''
        password: str = column(redact=True, default='')
        is_active: bool | None = None
        updated_at: datetime | None = column(auto_timestamp=True, default=None)

    registry = builder.build()
"""
import copy
import dataclasses
import datetime
import logging
import operator
import re
import types
import typing
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Annotated, Any, get_args, get_origin

from recordmap.exceptions import UnknownModel, ValidationError
from recordmap.types import Kind, coerce, serialize, zero_value

logger = logging.getLogger(__name__)

__all__ = [
    'Int32',
    'Int64',
    'column',
    'ColumnOptions',
    'FieldDescriptor',
    'ModelMetadata',
    'Registry',
    'RegistryBuilder',
    'snake_case',
    'snapshot',
    'get_baseline',
    'clear_baseline',
]

Int32 = Annotated[int, Kind.INT32]
Int64 = Annotated[int, Kind.INT64]

_METADATA_KEY = 'recordmap'
_BASELINE_ATTR = '_recordmap_baseline'

_NAME = re.compile(r'[A-Za-z0-9_]+')

_SIMPLE_KINDS: dict[Any, Kind] = {
    bool: Kind.BOOL,
    int: Kind.INT,
    float: Kind.FLOAT,
    str: Kind.STRING,
    datetime.datetime: Kind.TIME,
    dict: Kind.JSON_OBJECT,
    list: Kind.JSON_ARRAY,
}


@dataclass(frozen=True, slots=True)
class ColumnOptions:
    """Per-field mapping options attached by `column()`."""
    name: str | None = None
    primary: bool = False
    redact: bool = False
    insert: bool = True
    update: bool = True
    auto_timestamp: bool = False
    ignore: bool = False


def column(name: str | None = None, *, primary: bool = False, redact: bool = False,
           insert: bool = True, update: bool = True, auto_timestamp: bool = False,
           ignore: bool = False, **field_kwargs: Any) -> Any:
    """Declare a mapped dataclass field.

    Args:
        name: Column name (defaults to the snake_case field name)
        primary: Field is (part of) the primary key
        redact: Replace the value with a marker in log events
        insert: Include in INSERT statements
        update: Include in UPDATE statements
        auto_timestamp: Written with the database clock on INSERT/UPDATE
        ignore: Field is not mapped to any column
        field_kwargs: Passed through to `dataclasses.field` (default, default_factory, ...)
    """
    options = ColumnOptions(name, primary, redact, insert, update, auto_timestamp, ignore)
    metadata = dict(field_kwargs.pop('metadata', None) or {})
    metadata[_METADATA_KEY] = options
    return dataclasses.field(metadata=metadata, **field_kwargs)


def snake_case(name: str) -> str:
    """Convert a field name such as `userID` or `IsActive` to `user_id`/`is_active`."""
    name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name)
    return name.lower()


def _resolve_kind(annotation: Any) -> tuple[Kind, Kind | None, type | None]:
    """Map a type annotation to (kind, inner kind, python type)."""
    origin = get_origin(annotation)

    if origin is Annotated:
        base, *extras = get_args(annotation)
        for extra in extras:
            if isinstance(extra, Kind):
                return extra, None, base
        return _resolve_kind(base)

    if origin in {typing.Union, types.UnionType}:
        members = get_args(annotation)
        present = [m for m in members if m is not type(None)]
        if len(present) == 1 and len(members) == 2:
            kind, _, python_type = _resolve_kind(present[0])
            return Kind.POINTER, kind, python_type
        return Kind.GENERIC, None, None

    args = get_args(annotation)
    if origin is list and args in {(int,), (str,)}:
        return (Kind.INT_ARRAY if args == (int,) else Kind.STRING_ARRAY), None, list
    if origin is dict and args == (str, str):
        return Kind.STRING_MAP, None, dict

    base = origin or annotation
    if base in _SIMPLE_KINDS:
        return _SIMPLE_KINDS[base], None, base
    return Kind.GENERIC, None, base if isinstance(base, type) else None


def _make_setter(name: str) -> Callable[[Any, Any], None]:
    def setter(record: Any, value: Any) -> None:
        object.__setattr__(record, name, value)
    return setter


def _make_initializer(f: dataclasses.Field, kind: Kind | None) -> Callable[[], Any]:
    if f.default is not dataclasses.MISSING:
        default = f.default
        return lambda: default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory
    if kind is None:
        return lambda: None
    return lambda: copy.copy(zero_value(kind))


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Mapping of one record attribute to one column.
    """
    name: str
    column_name: str
    kind: Kind
    inner: Kind | None = None
    python_type: type | None = None
    primary: bool = False
    redact: bool = False
    insert: bool = True
    update: bool = True
    auto_timestamp: bool = False
    partial_update_eligible: bool = False
    getter: Callable[[Any], Any] = dataclasses.field(default=None, repr=False, compare=False)
    setter: Callable[[Any, Any], None] = dataclasses.field(default=None, repr=False, compare=False)

    def get(self, record: Any) -> Any:
        return self.getter(record)

    def set(self, record: Any, value: Any) -> None:
        self.setter(record, value)

    def coerce(self, value: Any) -> Any:
        """Coerce a raw value into this field's kind."""
        return coerce(value, self.kind, inner=self.inner, python_type=self.python_type)

    def to_param(self, value: Any, array_literals: bool = False) -> Any:
        """Convert a value of this field into a bind parameter."""
        return serialize(value, self.kind, self.inner, array_literals=array_literals)

    @property
    def target_kind(self) -> str:
        if self.kind is Kind.POINTER and self.inner is not None:
            return f'pointer[{self.inner.value}]'
        return self.kind.value


@dataclass(frozen=True)
class ModelMetadata:
    """Immutable mapping metadata of one registered record type.
    """
    model: type
    table_name: str
    fields: tuple[FieldDescriptor, ...]
    primary_key: tuple[FieldDescriptor, ...]
    partial_update: bool = False
    initializers: tuple[tuple[str, Callable[[], Any]], ...] = dataclasses.field(default=(), repr=False)

    @property
    def name(self) -> str:
        return self.model.__qualname__

    def field(self, name: str) -> FieldDescriptor:
        """Look up a field by attribute name."""
        for f in self.fields:
            if f.name == name:
                return f
        raise ValueError(f'{self.name} has no mapped field {name!r}')

    def column(self, column_name: str) -> FieldDescriptor | None:
        """Look up a field by column name, case-insensitively."""
        lowered = column_name.lower()
        for f in self.fields:
            if f.column_name.lower() == lowered:
                return f
        return None

    def new(self) -> Any:
        """Allocate a record with declared defaults, or zero values where none are declared.

        `__init__` is bypassed so required dataclass fields do not need values.
        """
        record = self.model.__new__(self.model)
        for name, initializer in self.initializers:
            object.__setattr__(record, name, initializer())
        return record

    def require_primary_key(self) -> tuple[FieldDescriptor, ...]:
        if not self.primary_key:
            raise ValidationError(self.name, ['model has no primary key field'])
        return self.primary_key


class Registry(Mapping):
    """Read-only lookup of model metadata by record type.
    """

    def __init__(self, models: Mapping[type, ModelMetadata]) -> None:
        self._models = MappingProxyType(dict(models))

    def __getitem__(self, model: type) -> ModelMetadata:
        try:
            return self._models[model]
        except KeyError:
            name = getattr(model, '__qualname__', repr(model))
            raise UnknownModel(f'{name} is not registered') from None

    def __iter__(self) -> Iterator[type]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def metadata_for(self, record: Any) -> ModelMetadata:
        """Metadata for a record instance or a record type."""
        return self[record if isinstance(record, type) else type(record)]


class RegistryBuilder:
    """Collects model registrations and produces an immutable `Registry`.

    Not thread-safe; register everything during start-up, then `build()`.
    """

    def __init__(self) -> None:
        self._models: dict[type, ModelMetadata] = {}
        self._built = False

    def model(self, table: str | None = None, *, partial_update: bool = False):
        """Decorator form of `register`.

        Usage:
            @builder.model('users')
            @dataclass
            class User:
                ...
        """
        def decorator(cls: type) -> type:
            self.register(cls, table, partial_update=partial_update)
            return cls
        return decorator

    def register(self, cls: type, table: str | None = None, *,
                 partial_update: bool = False) -> ModelMetadata:
        """Validate and register a dataclass record type.

        Raises
            ValidationError: Listing every problem found with the model
            RuntimeError: If the registry was already built
        """
        if self._built:
            raise RuntimeError('registry is already built; register models before build()')

        model_name = getattr(cls, '__qualname__', repr(cls))
        if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
            raise ValidationError(model_name, ['model must be a dataclass type'])

        table_name = table or snake_case(cls.__name__)
        hints = typing.get_type_hints(cls, include_extras=True)

        errors: list[str] = []
        if not all(_NAME.fullmatch(part) for part in table_name.split('.')):
            errors.append(f'invalid table name {table_name!r}')

        descriptors = []
        initializers = []
        seen: dict[str, str] = {}
        for f in dataclasses.fields(cls):
            opts = f.metadata.get(_METADATA_KEY, ColumnOptions())
            if opts.ignore:
                if opts.primary:
                    errors.append(f'{f.name}: ignored field cannot be a primary key')
                initializers.append((f.name, _make_initializer(f, None)))
                continue

            kind, inner, python_type = _resolve_kind(hints.get(f.name, Any))
            column_name = opts.name or snake_case(f.name)
            initializers.append((f.name, _make_initializer(f, kind)))

            if not _NAME.fullmatch(column_name):
                errors.append(f'{f.name}: invalid column name {column_name!r}')
            if column_name.lower() in seen:
                errors.append(f'{f.name}: column {column_name!r} already mapped by {seen[column_name.lower()]}')
            seen[column_name.lower()] = f.name
            if opts.auto_timestamp:
                if Kind.TIME not in {kind, inner} and Kind.STRING not in {kind, inner}:
                    errors.append(f'{f.name}: auto_timestamp requires a datetime or str field')
                if opts.primary:
                    errors.append(f'{f.name}: primary key cannot be an auto_timestamp')

            descriptors.append(FieldDescriptor(
                name=f.name,
                column_name=column_name,
                kind=kind,
                inner=inner,
                python_type=python_type,
                primary=opts.primary,
                redact=opts.redact,
                insert=opts.insert,
                update=opts.update,
                auto_timestamp=opts.auto_timestamp,
                partial_update_eligible=partial_update and not opts.primary,
                getter=operator.attrgetter(f.name),
                setter=_make_setter(f.name),
                ))

        if not descriptors:
            errors.append('model has no mapped fields')
        if partial_update and not _has_instance_dict(cls):
            errors.append('partial_update models need instance __dict__ (slots=True is not supported)')
        if cls in self._models:
            errors.append('model is already registered')

        if errors:
            raise ValidationError(model_name, errors)

        metadata = ModelMetadata(
            model=cls,
            table_name=table_name,
            fields=tuple(descriptors),
            primary_key=tuple(d for d in descriptors if d.primary),
            partial_update=partial_update,
            initializers=tuple(initializers),
            )
        self._models[cls] = metadata
        logger.debug(f'Registered {model_name} -> {table_name} ({len(descriptors)} columns)')
        return metadata

    def build(self) -> Registry:
        """Freeze registrations into an immutable registry."""
        self._built = True
        return Registry(self._models)


def _has_instance_dict(cls: type) -> bool:
    return any('__dict__' in klass.__dict__.get('__slots__', ('__dict__',))
               for klass in cls.__mro__ if klass is not object)


# =============================================================================
# Baselines for partial updates
# =============================================================================

def snapshot(metadata: ModelMetadata, record: Any) -> dict[str, Any]:
    """Store a deep copy of the record's mapped values as its baseline."""
    baseline = {f.name: copy.deepcopy(f.get(record)) for f in metadata.fields}
    object.__setattr__(record, _BASELINE_ATTR, baseline)
    return baseline


def get_baseline(record: Any) -> dict[str, Any] | None:
    """Return the baseline captured by the last load or update, if any."""
    return getattr(record, '__dict__', {}).get(_BASELINE_ATTR)


def clear_baseline(record: Any) -> None:
    getattr(record, '__dict__', {}).pop(_BASELINE_ATTR, None)
