"""
Record mapping exception classes.
"""
import sqlite3

from sqlalchemy import exc as sa_exc


class DatabaseError(Exception):
    """Base class for all recordmap errors.
    """


class TypeMismatch(DatabaseError):
    """A raw value could not be coerced into a field's target kind.
    """

    def __init__(self, source_kind: str, target_kind: str, column: str | None = None,
                 value: object = None, detail: str | None = None) -> None:
        self.column = column
        self.source_kind = source_kind
        self.target_kind = target_kind
        self.value = value
        self.detail = detail
        super().__init__(self._message())

    def _message(self) -> str:
        where = f'column {self.column!r}: ' if self.column else ''
        msg = f'{where}cannot coerce {self.source_kind} to {self.target_kind}'
        if self.detail:
            msg += f' ({self.detail})'
        return msg

    def with_column(self, column: str) -> 'TypeMismatch':
        """Return a copy attributed to a column."""
        return TypeMismatch(self.source_kind, self.target_kind, column=column,
                            value=self.value, detail=self.detail)


class InvalidIdentifier(DatabaseError):
    """Malformed or suspicious table/column name.
    """

    def __init__(self, token: str, reason: str = 'invalid identifier') -> None:
        self.token = token
        super().__init__(f'{reason}: {token!r}')


class MissingReturningClause(DatabaseError):
    """Dialect needs RETURNING/OUTPUT to retrieve a generated key.
    """

    def __init__(self, dialect: str) -> None:
        self.dialect = dialect
        super().__init__(
            f'{dialect} requires a RETURNING or OUTPUT clause to retrieve a generated key')


class NotFound(DatabaseError):
    """Single-record query matched no rows.
    """


class MultipleRows(DatabaseError):
    """Single-record query matched more than one row.
    """

    def __init__(self, count: int, message: str | None = None) -> None:
        self.count = count
        super().__init__(message or f'expected one row, got {count}')


class ValidationError(DatabaseError):
    """Model registration or write validation failed.
    """

    def __init__(self, model_name: str, errors: list[str]) -> None:
        self.model_name = model_name
        self.errors = list(errors)
        super().__init__(f'{model_name}: ' + '; '.join(self.errors))


class UnknownModel(DatabaseError, KeyError):
    """Type was never registered.
    """

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else 'unknown model'


IntegrityError = (
    sqlite3.IntegrityError,
    sa_exc.IntegrityError,
    )

ProgrammingError = (
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    sa_exc.ProgrammingError,
    )

OperationalError = (
    sqlite3.OperationalError,
    sa_exc.OperationalError,
    )
