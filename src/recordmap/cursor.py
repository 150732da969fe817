"""
Statement execution over a SQLAlchemy connection.

All statements pass through `Cursor.execute` (or `execute_out_binds` for
drivers that return generated keys through out variables), so logging,
redaction, placeholder conversion and parameter conversion happen in one
place.
"""
import logging
import time
from collections.abc import Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any

from recordmap.logger import LogPolicy
from recordmap.types import TypeConverter

if TYPE_CHECKING:
    from recordmap.connection import Database

logger = logging.getLogger(__name__)

__all__ = ['Cursor', 'dumpsql']


def dumpsql(func):
    """Decorator for logging SQL statements, arguments and timing."""
    @wraps(func)
    def wrapper(self, operation: str, args: Sequence[Any] = (),
                redacted: Sequence[int] = (), **kwargs: Any):
        policy = LogPolicy.resolve(self.database.options)
        sink = self.database.log
        start = time.time()
        if policy.enabled:
            sink.debug(policy.describe(operation, args, redacted),
                       extra=policy.fields(operation, args, redacted))
        try:
            return func(self, operation, args, redacted, **kwargs)
        except Exception:
            if policy.enabled:
                sink.error(f'Error with query:\n{policy.describe(operation, args, redacted)}',
                           extra=policy.fields(operation, args, redacted))
            raise
        finally:
            elapsed = time.time() - start
            self.database.addcall(elapsed)
            if policy.enabled:
                sink.debug(f'Query time: {elapsed:.4f}s', extra={'elapsed': elapsed})
    return wrapper


def _first(value: Any) -> Any:
    """DML out binds come back as one-element lists."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


class Cursor:
    """Executes native-placeholder SQL for a `Database`.
    """

    def __init__(self, database: 'Database') -> None:
        self.database = database

    def _prepare(self, operation: str, args: Sequence[Any]) -> tuple[str, tuple | dict]:
        params = TypeConverter.convert_params(tuple(args))
        return self.database.strategy.standardize_sql(operation, params, self.database.paramstyle)

    @dumpsql
    def execute(self, operation: str, args: Sequence[Any] = (),
                redacted: Sequence[int] = ()) -> Any:
        """Execute a statement and return the SQLAlchemy CursorResult."""
        sql, params = self._prepare(operation, args)
        return self.database.sa_connection.exec_driver_sql(sql, params)

    @dumpsql
    def execute_out_binds(self, operation: str, args: Sequence[Any] = (),
                          redacted: Sequence[int] = (), *, outputs: int = 1) -> list[Any]:
        """Execute on a raw DBAPI cursor with `outputs` trailing out variables.

        Out variables take the placeholder numbers following the statement's
        own arguments.
        """
        sql, params = self._prepare(operation, args)
        raw = self.database.sa_connection.connection.cursor()
        try:
            variables = [raw.var(str) for _ in range(outputs)]
            if isinstance(params, dict):
                params = {**params, **{f'p{len(args) + n}': v for n, v in enumerate(variables, 1)}}
            else:
                params = (*params, *variables)
            raw.execute(sql, params)
            return [_first(v.getvalue()) for v in variables]
        finally:
            raw.close()
