"""
Statement logging policy.

Connections carry `log_queries`/`log_args` defaults; callers narrow them for
a block of work with the context managers below, which also work as
decorators:

    with no_arg_logging():
        db.insert(user)
"""
import logging
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from recordmap.options import DatabaseOptions

__all__ = [
    'REDACTED',
    'LogSink',
    'LogPolicy',
    'no_logging',
    'no_query_logging',
    'no_arg_logging',
    'mask_args',
]

REDACTED = '[REDACTED]'

LogSink = logging.Logger | logging.LoggerAdapter

_suppressed: ContextVar[frozenset[str]] = ContextVar('recordmap_log_suppressed', default=frozenset())


@contextmanager
def _suppress(*what: str) -> Iterator[None]:
    token = _suppressed.set(_suppressed.get() | frozenset(what))
    try:
        yield
    finally:
        _suppressed.reset(token)


def no_logging():
    """Suppress all statement logging for the enclosed calls."""
    return _suppress('all')


def no_query_logging():
    """Suppress SQL text in statement logging for the enclosed calls."""
    return _suppress('query')


def no_arg_logging():
    """Suppress argument values in statement logging for the enclosed calls."""
    return _suppress('args')


def mask_args(args: Sequence[Any], redacted: Iterable[int] = ()) -> tuple:
    """Replace values at redacted positions with the redaction marker."""
    hidden = set(redacted)
    if not hidden:
        return tuple(args)
    return tuple(REDACTED if i in hidden else v for i, v in enumerate(args))


@dataclass(frozen=True)
class LogPolicy:
    """Effective logging switches for one statement."""
    enabled: bool = True
    queries: bool = True
    args: bool = True

    @classmethod
    def resolve(cls, options: 'DatabaseOptions | None' = None) -> 'LogPolicy':
        """Combine connection options with the ambient overrides."""
        suppressed = _suppressed.get()
        queries = getattr(options, 'log_queries', True) and 'query' not in suppressed
        args = getattr(options, 'log_args', True) and 'args' not in suppressed
        return cls('all' not in suppressed, queries, args)

    def describe(self, sql: str, args: Sequence[Any], redacted: Iterable[int] = ()) -> str:
        """Render the statement for a log message."""
        parts = []
        if self.queries:
            parts.append(f'SQL:\n{sql}')
        if self.args:
            parts.append(f'args: {mask_args(args, redacted)}')
        return '\n'.join(parts) or '<statement details suppressed>'

    def fields(self, sql: str, args: Sequence[Any], redacted: Iterable[int] = ()) -> dict[str, Any]:
        """Structured fields passed to the sink via `extra`."""
        fields: dict[str, Any] = {}
        if self.queries:
            fields['sql'] = sql
        if self.args:
            fields['sql_args'] = mask_args(args, redacted)
        return fields
