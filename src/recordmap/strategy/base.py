"""
Base strategy interface for dialect-specific behaviour.

Each concrete strategy binds one row of the capability table to the pieces
that need a live driver: connection URLs, option validation, type adapters
and generated-key retrieval. SQL rendering itself reads the capability
record, so the write builder stays free of driver imports.
"""
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, ClassVar

import sqlalchemy as sa

from recordmap.capabilities import DialectCapabilities, PlaceholderStyle
from recordmap.sql import convert_placeholders, quote_identifier

if TYPE_CHECKING:
    from recordmap.cursor import Cursor
    from recordmap.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    capabilities: ClassVar[DialectCapabilities]

    @property
    def dialect_name(self) -> str:
        """Return the canonical dialect name."""
        return self.capabilities.name

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL.

        Args:
            options: Connection options

        Returns
            sa.URL: URL including the driver suffix for this dialect
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return extra SQLAlchemy create_engine kwargs."""
        return {}

    def register_type_adapters(self, connection: Any) -> None:
        """Register driver adapters on a freshly opened DBAPI connection."""

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    def quote_identifier(self, identifier: str) -> str:
        """Quote a table or column name for this dialect."""
        return quote_identifier(self.capabilities, identifier)

    def get_placeholder_style(self) -> PlaceholderStyle:
        """Return the native placeholder style."""
        return self.capabilities.placeholder_style

    def standardize_sql(self, sql: str, args: Sequence[Any],
                        paramstyle: str) -> tuple[str, tuple | dict]:
        """Convert native placeholders to the driver paramstyle.

        Args:
            sql: SQL using this dialect's native markers (or `?`)
            args: Positional arguments
            paramstyle: DB-API paramstyle of the loaded driver

        Returns
            tuple: Converted SQL and driver-shaped parameters
        """
        return convert_placeholders(sql, args, paramstyle)

    def execute_returning(self, cursor: 'Cursor', sql: str, args: Sequence[Any],
                          columns: Sequence[str],
                          redacted: Sequence[int] = ()) -> dict[str, Any] | None:
        """Execute an INSERT carrying a RETURNING/OUTPUT clause and fetch its row.

        Returns
            dict: Returned row keyed by lower-cased column name, or None
        """
        result = cursor.execute(sql, args, redacted)
        row = result.mappings().first()
        if row is None:
            return None
        return {str(k).lower(): v for k, v in row.items()}

    def last_insert_id(self, result: Any) -> Any:
        """Return the driver's last-insert-id for a plain INSERT."""
        return result.lastrowid
