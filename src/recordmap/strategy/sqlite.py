"""
SQLite-specific strategy implementation.

SQLite accepts RETURNING (3.35+) and also exposes the rowid of the last
insert, so both generated-key paths are available.
"""
import datetime
import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from recordmap.capabilities import CAPABILITIES
from recordmap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from recordmap.options import DatabaseOptions

logger = logging.getLogger(__name__)


def _adapt_datetime(value: datetime.datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.isoformat(sep=' ')


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    capabilities = CAPABILITIES['sqlite']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        if options.timeout:
            return {'connect_args': {'timeout': options.timeout}}
        return {}

    def register_type_adapters(self, connection: Any) -> None:
        """Register adapters for values sqlite3 cannot bind natively.

        Dates are stored as ISO text, aware datetimes in UTC without an offset;
        the row deserializer parses them back as UTC.
        """
        sqlite3.register_adapter(dict, json.dumps)
        sqlite3.register_adapter(list, json.dumps)
        sqlite3.register_adapter(datetime.datetime, _adapt_datetime)
        sqlite3.register_adapter(datetime.date, datetime.date.isoformat)

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']
