"""
Oracle-specific strategy implementation.

Oracle folds unquoted identifiers to upper case, so names are upper-cased
before quoting. Generated keys come back through `RETURNING ... INTO` out
binds numbered after the statement's own arguments.
"""
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from recordmap.capabilities import CAPABILITIES
from recordmap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from recordmap.cursor import Cursor
    from recordmap.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('oracle')
class OracleStrategy(DatabaseStrategy):
    """Oracle-specific operations.
    """

    capabilities = CAPABILITIES['oracle']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for Oracle (service name in `database`)."""
        return sa.URL.create(
            drivername='oracle+oracledb',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            query={'service_name': options.database},
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for Oracle connections."""
        return ['hostname', 'username', 'database']

    def execute_returning(self, cursor: 'Cursor', sql: str, args: Sequence[Any],
                          columns: Sequence[str],
                          redacted: Sequence[int] = ()) -> dict[str, Any] | None:
        """Bind one out variable per returned column and read them back.
        """
        values = cursor.execute_out_binds(sql, args, redacted, outputs=len(columns))
        logger.debug(f'RETURNING INTO bound {len(values)} value(s)')
        return {column.lower(): value for column, value in zip(columns, values)}
