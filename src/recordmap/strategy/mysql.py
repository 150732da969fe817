"""
MySQL-specific strategy implementation.

MySQL has no RETURNING clause; generated keys come from LAST_INSERT_ID()
via the driver's lastrowid.
"""
import logging
from typing import TYPE_CHECKING

import sqlalchemy as sa

from recordmap.capabilities import CAPABILITIES
from recordmap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from recordmap.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('mysql')
class MySQLStrategy(DatabaseStrategy):
    """MySQL-specific operations.
    """

    capabilities = CAPABILITIES['mysql']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for MySQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        return sa.URL.create(
            drivername='mysql+pymysql',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query,
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for MySQL connections."""
        return ['hostname', 'username', 'database']
