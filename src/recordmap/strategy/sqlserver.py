"""
SQL Server-specific strategy implementation.

Bracket-quoted identifiers, `@pN` placeholders and `OUTPUT INSERTED.<col>`
positioned before VALUES for generated keys.
"""
import logging
from typing import TYPE_CHECKING

import sqlalchemy as sa

from recordmap.capabilities import CAPABILITIES
from recordmap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from recordmap.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('mssql')
class SQLServerStrategy(DatabaseStrategy):
    """SQL Server-specific operations.
    """

    capabilities = CAPABILITIES['mssql']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQL Server via ODBC."""
        query = {'driver': 'ODBC Driver 18 for SQL Server', 'TrustServerCertificate': 'yes'}
        if options.timeout:
            query['timeout'] = str(options.timeout)
        return sa.URL.create(
            drivername='mssql+pyodbc',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query,
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQL Server connections."""
        return ['hostname', 'username', 'database']
