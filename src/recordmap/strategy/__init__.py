"""
Dialect strategy factory.
"""
from functools import lru_cache

from recordmap.capabilities import normalize_dialect as normalize_dialect
from recordmap.strategy.base import _STRATEGY_REGISTRY
from recordmap.strategy.base import DatabaseStrategy as DatabaseStrategy
from recordmap.strategy.base import register_strategy as register_strategy
from recordmap.strategy.mysql import MySQLStrategy as MySQLStrategy
from recordmap.strategy.oracle import OracleStrategy as OracleStrategy
from recordmap.strategy.postgres import PostgresStrategy as PostgresStrategy
from recordmap.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from recordmap.strategy.sqlserver import SQLServerStrategy as SQLServerStrategy


def _validate_dialect(dialect: str) -> None:
    """Raise ValueError if dialect is not registered."""
    if dialect not in _STRATEGY_REGISTRY:
        available = list(_STRATEGY_REGISTRY.keys())
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {available}')


@lru_cache(maxsize=8)
def _get_strategy(dialect: str) -> DatabaseStrategy:
    """Get cached strategy instance for a dialect."""
    _validate_dialect(dialect)
    return _STRATEGY_REGISTRY[dialect]()


def get_strategy(dialect: str) -> DatabaseStrategy:
    """Get strategy instance for a dialect name (aliases accepted)."""
    return _get_strategy(normalize_dialect(dialect))


def get_available_dialects() -> list[str]:
    """Return list of registered dialect names."""
    return list(_STRATEGY_REGISTRY.keys())


def is_supported_dialect(dialect: str) -> bool:
    """Check if a dialect is supported."""
    return normalize_dialect(dialect) in _STRATEGY_REGISTRY


def get_strategy_class(dialect: str) -> type['DatabaseStrategy']:
    """Get the strategy class for a dialect without instantiating."""
    dialect = normalize_dialect(dialect)
    _validate_dialect(dialect)
    return _STRATEGY_REGISTRY[dialect]
