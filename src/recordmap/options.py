import logging
from dataclasses import dataclass

from recordmap.logger import LogSink
from recordmap.strategy import get_available_dialects, get_strategy_class
from recordmap.strategy import is_supported_dialect, normalize_dialect

__all__ = ['DatabaseOptions']


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`, `mysql`, `mssql`, `oracle`
    (aliases `postgres`, `sqlite3`, `sqlserver` are accepted)

    Logging options:
    - logger: sink for statement events (default: the `recordmap` logger)
    - log_queries: include SQL text in statement events (default: True)
    - log_args: include argument values in statement events (default: True)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    logger: LogSink | None = None
    log_queries: bool = True
    log_args: bool = True

    def __post_init__(self):
        self.drivername = normalize_dialect(self.drivername)
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
        if self.logger is None:
            self.logger = logging.getLogger('recordmap')
