"""
Transaction handling for record operations.
"""
import logging
import threading
from typing import Any, TypeVar

from recordmap.connection import Database

logger = logging.getLogger(__name__)

T = TypeVar('T')

_local = threading.local()


class Transaction:
    """Context manager for running multiple operations in one transaction.

    Operations on the wrapped `Database` stop committing individually while
    the transaction is open. Leaving the block commits; leaving it with an
    exception rolls back and re-raises. Nested transactions on the same
    database are not supported.

    Examples
        with Transaction(db) as tx:
            tx.insert(order)
            tx.update(customer)
    """

    def __init__(self, db: Database) -> None:
        self.db = db

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = set()

        if id(db) in _local.active_transactions or db.in_transaction:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self):
        sa_connection = self.db.sa_connection
        if sa_connection.in_transaction():
            sa_connection.commit()
        _local.active_transactions.add(id(self.db))
        self.db.in_transaction = True
        logger.debug(f'Started transaction for connection {id(self.db)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self.db.sa_connection.rollback()
                self.db.log.warning('Rolling back the current transaction')
            else:
                self.db.sa_connection.commit()
                logger.debug(f'Committed transaction for connection {id(self.db)}')
        finally:
            _local.active_transactions.discard(id(self.db))
            self.db.in_transaction = False

    def execute(self, sql: str, *args: Any) -> int:
        """Execute SQL within transaction context"""
        return self.db.execute(sql, *args)

    def select(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Execute a query within transaction context"""
        return self.db.select(sql, *args)

    def query_all(self, cls: type[T], sql: str, *args: Any) -> list[T]:
        return self.db.query_all(cls, sql, *args)

    def query_first(self, cls: type[T], sql: str, *args: Any) -> T | None:
        return self.db.query_first(cls, sql, *args)

    def query_one(self, cls: type[T], sql: str, *args: Any) -> T:
        return self.db.query_one(cls, sql, *args)

    def load(self, record: T) -> T:
        return self.db.load(record)

    def load_by(self, record: T, *fields: str) -> T:
        return self.db.load_by(record, *fields)

    def insert(self, record: T) -> T:
        """Insert a record within transaction context"""
        return self.db.insert(record)

    def insert_and_load(self, record: T) -> T:
        return self.db.insert_and_load(record)

    def update(self, record: Any) -> int:
        """Update a record within transaction context"""
        return self.db.update(record)

    def insert_and_get_id(self, sql: str, *args: Any) -> Any:
        return self.db.insert_and_get_id(sql, *args)
