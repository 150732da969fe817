"""
Record operations against an in-memory SQLite database.
"""
import datetime
import sqlite3

import pytest
import recordmap as rm
import sqlalchemy as sa
from recordmap import Database, MultipleRows, NotFound, UnknownModel, ValidationError

from tests.fixtures.models import REGISTRY, Account, LineItem, Unregistered, User

UTC = datetime.timezone.utc


class TestInsert:

    def test_generated_key_written_back(self, sqlite_db):
        user = rm.insert(sqlite_db, User(name='Alice', email='alice@example.com'))
        assert user.id == 1
        second = sqlite_db.insert(User(name='Bob'))
        assert second.id == 2

    def test_explicit_key(self, sqlite_db):
        account = sqlite_db.insert(Account(id=40, owner='acme'))
        assert account.id == 40
        assert rm.select(sqlite_db, 'SELECT id FROM accounts') == [{'id': 40}]

    def test_composite_key(self, sqlite_db):
        sqlite_db.insert(LineItem(order_id=1, line_no=1, sku='A-1', quantity=2))
        rows = sqlite_db.select('SELECT * FROM line_items')
        assert rows == [{'order_id': 1, 'line_no': 1, 'sku': 'A-1', 'quantity': 2}]

    def test_database_clock_for_timestamps(self, sqlite_db):
        user = sqlite_db.insert_and_load(User(name='Alice'))
        assert user.updated_at is not None
        assert user.updated_at.tzinfo is not None
        assert abs(datetime.datetime.now(UTC) - user.updated_at) < datetime.timedelta(minutes=5)

    def test_round_trip_values(self, sqlite_db):
        created = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        user = sqlite_db.insert(User(
            name='Alice',
            is_active=False,
            score=2.5,
            tags=['admin', 'ops'],
            created_at=created,
            ))
        loaded = sqlite_db.load(User(id=user.id))
        assert loaded.name == 'Alice'
        assert loaded.is_active is False
        assert loaded.score == 2.5
        assert loaded.tags == ['admin', 'ops']
        assert loaded.created_at == created

    def test_null_pointer_round_trip(self, sqlite_db):
        user = sqlite_db.insert_and_load(User(name='Alice'))
        assert user.is_active is None
        assert user.created_at is None

    def test_json_object(self, sqlite_db):
        account = sqlite_db.insert_and_load(Account(owner='acme', settings={'theme': 'dark'}))
        assert account.settings == {'theme': 'dark'}

    def test_constraint_violation_attributed(self, sqlite_db):
        """Driver errors pass through, annotated with the operation"""
        sqlite_db.insert(Account(owner='acme'))
        with pytest.raises(sqlite3.IntegrityError) as exc:
            sqlite_db.insert(Account(owner='acme'))
        assert 'recordmap: raised by insert' in exc.value.__notes__
        assert isinstance(exc.value, rm.IntegrityError)
        assert sqlite_db.select('SELECT COUNT(*) AS n FROM accounts') == [{'n': 1}]

    def test_unknown_model(self, sqlite_db):
        with pytest.raises(UnknownModel):
            sqlite_db.insert(Unregistered(id=1))


class TestQuery:

    @pytest.fixture(autouse=True)
    def accounts(self, sqlite_db):
        for owner, balance in (('acme', 10), ('globex', 20), ('initech', 20)):
            sqlite_db.insert(Account(owner=owner, balance=balance))

    def test_query_all(self, sqlite_db):
        accounts = rm.query_all(sqlite_db, Account, 'SELECT * FROM accounts ORDER BY owner')
        assert [a.owner for a in accounts] == ['acme', 'globex', 'initech']
        assert all(isinstance(a, Account) for a in accounts)

    def test_query_all_empty(self, sqlite_db):
        assert sqlite_db.query_all(Account, 'SELECT * FROM accounts WHERE balance > ?', 100) == []

    def test_query_first(self, sqlite_db):
        account = sqlite_db.query_first(Account, 'SELECT * FROM accounts WHERE balance = ? ORDER BY id', 20)
        assert account.owner == 'globex'
        assert sqlite_db.query_first(Account, 'SELECT * FROM accounts WHERE balance = ?', 99) is None

    def test_query_one(self, sqlite_db):
        account = sqlite_db.query_one(Account, 'SELECT * FROM accounts WHERE owner = ?', 'acme')
        assert account.balance == 10

    def test_query_one_not_found(self, sqlite_db):
        with pytest.raises(NotFound):
            sqlite_db.query_one(Account, 'SELECT * FROM accounts WHERE owner = ?', 'nobody')

    def test_query_one_multiple(self, sqlite_db):
        """More than one row is an error, never silently the first"""
        with pytest.raises(MultipleRows) as exc:
            sqlite_db.query_one(Account, 'SELECT * FROM accounts WHERE balance = ?', 20)
        assert exc.value.count == 2

    def test_partial_select_list(self, sqlite_db):
        account = sqlite_db.query_one(Account, 'SELECT owner FROM accounts WHERE owner = ?', 'acme')
        assert account.owner == 'acme'
        assert account.id == 0
        assert account.balance == 0

    def test_select_lowercases_columns(self, sqlite_db):
        rows = sqlite_db.select('SELECT owner AS "OWNER" FROM accounts WHERE balance = ?', 10)
        assert rows == [{'owner': 'acme'}]

    def test_numbered_placeholders(self, sqlite_db):
        rows = sqlite_db.select('SELECT owner FROM accounts WHERE balance = $1 AND owner <> $2', 20, 'globex')
        assert rows == [{'owner': 'initech'}]

    def test_load_by(self, sqlite_db):
        account = rm.load_by(sqlite_db, Account(owner='globex'), 'owner')
        assert account.id == 2
        assert account.balance == 20

    def test_load_by_multiple(self, sqlite_db):
        with pytest.raises(MultipleRows):
            sqlite_db.load_by(Account(balance=20), 'balance')

    def test_load_not_found(self, sqlite_db):
        with pytest.raises(NotFound):
            rm.load(sqlite_db, Account(id=99))

    def test_load_unset_key(self, sqlite_db):
        with pytest.raises(ValidationError, match='primary key id is not set'):
            sqlite_db.load(Account(owner='acme'))


class TestUpdate:

    def test_full_update_overwrites(self, sqlite_db):
        account = sqlite_db.insert(Account(owner='acme', balance=10, settings={'a': 1}))
        changed = rm.update(sqlite_db, Account(id=account.id, owner='acme'))
        assert changed == 1
        reloaded = sqlite_db.load(Account(id=account.id))
        assert reloaded.balance == 0
        assert reloaded.settings == {}

    def test_partial_update_after_load(self, sqlite_db):
        user = sqlite_db.insert(User(name='Alice', email='alice@example.com', score=1.0))
        loaded = sqlite_db.load(User(id=user.id))

        sqlite_db.execute('UPDATE users SET email = ? WHERE id = ?', 'changed@example.com', user.id)
        loaded.name = 'Alicia'
        assert sqlite_db.update(loaded) == 1

        reloaded = sqlite_db.load(User(id=user.id))
        assert reloaded.name == 'Alicia'
        assert reloaded.email == 'changed@example.com'

    def test_unchanged_record_skips_statement(self, sqlite_db):
        user = sqlite_db.insert_and_load(User(name='Alice'))
        calls = sqlite_db.calls
        assert sqlite_db.update(user) == 0
        assert sqlite_db.calls == calls

    def test_baseline_refreshed_after_update(self, sqlite_db):
        user = sqlite_db.insert_and_load(User(name='Alice'))
        user.name = 'Bob'
        assert sqlite_db.update(user) == 1
        assert sqlite_db.update(user) == 0

    def test_missing_row(self, sqlite_db):
        assert sqlite_db.update(Account(id=123, owner='ghost')) == 0

    def test_unset_key_sends_nothing(self, sqlite_db):
        calls = sqlite_db.calls
        with pytest.raises(ValidationError):
            sqlite_db.update(Account(owner='acme'))
        assert sqlite_db.calls == calls


class TestInsertAndGetId:

    def test_last_insert_id(self, sqlite_db):
        new_id = rm.insert_and_get_id(sqlite_db, 'INSERT INTO accounts (owner) VALUES (?)', 'acme')
        assert new_id == 1

    def test_returning_clause(self, sqlite_db):
        sqlite_db.insert(Account(owner='first'))
        new_id = sqlite_db.insert_and_get_id('INSERT INTO accounts (owner) VALUES (?) RETURNING id', 'acme')
        assert new_id == 2

    def test_malformed_clause_sends_nothing(self, sqlite_db):
        with pytest.raises(rm.InvalidIdentifier):
            sqlite_db.insert_and_get_id('INSERT INTO accounts (owner) VALUES (?) RETURNING id; --', 'x')
        assert sqlite_db.select('SELECT * FROM accounts') == []


class TestConnection:

    def test_execute_rowcount(self, sqlite_db):
        sqlite_db.insert(Account(owner='a', balance=1))
        sqlite_db.insert(Account(owner='b', balance=1))
        assert rm.execute(sqlite_db, 'UPDATE accounts SET balance = ? WHERE balance = ?', 5, 1) == 2

    def test_statistics(self, sqlite_db):
        calls = sqlite_db.calls
        sqlite_db.select('SELECT 1')
        assert sqlite_db.calls == calls + 1
        assert sqlite_db.time >= 0

    def test_dialect(self, sqlite_db):
        assert sqlite_db.dialect == 'sqlite'
        assert sqlite_db.paramstyle == 'qmark'

    def test_connect_with_mapping(self):
        with rm.connect({'drivername': 'sqlite', 'database': ':memory:'}, REGISTRY, log_args=False) as db:
            assert db.options.log_args is False
            assert db.select('SELECT 1 AS one') == [{'one': 1}]
        assert db.sa_connection.closed

    def test_connect_overrides(self, sqlite_options):
        db = rm.connect(sqlite_options, REGISTRY, log_queries=False)
        try:
            assert db.options.log_queries is False
            assert sqlite_options.log_queries is True
        finally:
            db.close()

    def test_from_connection(self):
        engine = sa.create_engine('sqlite://')
        db = Database.from_connection(engine.connect(), REGISTRY)
        try:
            db.execute('CREATE TABLE accounts (id INTEGER PRIMARY KEY, owner TEXT, balance INTEGER, settings TEXT)')
            account = db.insert(Account(owner='acme'))
            assert account.id == 1
        finally:
            db.close()
            engine.dispose()

    def test_changes_persist(self, sqlite_file_db):
        sqlite_file_db.insert(Account(owner='acme'))
        path = sqlite_file_db.options.database
        sqlite_file_db.close()

        with rm.connect({'drivername': 'sqlite', 'database': path}, REGISTRY) as db:
            assert db.query_one(Account, 'SELECT * FROM accounts').owner == 'acme'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
