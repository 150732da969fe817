"""
Statement logging through a live SQLite connection.
"""
import logging

import pytest
import recordmap as rm
from recordmap import DatabaseOptions

from tests.fixtures.models import REGISTRY, User


@pytest.fixture
def debug_log(caplog):
    caplog.set_level(logging.DEBUG, logger='recordmap')
    return caplog


def statements(caplog):
    return [r for r in caplog.records if hasattr(r, 'sql') or hasattr(r, 'sql_args')]


def test_redacted_fields_masked(sqlite_db, debug_log):
    sqlite_db.insert(User(name='Alice', password='hunter2'))
    assert 'hunter2' not in debug_log.text
    record = statements(debug_log)[-1]
    assert record.sql.startswith('INSERT INTO "users"')
    assert record.sql_args[2] == '[REDACTED]'
    assert record.sql_args[0] == 'Alice'


def test_redaction_leaves_parameter_intact(sqlite_db):
    user = sqlite_db.insert(User(name='Alice', password='hunter2'))
    assert sqlite_db.select('SELECT password FROM users WHERE id = ?', user.id) == [{'password': 'hunter2'}]


def test_redacted_lookup_masked(sqlite_db, debug_log):
    sqlite_db.insert(User(name='Alice', password='hunter2'))
    debug_log.clear()
    user = sqlite_db.load_by(User(password='hunter2'), 'password')
    assert user.name == 'Alice'
    assert 'hunter2' not in debug_log.text
    record = statements(debug_log)[0]
    assert record.sql.endswith('WHERE "password" = ?')
    assert record.sql_args == ('[REDACTED]',)


def test_partial_update_statement(sqlite_db, debug_log):
    user = sqlite_db.insert_and_load(User(name='Alice', email='alice@example.com'))
    debug_log.clear()
    user.email = 'alicia@example.com'
    sqlite_db.update(user)
    assert [r.sql for r in statements(debug_log)] == [
        'UPDATE "users" SET "email" = ?, "updated_at" = CURRENT_TIMESTAMP WHERE "id" = ?']


def test_log_args_disabled(debug_log):
    options = DatabaseOptions(drivername='sqlite', database=':memory:', log_args=False)
    with rm.connect(options, REGISTRY) as db:
        db.select('SELECT ? AS value', 'visible-only-in-sql-args')
    assert 'visible-only-in-sql-args' not in debug_log.text
    assert 'SELECT ? AS value' in debug_log.text


def test_log_queries_disabled(debug_log):
    options = DatabaseOptions(drivername='sqlite', database=':memory:', log_queries=False)
    with rm.connect(options, REGISTRY) as db:
        db.select('SELECT ? AS marker_column', 1)
    assert 'marker_column' not in debug_log.text
    assert 'args: (1,)' in debug_log.text


def test_no_logging_override(sqlite_db, debug_log):
    with rm.no_logging():
        sqlite_db.select('SELECT 1 AS hidden_marker')
    assert 'hidden_marker' not in debug_log.text


def test_no_arg_logging_override(sqlite_db, debug_log):
    with rm.no_arg_logging():
        sqlite_db.select('SELECT ? AS value', 'secret-value')
    assert 'secret-value' not in debug_log.text
    sqlite_db.select('SELECT ? AS value', 'shown-value')
    assert 'shown-value' in debug_log.text


def test_custom_sink(caplog):
    caplog.set_level(logging.DEBUG, logger='app.sql')
    adapter = logging.LoggerAdapter(logging.getLogger('app.sql'), {'tenant': 'acme'})
    options = DatabaseOptions(drivername='sqlite', database=':memory:', logger=adapter)
    with rm.connect(options, REGISTRY) as db:
        db.select('SELECT 1 AS sink_marker')
    records = [r for r in caplog.records if r.name == 'app.sql']
    assert any('sink_marker' in r.getMessage() for r in records)


def test_error_logged(sqlite_db, debug_log):
    with pytest.raises(Exception):
        sqlite_db.select('SELECT * FROM missing_table')
    errors = [r for r in debug_log.records if r.levelno == logging.ERROR]
    assert errors
    assert 'missing_table' in errors[0].getMessage()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
