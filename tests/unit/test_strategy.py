"""
Unit tests for dialect strategies.
"""
import pytest
from recordmap.capabilities import CAPABILITIES, PlaceholderStyle
from recordmap.options import DatabaseOptions
from recordmap.strategy import MySQLStrategy, OracleStrategy, PostgresStrategy
from recordmap.strategy import SQLiteStrategy, SQLServerStrategy, get_available_dialects
from recordmap.strategy import get_strategy, get_strategy_class, is_supported_dialect


def server_options(drivername, **kwargs):
    return DatabaseOptions(
        drivername=drivername,
        hostname='dbhost',
        username='app',
        password='secret',
        database='appdb',
        **kwargs,
    )


@pytest.mark.parametrize(('dialect', 'cls'), [
    ('postgresql', PostgresStrategy),
    ('sqlite', SQLiteStrategy),
    ('mysql', MySQLStrategy),
    ('mssql', SQLServerStrategy),
    ('oracle', OracleStrategy),
])
def test_registry(dialect, cls):
    assert get_strategy_class(dialect) is cls
    strategy = get_strategy(dialect)
    assert isinstance(strategy, cls)
    assert strategy.capabilities is CAPABILITIES[dialect]
    assert strategy.dialect_name == dialect


def test_strategy_cached():
    assert get_strategy('postgres') is get_strategy('postgresql')


def test_available_dialects():
    assert set(get_available_dialects()) == {'postgresql', 'sqlite', 'mysql', 'mssql', 'oracle'}
    assert is_supported_dialect('sqlserver')
    assert not is_supported_dialect('informix')


def test_unknown_dialect():
    with pytest.raises(ValueError, match='Unsupported dialect'):
        get_strategy('informix')


def test_postgres_url():
    url = get_strategy('postgresql').build_connection_url(server_options('postgresql', port=5433, timeout=10))
    assert url.drivername == 'postgresql+psycopg'
    assert url.host == 'dbhost'
    assert url.port == 5433
    assert url.database == 'appdb'
    assert url.query['connect_timeout'] == '10'


def test_mysql_url():
    url = get_strategy('mysql').build_connection_url(server_options('mysql'))
    assert url.drivername == 'mysql+pymysql'
    assert url.port is None


def test_sqlserver_url():
    url = get_strategy('mssql').build_connection_url(server_options('sqlserver'))
    assert url.drivername == 'mssql+pyodbc'
    assert url.query['driver'] == 'ODBC Driver 18 for SQL Server'


def test_oracle_url():
    url = get_strategy('oracle').build_connection_url(server_options('oracle'))
    assert url.drivername == 'oracle+oracledb'
    assert url.query['service_name'] == 'appdb'
    assert url.database is None


def test_sqlite_url_and_engine_kwargs():
    strategy = get_strategy('sqlite')
    options = DatabaseOptions(drivername='sqlite', database=':memory:', timeout=5)
    url = strategy.build_connection_url(options)
    assert url.drivername == 'sqlite'
    assert url.database == ':memory:'
    assert strategy.get_engine_kwargs(options) == {'connect_args': {'timeout': 5}}


@pytest.mark.parametrize(('dialect', 'required'), [
    ('postgresql', ['hostname', 'username', 'database']),
    ('sqlite', ['database']),
])
def test_required_options(dialect, required):
    assert get_strategy_class(dialect).get_required_options() == required


def test_quote_and_placeholder_style():
    strategy = get_strategy('mssql')
    assert strategy.quote_identifier('dbo.users') == '[dbo].[users]'
    assert strategy.get_placeholder_style() is PlaceholderStyle.NUMBERED_AT


def test_standardize_sql():
    sql, args = get_strategy('postgresql').standardize_sql(
        'SELECT * FROM users WHERE id = $1', (1,), 'format')
    assert sql == 'SELECT * FROM users WHERE id = %s'
    assert args == (1,)


def test_execute_returning_lowercases(mocker):
    cursor = mocker.Mock()
    cursor.execute.return_value.mappings.return_value.first.return_value = {'ID': 5}
    row = get_strategy('postgresql').execute_returning(cursor, 'INSERT ...', (1,), ('id',), (0,))
    cursor.execute.assert_called_once_with('INSERT ...', (1,), (0,))
    assert row == {'id': 5}


def test_execute_returning_no_row(mocker):
    cursor = mocker.Mock()
    cursor.execute.return_value.mappings.return_value.first.return_value = None
    assert get_strategy('postgresql').execute_returning(cursor, 'INSERT ...', (), ('id',)) is None


def test_oracle_execute_returning_uses_out_binds(mocker):
    cursor = mocker.Mock()
    cursor.execute_out_binds.return_value = [11, 2]
    row = get_strategy('oracle').execute_returning(
        cursor, 'INSERT ... RETURNING id, version INTO :2, :3', ('x',), ('ID', 'version'))
    cursor.execute_out_binds.assert_called_once_with(
        'INSERT ... RETURNING id, version INTO :2, :3', ('x',), (), outputs=2)
    assert row == {'id': 11, 'version': 2}


def test_last_insert_id(mocker):
    result = mocker.Mock(lastrowid=42)
    assert get_strategy('mysql').last_insert_id(result) == 42


if __name__ == '__main__':
    __import__('pytest').main([__file__])
