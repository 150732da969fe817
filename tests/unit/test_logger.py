"""
Statement logging policy, redaction and ambient overrides.
"""
import pytest
from recordmap.logger import REDACTED, LogPolicy, mask_args, no_arg_logging
from recordmap.logger import no_logging, no_query_logging
from recordmap.options import DatabaseOptions


@pytest.fixture
def options():
    return DatabaseOptions(drivername='sqlite', database=':memory:')


def test_defaults(options):
    assert LogPolicy.resolve(options) == LogPolicy(True, True, True)
    assert LogPolicy.resolve(None) == LogPolicy(True, True, True)


def test_options_disable(options):
    options.log_queries = False
    options.log_args = False
    assert LogPolicy.resolve(options) == LogPolicy(True, False, False)


@pytest.mark.parametrize(('override', 'expected'), [
    (no_logging, LogPolicy(False, True, True)),
    (no_query_logging, LogPolicy(True, False, True)),
    (no_arg_logging, LogPolicy(True, True, False)),
])
def test_ambient_overrides(options, override, expected):
    with override():
        assert LogPolicy.resolve(options) == expected
    assert LogPolicy.resolve(options) == LogPolicy(True, True, True)


def test_overrides_nest(options):
    with no_query_logging():
        with no_arg_logging():
            assert LogPolicy.resolve(options) == LogPolicy(True, False, False)
        assert LogPolicy.resolve(options) == LogPolicy(True, False, True)


def test_overrides_never_reenable(options):
    """Overrides only suppress what the options allow"""
    options.log_args = False
    with no_query_logging():
        assert LogPolicy.resolve(options).args is False


def test_override_as_decorator(options):
    @no_arg_logging()
    def call():
        return LogPolicy.resolve(options)

    assert call().args is False
    assert LogPolicy.resolve(options).args is True


def test_mask_args():
    assert mask_args(('alice', 'secret', 3), [1]) == ('alice', REDACTED, 3)
    assert mask_args(['a', 'b']) == ('a', 'b')
    assert REDACTED == '[REDACTED]'


def test_describe():
    policy = LogPolicy()
    text = policy.describe('SELECT $1', ('x', 'pw'), [1])
    assert text == "SQL:\nSELECT $1\nargs: ('x', '[REDACTED]')"


def test_describe_suppressed():
    assert LogPolicy(True, False, True).describe('SELECT 1', (1,)) == 'args: (1,)'
    assert LogPolicy(True, True, False).describe('SELECT 1', (1,)) == 'SQL:\nSELECT 1'
    assert LogPolicy(True, False, False).describe('SELECT 1', (1,)) == '<statement details suppressed>'


def test_fields():
    policy = LogPolicy()
    assert policy.fields('SELECT ?', ('pw',), [0]) == {'sql': 'SELECT ?', 'sql_args': (REDACTED,)}
    assert LogPolicy(True, False, False).fields('SELECT ?', ('pw',)) == {}


if __name__ == '__main__':
    __import__('pytest').main([__file__])
