"""
Static per-dialect facts.

The table is built once at import time and never mutated. Everything that
renders SQL for a dialect (placeholders, identifier quoting, RETURNING/OUTPUT
selection, timestamp functions) reads from here.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

__all__ = [
    'PlaceholderStyle',
    'CaseFold',
    'QuoteChars',
    'DialectCapabilities',
    'CAPABILITIES',
    'DIALECT_ALIASES',
    'normalize_dialect',
    'get_capabilities',
]


class PlaceholderStyle(Enum):
    """Native bind marker of a dialect."""
    POSITIONAL = '?'
    NUMBERED_DOLLAR = '$n'
    NUMBERED_COLON = ':n'
    NUMBERED_AT = '@pN'


class CaseFold(Enum):
    """Identifier case folding applied before quoting."""
    NONE = 'none'
    UPPER = 'upper'


@dataclass(frozen=True, slots=True)
class QuoteChars:
    """Opening and closing quote, and the character escaped by doubling."""
    open: str
    close: str
    escape: str


@dataclass(frozen=True)
class DialectCapabilities:
    """Immutable capability record for one SQL engine.
    """
    name: str
    placeholder_style: PlaceholderStyle
    quote_chars: QuoteChars
    supports_returning: bool
    supports_output: bool
    supports_last_insert_id: bool
    identifier_case_fold: CaseFold = CaseFold.NONE
    qualified_names: bool = True
    timestamp_function: str = 'CURRENT_TIMESTAMP'
    returning_into: bool = False
    array_literals: bool = False

    def placeholder(self, position: int) -> str:
        """Render the bind marker for the 1-based argument position."""
        match self.placeholder_style:
            case PlaceholderStyle.POSITIONAL:
                return '?'
            case PlaceholderStyle.NUMBERED_DOLLAR:
                return f'${position}'
            case PlaceholderStyle.NUMBERED_COLON:
                return f':{position}'
            case PlaceholderStyle.NUMBERED_AT:
                return f'@p{position}'
        raise ValueError(f'Unknown placeholder style: {self.placeholder_style}')

    @property
    def numbered(self) -> bool:
        return self.placeholder_style is not PlaceholderStyle.POSITIONAL


ANSI_QUOTES = QuoteChars('"', '"', '"')
BACKTICK_QUOTES = QuoteChars('`', '`', '`')
BRACKET_QUOTES = QuoteChars('[', ']', ']')

CAPABILITIES = MappingProxyType({
    'postgresql': DialectCapabilities(
        name='postgresql',
        placeholder_style=PlaceholderStyle.NUMBERED_DOLLAR,
        quote_chars=ANSI_QUOTES,
        supports_returning=True,
        supports_output=False,
        supports_last_insert_id=False,
        array_literals=True,
        ),
    'sqlite': DialectCapabilities(
        name='sqlite',
        placeholder_style=PlaceholderStyle.POSITIONAL,
        quote_chars=ANSI_QUOTES,
        supports_returning=True,
        supports_output=False,
        supports_last_insert_id=True,
        ),
    'mysql': DialectCapabilities(
        name='mysql',
        placeholder_style=PlaceholderStyle.POSITIONAL,
        quote_chars=BACKTICK_QUOTES,
        supports_returning=False,
        supports_output=False,
        supports_last_insert_id=True,
        timestamp_function='NOW()',
        ),
    'mssql': DialectCapabilities(
        name='mssql',
        placeholder_style=PlaceholderStyle.NUMBERED_AT,
        quote_chars=BRACKET_QUOTES,
        supports_returning=False,
        supports_output=True,
        supports_last_insert_id=False,
        timestamp_function='GETDATE()',
        ),
    'oracle': DialectCapabilities(
        name='oracle',
        placeholder_style=PlaceholderStyle.NUMBERED_COLON,
        quote_chars=ANSI_QUOTES,
        supports_returning=True,
        supports_output=False,
        supports_last_insert_id=False,
        identifier_case_fold=CaseFold.UPPER,
        returning_into=True,
        ),
    })

DIALECT_ALIASES = MappingProxyType({
    'postgres': 'postgresql',
    'pgx': 'postgresql',
    'sqlite3': 'sqlite',
    'sqlserver': 'mssql',
    })


def normalize_dialect(dialect: str) -> str:
    """Map driver aliases onto canonical dialect names."""
    name = dialect.lower().split('+', 1)[0]
    return DIALECT_ALIASES.get(name, name)


def get_capabilities(dialect: 'str | DialectCapabilities') -> DialectCapabilities:
    """Look up the capability record for a dialect name.

    Raises
        ValueError: If the dialect is unknown
    """
    if isinstance(dialect, DialectCapabilities):
        return dialect
    name = normalize_dialect(dialect)
    try:
        return CAPABILITIES[name]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {list(CAPABILITIES)}') from None
