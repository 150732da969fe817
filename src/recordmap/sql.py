"""
SQL text handling: tokenization, identifier validation and quoting,
RETURNING/OUTPUT clause discovery, and placeholder conversion.

Main entry points:
- `quote_identifier(dialect, identifier)` - Validate and quote a table/column name
- `find_returning_clause(sql, dialect)` - Locate and parse a RETURNING/OUTPUT list
- `convert_placeholders(sql, args, paramstyle)` - Native markers to driver paramstyle
- `make_placeholders(dialect, count)` - Render a run of native markers

Generated SQL never concatenates a name that did not pass through
`quote_identifier`.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum, auto

from recordmap.capabilities import CaseFold, DialectCapabilities
from recordmap.capabilities import get_capabilities
from recordmap.exceptions import InvalidIdentifier

logger = logging.getLogger(__name__)

__all__ = [
    'TokenType',
    'Token',
    'ReturningClause',
    'tokenize_sql',
    'validate_identifier',
    'quote_identifier',
    'unquote_identifier',
    'find_returning_clause',
    'has_placeholders',
    'make_placeholders',
    'convert_placeholders',
]


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENT = auto()
    PLACEHOLDER = auto()
    WORD = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int
    number: int | None = None       # numbered placeholders only


@dataclass(frozen=True, slots=True)
class ReturningClause:
    """A RETURNING or OUTPUT clause found in caller SQL."""
    keyword: str
    columns: tuple[str, ...]
    into: bool = False


# Bracketed text starting with a digit, $ or ? is an array subscript, not an identifier
_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*')
    |(?P<quoted>"(?:[^"]|"")*"|`(?:[^`]|``)*`|\[(?![\d$?])(?:[^\]]|\]\])*\])
    |(?P<dollar>\$(?P<dnum>\d+))
    |(?P<at>@p(?P<anum>\d+))
    |(?P<colon>(?<!:):(?P<cnum>\d+))
    |(?P<percent_s>%s)
    |(?P<qmark>\?)
    |(?P<word>[A-Za-z_][A-Za-z0-9_]*)
""", re.VERBOSE)

_SEGMENT_CHARS = re.compile(r'[A-Za-z0-9_]')

_OUTPUT_STOP_WORDS = frozenset({'INTO', 'VALUES', 'SELECT', 'DEFAULT', 'FROM', 'WHERE'})

_ALIAS = re.compile(r'^(?P<expr>.+?)\s+AS\s+(?P<alias>\S+)$', re.IGNORECASE | re.DOTALL)


def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        number = None
        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('quoted'):
            ttype = TokenType.QUOTED_IDENT
        elif match.group('dollar'):
            ttype, number = TokenType.PLACEHOLDER, int(match.group('dnum'))
        elif match.group('at'):
            ttype, number = TokenType.PLACEHOLDER, int(match.group('anum'))
        elif match.group('colon'):
            ttype, number = TokenType.PLACEHOLDER, int(match.group('cnum'))
        elif match.group('percent_s') or match.group('qmark'):
            ttype = TokenType.PLACEHOLDER
        else:
            ttype = TokenType.WORD

        tokens.append(Token(ttype, match.group(0), start, end, number))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


# =============================================================================
# Identifiers
# =============================================================================

def _validate_segment(caps: DialectCapabilities, segment: str) -> None:
    if not segment:
        raise InvalidIdentifier(segment, 'empty identifier segment')
    for ch in segment:
        if ch != caps.quote_chars.escape and not _SEGMENT_CHARS.match(ch):
            raise InvalidIdentifier(segment)


def _split(caps: DialectCapabilities, identifier: str) -> list[str]:
    if caps.qualified_names:
        return identifier.split('.')
    return [identifier]


def validate_identifier(dialect: str | DialectCapabilities, identifier: str) -> str:
    """Check a table or column name against the dialect's allow-list.

    Letters, digits and underscore are accepted, plus the dialect's own
    quote character (escaped by doubling when quoted).

    Raises
        ValueError: If identifier is empty
        InvalidIdentifier: If any segment contains anything else
    """
    if not identifier:
        raise ValueError('identifier must not be empty')
    caps = get_capabilities(dialect)
    for segment in _split(caps, identifier):
        _validate_segment(caps, segment)
    return identifier


def quote_identifier(dialect: str | DialectCapabilities, identifier: str) -> str:
    """Safely quote database identifiers.

    Parameters
        dialect: Dialect name or capability record
        identifier: Table or column name, optionally schema-qualified

    Returns
        Quoted identifier

    Raises
        ValueError: If identifier is empty
        InvalidIdentifier: If identifier fails validation
    """
    if not identifier:
        raise ValueError('identifier must not be empty')
    caps = get_capabilities(dialect)
    quotes = caps.quote_chars

    quoted = []
    for segment in _split(caps, identifier):
        _validate_segment(caps, segment)
        if caps.identifier_case_fold is CaseFold.UPPER:
            segment = segment.upper()
        segment = segment.replace(quotes.escape, quotes.escape * 2)
        quoted.append(f'{quotes.open}{segment}{quotes.close}')
    return '.'.join(quoted)


def unquote_identifier(dialect: str | DialectCapabilities, token: str) -> str:
    """Turn a single, possibly quoted, identifier token back into a plain name.
    """
    caps = get_capabilities(dialect)
    quotes = caps.quote_chars
    token = token.strip()
    if not token:
        raise InvalidIdentifier(token, 'empty identifier')

    if len(token) >= 2 and token[0] == quotes.open and token[-1] == quotes.close:
        inner = token[1:-1]
        if quotes.escape in inner.replace(quotes.escape * 2, ''):
            raise InvalidIdentifier(token)
        name = inner.replace(quotes.escape * 2, quotes.escape)
        _validate_segment(caps, name)
        return name

    if quotes.open in token or quotes.close in token:
        raise InvalidIdentifier(token)
    _validate_segment(caps, token)
    return token


# =============================================================================
# RETURNING / OUTPUT
# =============================================================================

def _parse_column_list(caps: DialectCapabilities, text: str, keyword: str) -> tuple[str, ...]:
    text = text.strip().rstrip(';').strip()
    if not text:
        raise InvalidIdentifier(text, f'empty {keyword} column list')

    columns = []
    for item in text.split(','):
        item = item.strip()
        if m := _ALIAS.match(item):
            item = m.group('alias')
        if keyword == 'OUTPUT':
            prefix, dot, rest = item.partition('.')
            if not dot or prefix.strip().upper() not in {'INSERTED', 'DELETED'}:
                raise InvalidIdentifier(item, 'OUTPUT column must be INSERTED.<column>')
            item = rest
        columns.append(unquote_identifier(caps, item))
    return tuple(columns)


def find_returning_clause(sql: str, dialect: str | DialectCapabilities) -> ReturningClause | None:
    """Locate a RETURNING or OUTPUT clause in caller SQL and parse its columns.

    String literals are skipped. Returns None when the statement has neither.

    Raises
        InvalidIdentifier: If the clause's column list is malformed
    """
    caps = get_capabilities(dialect)
    tokens = tokenize_sql(sql)

    for i, token in enumerate(tokens):
        if token.type is not TokenType.WORD:
            continue
        keyword = token.text.upper()
        if keyword == 'OUTPUT':
            following = [t for t in tokens[i + 1:i + 3] if t.type is TokenType.WORD]
            if not following or following[0].text.upper() not in {'INSERTED', 'DELETED'}:
                continue
        elif keyword != 'RETURNING':
            continue

        stop_words = {'INTO'} if keyword == 'RETURNING' else _OUTPUT_STOP_WORDS
        parts = []
        into = False
        for tail in tokens[i + 1:]:
            if tail.type is TokenType.WORD and tail.text.upper() in stop_words:
                into = tail.text.upper() == 'INTO' and keyword == 'RETURNING'
                break
            if tail.type in {TokenType.STRING_LITERAL, TokenType.PLACEHOLDER}:
                raise InvalidIdentifier(tail.text, f'unexpected token in {keyword} clause')
            parts.append(tail.text)
        columns = _parse_column_list(caps, ''.join(parts), keyword)
        return ReturningClause(keyword, columns, into)

    return None


# =============================================================================
# Placeholders
# =============================================================================

def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any parameter placeholders.
    """
    if not sql:
        return False
    return any(t.type is TokenType.PLACEHOLDER for t in tokenize_sql(sql))


def make_placeholders(dialect: str | DialectCapabilities, count: int, start: int = 1) -> str:
    """Render `count` comma-separated native markers beginning at `start`.
    """
    caps = get_capabilities(dialect)
    return ', '.join(caps.placeholder(n) for n in range(start, start + count))


def _bind_order(tokens: list[Token]) -> list[int]:
    """Zero-based argument index for each placeholder, in order of appearance."""
    order = []
    sequential = 0
    for token in tokens:
        if token.type is not TokenType.PLACEHOLDER:
            continue
        if token.number is None:
            order.append(sequential)
            sequential += 1
        else:
            order.append(token.number - 1)
    return order


def convert_placeholders(sql: str, args: tuple | list,
                         paramstyle: str = 'qmark') -> tuple[str, tuple | dict]:
    """Rewrite native markers into the driver's DB-API paramstyle.

    Parameters
        sql: SQL using `?`, `%s`, `$n`, `@pN` or `:n` markers
        args: Positional arguments in native numbering
        paramstyle: Driver paramstyle (`qmark`, `format`, `pyformat`, `numeric`, `named`)

    Returns
        Converted SQL and the parameters in the shape the driver expects

    Raises
        ValueError: If a positional style references a missing argument
    """
    args = tuple(args)
    tokens = tokenize_sql(sql)
    order = _bind_order(tokens)

    if args and not order:
        logger.debug('Executed query without placeholders (ignoring args)')
    elif order and all(t.number is None for t in tokens if t.type is TokenType.PLACEHOLDER):
        if len(order) != len(args):
            raise ValueError(
                f'Parameter count mismatch: SQL needs {len(order)} '
                f'but {len(args)} were provided')

    percent = paramstyle in {'format', 'pyformat'}

    result = []
    seen = 0
    for token in tokens:
        if token.type is not TokenType.PLACEHOLDER:
            result.append(token.text.replace('%', '%%') if percent else token.text)
            continue
        index = order[seen]
        seen += 1
        match paramstyle:
            case 'qmark':
                result.append('?')
            case 'format' | 'pyformat':
                result.append('%s')
            case 'numeric':
                result.append(f':{index + 1}')
            case 'named':
                result.append(f':p{index + 1}')
            case _:
                raise ValueError(f'Unsupported paramstyle: {paramstyle}')

    converted = ''.join(result)

    if paramstyle == 'named':
        return converted, {f'p{n}': value for n, value in enumerate(args, 1)}
    if paramstyle == 'numeric':
        return converted, args

    missing = sorted({i + 1 for i in order if i >= len(args)})
    if missing:
        raise ValueError(
            f'Parameter count mismatch: SQL references argument(s) {missing} '
            f'but {len(args)} were provided')
    return converted, tuple(args[i] for i in order)
