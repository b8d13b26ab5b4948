"""Best-effort SQL pattern extraction.

These helpers are heuristics over the statement text, not a parser. They
pull a table name, WHERE condition fragments and the identifiers compared
in them, which is enough to derive cache keys and invalidation patterns
for the common single-table statement shapes. Anything they cannot read
yields None or an empty list, and callers fall back to hash-based keys.
"""

import re

from querycache.domain.exceptions import InvalidArgumentException

_QUOTE = r"[`\"]?"

# Order matters: the first pattern that matches wins.
_READ_TABLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"\bFROM\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
    re.compile(rf"\bINSERT\s+INTO\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
    re.compile(rf"\bUPDATE\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
    re.compile(rf"\bDELETE\s+FROM\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
)

_WRITE_TABLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"\bINSERT\s+INTO\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
    re.compile(rf"\bUPDATE\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
    re.compile(rf"\bDELETE\s+FROM\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
    re.compile(rf"\bREPLACE\s+INTO\s+{_QUOTE}(\w+){_QUOTE}", re.IGNORECASE),
)

_WRITE_STATEMENT_RE = re.compile(r"^\s*(INSERT|UPDATE|DELETE|REPLACE)\b", re.IGNORECASE)

_WHERE_RE = re.compile(
    r"\bWHERE\s+(.+?)(?:\bORDER\s+BY\b|\bLIMIT\b|\bGROUP\s+BY\b|\bHAVING\b|\Z)",
    re.IGNORECASE | re.DOTALL,
)

_BOOLEAN_SPLIT_RE = re.compile(r"\s+(?:AND|OR)\s+", re.IGNORECASE)

# Longer operators first so ">=" is not read as ">".
_COLUMN_RE = re.compile(
    r"(\w+)\s*(?:>=|<=|!=|<>|=|>|<|\bNOT\s+IN\b|\bNOT\s+LIKE\b|\bIN\b|\bLIKE\b)",
    re.IGNORECASE,
)

_TRAILING_TERMINATORS_RE = re.compile(r"[\s;]+\Z")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_$]{1,64}$")


def _first_match(statement: str, patterns: tuple[re.Pattern[str], ...]) -> str | None:
    for pattern in patterns:
        match = pattern.search(statement)
        if match:
            return match.group(1)
    return None


def extract_table_name(statement: str) -> str | None:
    """Return the table a statement reads or writes, or None.

    Tries FROM, INSERT INTO, UPDATE, DELETE FROM in that order.
    """
    return _first_match(statement, _READ_TABLE_PATTERNS)


def extract_write_table(statement: str) -> str | None:
    """Return the table a write statement targets, or None.

    Tries INSERT INTO, UPDATE, DELETE FROM, REPLACE INTO in that order.
    A plain SELECT yields None.
    """
    return _first_match(statement, _WRITE_TABLE_PATTERNS)


def is_write_statement(statement: str) -> bool:
    """True when the statement starts with INSERT, UPDATE, DELETE or REPLACE."""
    return bool(_WRITE_STATEMENT_RE.match(statement))


def _split_top_level(clause: str) -> list[str]:
    """Split on AND/OR that sit outside parentheses."""
    fragments: list[str] = []
    start = 0
    for match in _BOOLEAN_SPLIT_RE.finditer(clause):
        head = clause[start : match.start()]
        depth = clause[: match.start()].count("(") - clause[: match.start()].count(")")
        if depth > 0:
            continue
        fragments.append(head)
        start = match.end()
    fragments.append(clause[start:])
    return [fragment.strip() for fragment in fragments if fragment.strip()]


def extract_where_conditions(statement: str) -> list[str]:
    """Return the WHERE clause split into condition fragments.

    The clause ends at ORDER BY, LIMIT, GROUP BY, HAVING or the end of the
    statement. Returns an empty list when there is no WHERE clause.
    """
    match = _WHERE_RE.search(statement)
    if not match:
        return []
    return _split_top_level(match.group(1).strip())


def extract_column_names(conditions: list[str]) -> list[str]:
    """Return the lowercased identifiers compared in each fragment, sorted.

    Fragments with no recognizable comparison are skipped.
    """
    columns: list[str] = []
    for condition in conditions:
        match = _COLUMN_RE.search(condition)
        if match:
            columns.append(match.group(1).lower())
    return sorted(columns)


def strip_statement(statement: str) -> str:
    """Remove trailing semicolons and whitespace so clauses can be appended."""
    return _TRAILING_TERMINATORS_RE.sub("", statement)


def to_driver_placeholders(statement: str) -> str:
    """Translate '?' placeholders to the driver's '%s' format style.

    Literal '%' characters are doubled. Quoted literals and quoted
    identifiers are copied verbatim.
    """
    out: list[str] = []
    quote: str | None = None
    for char in statement:
        if quote:
            out.append("%%" if char == "%" else char)
            if char == quote:
                quote = None
            continue
        if char in ("'", '"', "`"):
            quote = char
            out.append(char)
        elif char == "?":
            out.append("%s")
        elif char == "%":
            out.append("%%")
        else:
            out.append(char)
    return "".join(out)


def validate_identifier(value: str, name: str = "identifier") -> str:
    """Return value if it is a plain SQL identifier, else raise.

    Identifiers interpolated into statements (database, table, column
    names) cannot be bound as parameters, so they are format-checked.

    Args:
        value: Candidate identifier.
        name: Label used in the error message.

    Raises:
        InvalidArgumentException: If value is empty, too long, or contains
            other characters.
    """
    if not isinstance(value, str) or not _IDENTIFIER_RE.fullmatch(value):
        raise InvalidArgumentException(f"Invalid {name}: {value!r}", name)
    return value
