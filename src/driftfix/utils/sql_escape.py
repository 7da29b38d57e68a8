"""
SQL identifier escaping utilities.

Table names are built from configurable prefixes, so they are validated and
quoted before being interpolated into statements. Values always go through
bound parameters.
"""

import re

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def escape_identifier(identifier: str) -> str:
    """
    Escape SQL identifier (table name, column name).

    Wraps identifier in double quotes and escapes any double quotes within.

    Example:
        >>> escape_identifier("wp_posts")
        '"wp_posts"'
        >>> escape_identifier('table"name')
        '"table""name"'
    """
    if not identifier:
        raise ValueError("Identifier cannot be empty")

    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def validate_identifier(identifier: str) -> bool:
    """
    Validate that identifier contains only safe characters.

    Allows letters, numbers and underscores, not starting with a digit.
    """
    if not identifier:
        return False
    return bool(_IDENTIFIER_RE.match(identifier))
