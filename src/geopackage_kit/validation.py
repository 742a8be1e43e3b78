"""
Guards for user-supplied names and numbers.

Table and column names cannot be bound as SQL parameters, so every name is
checked here before it is interpolated into generated SQL text.
"""

import re

from .exceptions import (
    InvalidBatchSize,
    InvalidColumnType,
    InvalidIdentifier,
    InvalidSrid,
)

MAX_BATCH_SIZE = 100_000

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Type name with an optional (n) or (n, m) size, e.g. VARCHAR(50)
COLUMN_TYPE_PATTERN = re.compile(
    r"^[A-Za-z][A-Za-z0-9_ ]*(\(\s*\d+\s*(,\s*\d+\s*)?\))?$"
)

RESERVED_WORDS = frozenset(
    {
        "SELECT",
        "INSERT",
        "UPDATE",
        "DELETE",
        "DROP",
        "CREATE",
        "ALTER",
        "TABLE",
        "INDEX",
        "FROM",
        "WHERE",
        "AND",
        "OR",
        "NOT",
        "NULL",
        "TRUE",
        "FALSE",
    }
)


def validate_identifier(name: str | None, role: str = "identifier") -> str:
    """
    Validate a SQL identifier (table name, column name, ...).

    Args:
        name: The identifier to check
        role: What the identifier is, used in the error message

    Returns:
        The identifier, unchanged

    Raises:
        InvalidIdentifier: If the name is empty, contains characters other
            than letters, digits and underscores, starts with a digit, or is
            a reserved SQL keyword

    Example:
        >>> validate_identifier("cities", "table name")
        'cities'
    """
    if name is None or not name.strip():
        raise InvalidIdentifier(name, role, "The name cannot be empty.")

    if not IDENTIFIER_PATTERN.match(name):
        raise InvalidIdentifier(
            name,
            role,
            "Identifiers must start with a letter or underscore and contain "
            "only letters, digits, and underscores.",
        )

    if name.upper() in RESERVED_WORDS:
        raise InvalidIdentifier(name, role, "It is a reserved SQL keyword.")

    return name


def quote_identifier(name: str) -> str:
    """Quote a name for use in SQL, doubling any embedded double quotes"""
    return '"' + name.replace('"', '""') + '"'


def validate_srid(srid: int) -> None:
    """SRIDs may be -1 (undefined cartesian), 0 (undefined geographic) or positive"""
    if srid < -1:
        raise InvalidSrid(srid)


def validate_batch_size(batch_size: int) -> None:
    if batch_size < 1:
        raise InvalidBatchSize(batch_size, "must be at least 1")
    if batch_size > MAX_BATCH_SIZE:
        raise InvalidBatchSize(batch_size, f"cannot exceed {MAX_BATCH_SIZE:,}")


def validate_column_type(column: str, sql_type: str) -> str:
    """Check a declared column type before it is written into CREATE TABLE"""
    if not sql_type or not COLUMN_TYPE_PATTERN.match(sql_type.strip()):
        raise InvalidColumnType(column, sql_type)
    return sql_type.strip()
