"""
Column introspection and string-to-storage value conversion.

Attribute values travel as strings; the declared SQL type of the target
column decides what is actually stored. An empty string is treated the same
as a missing value and stored as NULL whatever the column type.
"""

import logging
import re
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import TypeMismatch, UnsupportedColumnType
from .storage import execute
from .validation import quote_identifier, validate_identifier

LOGGER = logging.getLogger(__name__)

INTEGER_TYPES = frozenset({"INTEGER", "INT"})
REAL_TYPES = frozenset({"REAL", "FLOAT", "DOUBLE"})
TEXT_TYPES = frozenset({"TEXT", "VARCHAR", "CHAR"})
BLOB_TYPES = frozenset({"BLOB"})

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_PATTERN = re.compile(r"^\s*[+-]?\d+\s*$", re.ASCII)
_REAL_PATTERN = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$", re.ASCII)

StorageValue = int | float | str | None
WarningCallback = Callable[[str], None]


@dataclass(frozen=True)
class ColumnInfo:
    """
    A column of a layer table.

    Attributes:
        name: Column name
        type: Declared SQL type, as written in CREATE TABLE
        not_null: Whether the column has a NOT NULL constraint
        primary_key: Whether the column is (part of) the primary key
    """

    name: str
    type: str
    not_null: bool = False
    primary_key: bool = False


def table_columns(
    conn: sqlite3.Connection, table: str, validate: bool = True
) -> list[ColumnInfo]:
    """
    All columns of a table, in declaration order.

    Pass validate=False for names read back from the metadata tables, which
    other writers may have created with any characters.
    """
    if validate:
        validate_identifier(table, "table name")
    rows = execute(conn, f"PRAGMA table_info({quote_identifier(table)})").fetchall()
    return [
        ColumnInfo(
            name=row["name"],
            type=row["type"] or "",
            not_null=bool(row["notnull"]),
            primary_key=bool(row["pk"]),
        )
        for row in rows
    ]


def attribute_columns(
    conn: sqlite3.Connection, table: str, geometry_column: str
) -> list[ColumnInfo]:
    """Columns that carry attribute values: everything except id and geometry"""
    excluded = {"id", geometry_column.lower()}
    return [c for c in table_columns(conn, table) if c.name.lower() not in excluded]


def _is_empty(value: str | None) -> bool:
    return value is None or value == ""


def _parse_integer(column: ColumnInfo, value: str, index: int) -> int:
    if _INTEGER_PATTERN.match(value):
        number = int(value)
        if INT64_MIN <= number <= INT64_MAX:
            return number
    raise TypeMismatch(index, column.name, "INTEGER", "not an integer", value)


def _parse_real(column: ColumnInfo, value: str, index: int) -> float:
    if _REAL_PATTERN.match(value):
        return float(value)
    raise TypeMismatch(index, column.name, "REAL/FLOAT", "not a number", value)


def _coerce(
    column: ColumnInfo,
    value: str | None,
    index: int,
    on_warning: WarningCallback | None,
    warn: bool = True,
) -> StorageValue:
    if _is_empty(value):
        return None
    assert value is not None

    declared = column.type.upper()
    if declared in INTEGER_TYPES:
        return _parse_integer(column, value, index)
    if declared in REAL_TYPES:
        return _parse_real(column, value, index)
    if declared in TEXT_TYPES:
        return value
    if declared in BLOB_TYPES:
        raise UnsupportedColumnType(column.name, declared)

    if warn:
        message = (
            f"Unknown column type '{column.type}' for column '{column.name}'. "
            "Proceeding with string value."
        )
        LOGGER.warning(message)
        if on_warning is not None:
            on_warning(message)
    return value


def validate_value(
    column: ColumnInfo,
    value: str | None,
    index: int = 0,
    on_warning: WarningCallback | None = None,
) -> None:
    """
    Check that a string value can be stored in the given column.

    Args:
        column: Target column
        value: The value, or None for a missing value
        index: Position of the column, reported in errors
        on_warning: Called with a message when the column type is unknown

    Raises:
        TypeMismatch: If the value does not parse as the column's type
        UnsupportedColumnType: If the column is a BLOB column
    """
    _coerce(column, value, index, on_warning)


def convert_value(
    column: ColumnInfo, value: str | None, index: int = 0
) -> StorageValue:
    """
    Convert a string value into the Python type bound for its column.

    Returns None for empty or missing values, int for INTEGER/INT columns,
    float for REAL/FLOAT/DOUBLE columns and the string itself otherwise.

    Example:
        >>> convert_value(ColumnInfo("population", "INTEGER"), "975000")
        975000
        >>> convert_value(ColumnInfo("population", "INTEGER"), "") is None
        True
    """
    return _coerce(column, value, index, None, warn=False)
