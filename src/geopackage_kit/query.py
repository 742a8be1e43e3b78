"""
Reading, counting and deleting features.

The ``where`` and ``order_by`` options are raw SQL fragments inserted into
the statement as given. They are not validated or escaped: build them only
from trusted input. Invalid fragments surface as StorageEngineError.
"""

import logging
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass

from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from .codec import decode_geometry
from .exceptions import InvalidReadOptions, MalformedBlob
from .feature import Feature
from .metadata import DEFAULT_GEOMETRY_COLUMN
from .storage import execute, storage_errors
from .validation import validate_identifier

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadOptions:
    """
    Options for reading features.

    Attributes:
        include_geometry: Decode the geometry column (default True)
        where: SQL WHERE clause without the WHERE keyword
        order_by: SQL ORDER BY clause without the keywords, e.g. "population DESC"
        limit: Maximum number of features to return
        offset: Number of features to skip
    """

    include_geometry: bool = True
    where: str | None = None
    order_by: str | None = None
    limit: int | None = None
    offset: int | None = None

    def validate(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise InvalidReadOptions(f"Limit cannot be negative: {self.limit}")
        if self.offset is not None and self.offset < 0:
            raise InvalidReadOptions(f"Offset cannot be negative: {self.offset}")


def build_select_sql(table: str, options: ReadOptions) -> str:
    """
    Build the SELECT statement for a read.

    Example:
        >>> build_select_sql("cities", ReadOptions(where="population > 100000", limit=10))
        'SELECT * FROM cities WHERE population > 100000 LIMIT 10'
    """
    validate_identifier(table, "table name")
    options.validate()

    sql = f"SELECT * FROM {table}"
    if options.where:
        sql += f" WHERE {options.where}"
    if options.order_by:
        sql += f" ORDER BY {options.order_by}"
    if options.limit is not None:
        sql += f" LIMIT {int(options.limit)}"
    elif options.offset is not None:
        # SQLite only accepts OFFSET after a LIMIT
        sql += " LIMIT -1"
    if options.offset is not None:
        sql += f" OFFSET {int(options.offset)}"
    return sql


def stringify(value: object) -> str | None:
    """Render a stored value as the string used in Feature attributes"""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


def _decode_or_none(blob: bytes, table: str) -> BaseGeometry | None:
    try:
        return decode_geometry(blob)
    except (MalformedBlob, GEOSException, ValueError) as e:
        LOGGER.warning("Skipping undecodable geometry in '%s': %s", table, e)
        return None


def _iter_features(
    cursor: sqlite3.Cursor, table: str, geometry_column: str, include_geometry: bool
) -> Iterator[Feature]:
    names = [d[0] for d in cursor.description]
    excluded = {"id", geometry_column.lower()}
    attribute_indexes = [
        (i, name) for i, name in enumerate(names) if name.lower() not in excluded
    ]
    geom_index = next(
        (i for i, name in enumerate(names) if name.lower() == geometry_column.lower()),
        None,
    )

    with storage_errors():
        for row in cursor:
            attributes = {name: stringify(row[i]) for i, name in attribute_indexes}

            geometry = None
            if include_geometry and geom_index is not None and row[geom_index] is not None:
                geometry = _decode_or_none(row[geom_index], table)

            yield Feature(geometry, attributes)


def read_features(
    conn: sqlite3.Connection,
    table: str,
    options: ReadOptions | None = None,
    geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
) -> Iterator[Feature]:
    """
    Read features from a layer.

    The query runs immediately, so SQL errors are raised by this call; rows
    are then decoded lazily as the iterator is consumed. The iterator is
    forward-only: call again to re-scan.

    Attributes are all columns except ``id`` and the geometry column, as
    strings (None for NULL). A geometry that cannot be decoded becomes None
    instead of aborting the scan.

    Example:
        >>> opts = ReadOptions(where="population > 100000", order_by="population DESC")
        >>> for feature in read_features(conn, "cities", opts):
        ...     print(feature["name"], feature.geometry)
    """
    options = options or ReadOptions()
    validate_identifier(geometry_column, "geometry column name")
    sql = build_select_sql(table, options)
    cursor = execute(conn, sql)
    return _iter_features(cursor, table, geometry_column, options.include_geometry)


def count(conn: sqlite3.Connection, table: str, where: str | None = None) -> int:
    """Number of rows, optionally filtered by a raw WHERE fragment"""
    validate_identifier(table, "table name")
    sql = f"SELECT COUNT(*) FROM {table}"
    if where:
        sql += f" WHERE {where}"
    return int(execute(conn, sql).fetchone()[0])


def delete(conn: sqlite3.Connection, table: str, where: str | None = None) -> int:
    """
    Delete rows, all of them when ``where`` is empty.

    Returns:
        Number of rows deleted
    """
    validate_identifier(table, "table name")
    sql = f"DELETE FROM {table}"
    if where:
        sql += f" WHERE {where}"
    return execute(conn, sql).rowcount
