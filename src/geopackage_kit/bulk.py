"""
Batched, transactional feature loading.

Features are inserted through one parameterized INSERT statement. Every
``batch_size`` rows the running transaction is committed and a new one is
opened, so each batch is all-or-nothing while memory and lock time stay
bounded. A failure rolls back only the batch in flight; batches committed
before it stay in the file.
"""

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .codec import encode_geometry
from .coercion import ColumnInfo, StorageValue, WarningCallback, convert_value, validate_value
from .exceptions import BulkInsertCancelled
from .feature import Feature
from .geometry import validate_geometry_type
from .metadata import DEFAULT_GEOMETRY_COLUMN, DEFAULT_SRID, update_extent
from .storage import begin, commit, rollback_after_error, storage_errors
from .validation import validate_batch_size, validate_identifier, validate_srid

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class ConflictPolicy(Enum):
    """What to do when a row violates a uniqueness constraint"""

    ABORT = "INSERT"
    IGNORE = "INSERT OR IGNORE"
    REPLACE = "INSERT OR REPLACE"


@dataclass(frozen=True)
class BulkInsertOptions:
    """
    Options for bulk inserts.

    Attributes:
        batch_size: Features per transaction, 1 to 100,000
        srid: SRID written into each geometry blob
        conflict_policy: ABORT, IGNORE or REPLACE on constraint conflicts
        validate_geometry_type: Reject geometries that don't match the
            layer's declared geometry type
        create_geometry_index: Create a B-tree index on the geometry column
            after loading (not an R-tree spatial index)
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    srid: int = DEFAULT_SRID
    conflict_policy: ConflictPolicy = ConflictPolicy.ABORT
    validate_geometry_type: bool = False
    create_geometry_index: bool = False

    def validate(self) -> None:
        validate_batch_size(self.batch_size)
        validate_srid(self.srid)


@dataclass(frozen=True)
class BulkProgress:
    """Progress of a bulk insert"""

    processed: int
    total: int

    @property
    def percent_complete(self) -> float:
        return self.processed / self.total * 100.0 if self.total > 0 else 0.0

    @property
    def is_complete(self) -> bool:
        return self.processed >= self.total

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.processed)


ProgressCallback = Callable[[BulkProgress], None]


def build_insert_sql(
    table: str,
    columns: Sequence[ColumnInfo],
    geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
    conflict_policy: ConflictPolicy = ConflictPolicy.ABORT,
) -> str:
    validate_identifier(table, "table name")
    validate_identifier(geometry_column, "geometry column name")
    names = [validate_identifier(c.name, "column name") for c in columns]
    names.append(geometry_column)
    placeholders = ", ".join("?" for _ in names)
    return (
        f"{conflict_policy.value} INTO {table} ({', '.join(names)}) "
        f"VALUES ({placeholders})"
    )


def bind_feature(
    feature: Feature,
    columns: Sequence[ColumnInfo],
    srid: int,
    on_warning: WarningCallback | None = None,
) -> tuple[StorageValue | bytes, ...]:
    """
    Validate and convert one feature into INSERT parameters.

    All attribute values are validated before anything is returned, so a
    bad value never reaches the database. Missing keys count as NULL.
    """
    values: list[StorageValue | bytes] = []
    for index, column in enumerate(columns):
        raw = feature.attributes.get(column.name)
        validate_value(column, raw, index, on_warning)
        values.append(convert_value(column, raw, index))

    if feature.geometry is None:
        values.append(None)
    else:
        values.append(encode_geometry(feature.geometry, srid))
    return tuple(values)


def bulk_insert(
    conn: sqlite3.Connection,
    table: str,
    columns: Sequence[ColumnInfo],
    features: Iterable[Feature],
    srid: int = DEFAULT_SRID,
    batch_size: int = DEFAULT_BATCH_SIZE,
    conflict_policy: ConflictPolicy = ConflictPolicy.ABORT,
    geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
    declared_geometry_type: str | None = None,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    on_warning: WarningCallback | None = None,
) -> int:
    """
    Insert features into a layer in batched transactions.

    Args:
        conn: Open connection with no transaction in progress
        table: Layer table name
        columns: Attribute columns to fill, in order
        features: Features to insert; consumed lazily unless ``progress``
            is given, in which case they are read into a list first to know
            the total
        srid: SRID written into each geometry blob
        batch_size: Rows per transaction
        conflict_policy: INSERT, INSERT OR IGNORE or INSERT OR REPLACE
        geometry_column: Name of the geometry column
        declared_geometry_type: When set, each geometry must be compatible
            with this type
        progress: Called with a BulkProgress after each committed batch and
            once at the end
        cancel: Checked before every row; when set the batch in flight is
            rolled back and BulkInsertCancelled is raised
        on_warning: Called for unknown column types

    Returns:
        Number of features processed

    Raises:
        TypeMismatch: If an attribute value doesn't fit its column
        GeometryTypeMismatch: If a geometry doesn't fit declared_geometry_type
        StorageEngineError: If SQLite rejects a row or statement

    After the last batch the layer extent is recomputed (a full table scan).
    """
    validate_srid(srid)
    validate_batch_size(batch_size)
    sql = build_insert_sql(table, columns, geometry_column, conflict_policy)

    total = 0
    if progress is not None:
        features = list(features)
        total = len(features)

    processed = 0
    begin(conn)
    try:
        with storage_errors():
            for feature in features:
                if cancel is not None and cancel.is_set():
                    raise BulkInsertCancelled(processed)

                if declared_geometry_type is not None:
                    validate_geometry_type(feature.geometry, declared_geometry_type, table)
                conn.execute(sql, bind_feature(feature, columns, srid, on_warning))
                processed += 1

                if processed % batch_size == 0:
                    conn.execute("COMMIT")
                    LOGGER.debug("Committed batch into '%s' (%s rows)", table, processed)
                    if progress is not None:
                        progress(BulkProgress(processed, total))
                    conn.execute("BEGIN")
        commit(conn)
    except BaseException:
        rollback_after_error(conn)
        raise

    update_extent(conn, table, geometry_column)
    LOGGER.info("Inserted %s features into '%s'", processed, table)

    if progress is not None:
        progress(BulkProgress(processed, total if total > 0 else processed))
    return processed
