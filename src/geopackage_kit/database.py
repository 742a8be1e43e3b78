"""
GeoPackage class for creating, filling and reading GeoPackage files.

This module provides the high-level API: a GeoPackage holds one SQLite
connection and hands out GeoPackageLayer objects for per-layer work.
"""

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from types import TracebackType

from shapely.geometry.base import BaseGeometry

from . import bulk, metadata, query
from .bulk import BulkInsertOptions, ProgressCallback
from .coercion import ColumnInfo, WarningCallback, attribute_columns, convert_value, validate_value
from .codec import encode_geometry
from .exceptions import (
    ColumnCountMismatch,
    GeoPackageError,
    GeoPackageFileNotFound,
    LayerNotFound,
)
from .feature import Feature
from .geometry import BoundingBox
from .metadata import (
    DEFAULT_BUFFER_PERCENT,
    DEFAULT_GEOMETRY_COLUMN,
    DEFAULT_SRID,
    GeoPackageInfo,
)
from .query import ReadOptions
from .storage import connect, execute, pragma, storage_errors, transaction
from .validation import validate_identifier, validate_srid

LOGGER = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


def _report(message: str, on_status: StatusCallback | None) -> None:
    LOGGER.info(message)
    if on_status is not None:
        on_status(message)


def _initialize(
    conn: sqlite3.Connection, srid: int, resolve_crs: bool = False
) -> None:
    """Create the metadata tables and register SRS rows, all or nothing"""
    with storage_errors(), transaction(conn):
        metadata.create_metadata_tables(conn)
        metadata.setup_srs(conn, srid, resolve_crs=resolve_crs)


def _enable_wal(conn: sqlite3.Connection, on_status: StatusCallback | None) -> None:
    pragma(conn, "journal_mode = WAL")
    _report("Enabled WAL (Write-Ahead Logging) mode", on_status)


def create_geopackage(
    path: str | Path,
    srid: int = DEFAULT_SRID,
    wal_mode: bool = False,
    resolve_crs: bool = False,
    on_status: StatusCallback | None = None,
) -> Path:
    """
    Create a new, empty GeoPackage file.

    An existing file at ``path`` is deleted first.

    Args:
        path: Where to create the file
        srid: Spatial reference system to register (3006 also adds 4326)
        wal_mode: Switch the file to write-ahead logging
        resolve_crs: Look up unknown SRIDs with pyproj instead of writing a
            placeholder definition
        on_status: Called with progress messages

    Returns:
        The path of the created file
    """
    validate_srid(srid)
    path = Path(path)
    if path.exists():
        path.unlink()
        _report(f"Deleted existing GeoPackage file: {path}", on_status)

    conn = connect(path)
    try:
        if wal_mode:
            _enable_wal(conn, on_status)
        _initialize(conn, srid, resolve_crs)
    except BaseException:
        conn.close()
        path.unlink(missing_ok=True)
        raise
    conn.close()

    _report(f"Successfully created GeoPackage: {path}", on_status)
    return path


class GeoPackage:
    """
    An open GeoPackage file.

    Opening a path that doesn't exist creates and initializes a new
    GeoPackage there. The object owns one SQLite connection; use it as a
    context manager or call close().

    Example:
        >>> from shapely.geometry import Point
        >>> with GeoPackage("cities.gpkg") as gpkg:
        ...     layer = gpkg.ensure_layer("cities", {"name": "TEXT", "population": "INTEGER"})
        ...     layer.bulk_insert([Feature(Point(674188, 6580251), {"name": "Stockholm"})])
        ...     for feature in layer.read_features(ReadOptions(limit=10)):
        ...         print(feature["name"], feature.geometry.wkt)

    Attributes:
        path: Path to the GeoPackage file
    """

    def __init__(
        self,
        path: str | Path,
        default_srid: int = DEFAULT_SRID,
        wal_mode: bool = False,
        must_exist: bool = False,
        resolve_crs: bool = False,
        on_status: StatusCallback | None = None,
    ):
        """
        Open or create a GeoPackage file.

        Args:
            path: Path to the .gpkg file
            default_srid: SRID registered when a new file is created
            wal_mode: Switch the connection to write-ahead logging
            must_exist: Raise instead of creating a missing file
            resolve_crs: Look up unknown SRIDs with pyproj
            on_status: Called with status messages

        Raises:
            GeoPackageFileNotFound: If must_exist is set and the file is missing
            StorageEngineError: If the file cannot be opened or initialized
        """
        validate_srid(default_srid)
        self.path = Path(path)
        self.resolve_crs = resolve_crs
        self._on_status = on_status

        exists = self.path.exists()
        if must_exist and not exists:
            raise GeoPackageFileNotFound(self.path)

        self._conn: sqlite3.Connection | None = connect(self.path)
        try:
            if wal_mode:
                _enable_wal(self._conn, on_status)
            if not exists:
                _initialize(self._conn, default_srid, resolve_crs)
                _report(f"Successfully initialized GeoPackage: {self.path}", on_status)
        except BaseException:
            self.close()
            if not exists:
                self.path.unlink(missing_ok=True)
            raise

    @classmethod
    def open(cls, path: str | Path, **kwargs) -> "GeoPackage":
        """Same as calling the constructor"""
        return cls(path, **kwargs)

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise GeoPackageError(f"GeoPackage is closed: {self.path}")
        return self._conn

    @property
    def connection(self) -> sqlite3.Connection:
        """The underlying sqlite3 connection"""
        return self._get_connection()

    def close(self):
        """Close the database connection"""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def closed(self) -> bool:
        return self._conn is None

    def __enter__(self) -> "GeoPackage":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def journal_mode(self) -> str:
        return str(pragma(self._get_connection(), "journal_mode")).lower()

    @property
    def layer_names(self) -> list[str]:
        rows = execute(
            self._get_connection(),
            "SELECT table_name FROM gpkg_contents ORDER BY table_name",
        ).fetchall()
        return [row[0] for row in rows]

    def has_layer(self, name: str) -> bool:
        return metadata.layer_exists(self._get_connection(), name)

    def ensure_layer(
        self,
        name: str,
        columns: Mapping[str, str],
        srid: int = DEFAULT_SRID,
        geometry_type: str = "POINT",
        geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
        constraints: Mapping[str, str] | None = None,
    ) -> "GeoPackageLayer":
        """
        Return a layer, creating it with the given schema if it doesn't exist.

        An existing layer is returned as is; its schema is never altered.

        Args:
            name: Layer name (must be a valid SQL identifier)
            columns: Attribute column names mapped to SQL types
            srid: Spatial reference id for a new layer
            geometry_type: POINT, LINESTRING, POLYGON, MULTI* or GEOMETRY
            geometry_column: Name of the geometry column
            constraints: Optional raw SQL constraints per column, e.g. "UNIQUE"
        """
        validate_identifier(name, "layer name")
        validate_identifier(geometry_column, "geometry column name")
        validate_srid(srid)
        for column in columns:
            validate_identifier(column, "column name")

        conn = self._get_connection()
        if metadata.layer_exists(conn, name):
            return self.layer(name)

        metadata.create_layer(
            conn,
            name,
            columns,
            geometry_type,
            srid,
            geometry_column,
            constraints,
            resolve_crs=self.resolve_crs,
        )
        _report(f"Successfully created spatial layer '{name}'", self._on_status)
        return GeoPackageLayer(self, name, geometry_column)

    def layer(self, name: str) -> "GeoPackageLayer":
        """
        Get an existing layer.

        Raises:
            LayerNotFound: If the layer isn't registered in gpkg_contents
        """
        validate_identifier(name, "layer name")
        conn = self._get_connection()
        if not metadata.layer_exists(conn, name):
            raise LayerNotFound(name)
        geometry_column = metadata.get_geometry_column(conn, name)
        return GeoPackageLayer(self, name, geometry_column or DEFAULT_GEOMETRY_COLUMN)

    def info(self) -> GeoPackageInfo:
        """Layers and spatial reference systems of this GeoPackage"""
        return metadata.get_info(self._get_connection())

    def add_feature(
        self,
        layer: str,
        geometry: BaseGeometry | None,
        values: Sequence[str | None],
        on_warning: WarningCallback | None = None,
    ) -> None:
        """
        Insert one feature from positional attribute values.

        ``values`` must hold one value per attribute column, in column order.
        The layer extent is recomputed afterwards.

        Raises:
            ColumnCountMismatch: If the number of values is wrong
            TypeMismatch: If a value doesn't fit its column
        """
        target = self.layer(layer)
        conn = self._get_connection()
        columns = target.columns

        if len(values) != len(columns):
            expected = ", ".join(f"{c.name}({c.type})" for c in columns)
            raise ColumnCountMismatch(layer, len(columns), len(values), expected)

        params: list[object] = []
        for index, (column, value) in enumerate(zip(columns, values, strict=True)):
            validate_value(column, value, index, on_warning)
            params.append(convert_value(column, value, index))

        srid = target.srid
        params.append(encode_geometry(geometry, srid) if geometry is not None else None)

        sql = bulk.build_insert_sql(layer, columns, target.geometry_column)
        with storage_errors(), transaction(conn):
            conn.execute(sql, tuple(params))
        metadata.update_extent(conn, layer, target.geometry_column)

    def update_extent(
        self, layer: str, buffer_percent: float = DEFAULT_BUFFER_PERCENT
    ) -> BoundingBox | None:
        target = self.layer(layer)
        return target.update_extent(buffer_percent)


class GeoPackageLayer:
    """
    A layer of an open GeoPackage.

    Attributes:
        name: Layer (table) name
        geometry_column: Name of the geometry column
    """

    def __init__(self, geopackage: GeoPackage, name: str, geometry_column: str):
        self._geopackage = geopackage
        self.name = name
        self.geometry_column = geometry_column

    def __repr__(self) -> str:
        return f"GeoPackageLayer({self.name!r}, geometry_column={self.geometry_column!r})"

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._geopackage.connection

    @property
    def columns(self) -> list[ColumnInfo]:
        """Attribute columns (everything but id and geometry)"""
        return attribute_columns(self._conn, self.name, self.geometry_column)

    @property
    def geometry_type(self) -> str | None:
        return metadata.get_layer_geometry_type(self._conn, self.name)

    @property
    def srid(self) -> int:
        row = execute(
            self._conn,
            "SELECT srs_id FROM gpkg_geometry_columns WHERE table_name = ?",
            (self.name,),
        ).fetchone()
        return row[0] if row is not None else DEFAULT_SRID

    @property
    def extent(self) -> BoundingBox | None:
        row = execute(
            self._conn,
            "SELECT min_x, min_y, max_x, max_y FROM gpkg_contents WHERE table_name = ?",
            (self.name,),
        ).fetchone()
        if row is None or None in tuple(row):
            return None
        return BoundingBox(*row)

    def bulk_insert(
        self,
        features: Iterable[Feature],
        options: BulkInsertOptions | None = None,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
        on_warning: WarningCallback | None = None,
    ) -> int:
        """
        Insert features in batched transactions.

        Passing ``progress`` reads all features into memory first so the
        total is known; without it they are consumed lazily.

        Each batch is committed on its own: if a later batch fails, earlier
        batches stay in the file.

        Returns:
            Number of features processed
        """
        options = options or BulkInsertOptions()
        options.validate()

        declared = self.geometry_type if options.validate_geometry_type else None
        inserted = bulk.bulk_insert(
            self._conn,
            self.name,
            self.columns,
            features,
            srid=options.srid,
            batch_size=options.batch_size,
            conflict_policy=options.conflict_policy,
            geometry_column=self.geometry_column,
            declared_geometry_type=declared,
            progress=progress,
            cancel=cancel,
            on_warning=on_warning,
        )

        if options.create_geometry_index:
            self.create_geometry_index()
        return inserted

    def read_features(self, options: ReadOptions | None = None) -> Iterator[Feature]:
        """
        Read features lazily.

        ``options.where`` and ``options.order_by`` are inserted into the SQL
        verbatim; don't build them from untrusted input.
        """
        return query.read_features(self._conn, self.name, options, self.geometry_column)

    def read_all(self, options: ReadOptions | None = None) -> list[Feature]:
        return list(self.read_features(options))

    def count(self, where: str | None = None) -> int:
        return query.count(self._conn, self.name, where)

    def delete(self, where: str | None = None) -> int:
        """Delete features matching ``where``, or all features"""
        return query.delete(self._conn, self.name, where)

    def update_extent(
        self, buffer_percent: float = DEFAULT_BUFFER_PERCENT
    ) -> BoundingBox | None:
        return metadata.update_extent(
            self._conn, self.name, self.geometry_column, buffer_percent
        )

    def create_geometry_index(self) -> None:
        """
        Create a B-tree index on the geometry column.

        This is a plain index, not an R-tree spatial index.
        """
        execute(
            self._conn,
            f"CREATE INDEX IF NOT EXISTS idx_{self.name}_{self.geometry_column} "
            f"ON {self.name}({self.geometry_column})",
        )


def get_geopackage_info(path: str | Path) -> GeoPackageInfo:
    """
    Describe the layers and spatial reference systems of a GeoPackage file.

    Raises:
        GeoPackageFileNotFound: If the file doesn't exist
    """
    with GeoPackage(path, must_exist=True) as gpkg:
        return gpkg.info()


def update_layer_extent(
    path: str | Path,
    layer: str,
    geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
    buffer_percent: float = DEFAULT_BUFFER_PERCENT,
) -> BoundingBox | None:
    """
    Recompute the extent of a layer in a GeoPackage file.

    Raises:
        GeoPackageFileNotFound: If the file doesn't exist
    """
    with GeoPackage(path, must_exist=True) as gpkg:
        return metadata.update_extent(
            gpkg.connection, layer, geometry_column, buffer_percent
        )
