"""
GeoPackage metadata registry.

Maintains the three standard tables that describe a GeoPackage:

- gpkg_spatial_ref_sys: coordinate reference systems
- gpkg_contents: one row per layer, including its extent
- gpkg_geometry_columns: which column of which table holds geometry

A layer table, its contents row and its geometry-columns row are always
created together in one transaction (see create_layer).
"""

import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field

from pyproj import CRS
from pyproj.exceptions import CRSError
from shapely.errors import GEOSException

from .codec import decode_geometry
from .coercion import ColumnInfo, table_columns
from .exceptions import MalformedBlob
from .geometry import BoundingBox, GeometryType
from .storage import execute, storage_errors, transaction
from .validation import quote_identifier, validate_column_type, validate_identifier, validate_srid

LOGGER = logging.getLogger(__name__)

GPKG_APPLICATION_ID = 1196444487  # "GPKG"
DEFAULT_SRID = 3006
DEFAULT_GEOMETRY_COLUMN = "geom"
DEFAULT_BUFFER_PERCENT = 5.0
# Minimum extent margin in map units, so point layers still get a box
MIN_EXTENT_BUFFER = 100.0

SWEREF99_TM_WKT = (
    'PROJCS["SWEREF99 TM",GEOGCS["SWEREF99",DATUM["SWEREF99",'
    'SPHEROID["GRS 1980",6378137,298.257222101,AUTHORITY["EPSG","7019"]],'
    'TOWGS84[0,0,0,0,0,0,0],AUTHORITY["EPSG","6619"]],'
    'PRIMEM["Greenwich",0,AUTHORITY["EPSG","8901"]],'
    'UNIT["degree",0.01745329251994328,AUTHORITY["EPSG","9122"]],'
    'AUTHORITY["EPSG","4619"]],UNIT["metre",1,AUTHORITY["EPSG","9001"]],'
    'PROJECTION["Transverse_Mercator"],PARAMETER["latitude_of_origin",0],'
    'PARAMETER["central_meridian",15],PARAMETER["scale_factor",0.9996],'
    'PARAMETER["false_easting",500000],PARAMETER["false_northing",0],'
    'AUTHORITY["EPSG","3006"],AXIS["Y",NORTH],AXIS["X",EAST]]'
)

WGS84_WKT = (
    'GEOGCS["WGS 84",DATUM["WGS_1984",'
    'SPHEROID["WGS 84",6378137,298.257223563,AUTHORITY["EPSG","7030"]],'
    'AUTHORITY["EPSG","6326"]],PRIMEM["Greenwich",0,AUTHORITY["EPSG","8901"]],'
    'UNIT["degree",0.01745329251994328,AUTHORITY["EPSG","9122"]],'
    'AUTHORITY["EPSG","4326"]]'
)

_CREATE_SRS_TABLE = """
CREATE TABLE gpkg_spatial_ref_sys (
    srs_name TEXT NOT NULL,
    srs_id INTEGER NOT NULL PRIMARY KEY,
    organization TEXT NOT NULL,
    organization_coordsys_id INTEGER NOT NULL,
    definition TEXT NOT NULL,
    description TEXT
)"""

_CREATE_CONTENTS_TABLE = """
CREATE TABLE gpkg_contents (
    table_name TEXT NOT NULL PRIMARY KEY,
    data_type TEXT NOT NULL,
    identifier TEXT UNIQUE,
    description TEXT DEFAULT '',
    last_change DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now')),
    min_x DOUBLE,
    min_y DOUBLE,
    max_x DOUBLE,
    max_y DOUBLE,
    srs_id INTEGER,
    CONSTRAINT fk_gc_r_srs_id FOREIGN KEY (srs_id) REFERENCES gpkg_spatial_ref_sys(srs_id)
)"""

_CREATE_GEOMETRY_COLUMNS_TABLE = """
CREATE TABLE gpkg_geometry_columns (
    table_name TEXT NOT NULL,
    column_name TEXT NOT NULL,
    geometry_type_name TEXT NOT NULL,
    srs_id INTEGER NOT NULL,
    z TINYINT NOT NULL,
    m TINYINT NOT NULL,
    CONSTRAINT pk_geom_cols PRIMARY KEY (table_name, column_name),
    CONSTRAINT uk_gc_table_name UNIQUE (table_name),
    CONSTRAINT fk_gc_tn FOREIGN KEY (table_name) REFERENCES gpkg_contents(table_name),
    CONSTRAINT fk_gc_srs FOREIGN KEY (srs_id) REFERENCES gpkg_spatial_ref_sys(srs_id)
)"""

_UPSERT_SRS = """
INSERT OR REPLACE INTO gpkg_spatial_ref_sys
(srs_name, srs_id, organization, organization_coordsys_id, definition, description)
VALUES (?, ?, ?, ?, ?, ?)"""


@dataclass(frozen=True)
class SrsInfo:
    """A row of gpkg_spatial_ref_sys"""

    srs_id: int
    srs_name: str
    organization: str
    organization_coordsys_id: int
    definition: str
    description: str | None = None


# Always present in every GeoPackage
UNDEFINED_CARTESIAN = SrsInfo(
    -1,
    "Undefined cartesian SRS",
    "NONE",
    -1,
    "undefined",
    "undefined cartesian coordinate reference system",
)
UNDEFINED_GEOGRAPHIC = SrsInfo(
    0,
    "Undefined geographic SRS",
    "NONE",
    0,
    "undefined",
    "undefined geographic coordinate reference system",
)
SWEREF99_TM = SrsInfo(
    3006, "SWEREF99 TM", "EPSG", 3006, SWEREF99_TM_WKT, "Swedish national coordinate system"
)
WGS84 = SrsInfo(4326, "WGS 84", "EPSG", 4326, WGS84_WKT, "World Geodetic System 1984")

# srid -> entries to write when that srid is requested
KNOWN_SRS: dict[int, tuple[SrsInfo, ...]] = {
    -1: (),
    0: (),
    3006: (SWEREF99_TM, WGS84),
    4326: (WGS84,),
}


@dataclass
class LayerInfo:
    """
    A layer as described by the metadata tables.

    Attributes:
        table_name: Name of the layer table
        data_type: gpkg_contents data type, "features" for vector layers
        srid: Spatial reference id of the layer
        geometry_column: Name of the geometry column
        geometry_type: Declared geometry type (POINT, LINESTRING, ...)
        min_x, min_y, max_x, max_y: Cached extent, None until first write
        columns: All columns of the table
        attribute_columns: Columns other than id and the geometry column
        row_count: Number of rows in the table, None if the table is missing
    """

    table_name: str
    data_type: str
    srid: int | None = None
    geometry_column: str | None = None
    geometry_type: str | None = None
    min_x: float | None = None
    min_y: float | None = None
    max_x: float | None = None
    max_y: float | None = None
    columns: list[ColumnInfo] = field(default_factory=lambda: [])
    attribute_columns: list[ColumnInfo] = field(default_factory=lambda: [])
    row_count: int | None = None

    @property
    def extent(self) -> BoundingBox | None:
        if None in (self.min_x, self.min_y, self.max_x, self.max_y):
            return None
        return BoundingBox(self.min_x, self.min_y, self.max_x, self.max_y)  # type: ignore[arg-type]


@dataclass
class GeoPackageInfo:
    """Layers and spatial reference systems of a GeoPackage"""

    layers: list[LayerInfo]
    spatial_ref_systems: list[SrsInfo]

    def get_layer(self, name: str) -> LayerInfo | None:
        for layer in self.layers:
            if layer.table_name == name:
                return layer
        return None

    @property
    def srids(self) -> list[int]:
        return [srs.srs_id for srs in self.spatial_ref_systems]


def create_metadata_tables(conn: sqlite3.Connection) -> None:
    """
    Create the three GeoPackage metadata tables and tag the file.

    Not idempotent: on an initialized file this fails with a StorageEngineError
    because the tables already exist.
    """
    execute(conn, f"PRAGMA application_id = {GPKG_APPLICATION_ID}")
    execute(conn, _CREATE_SRS_TABLE)
    execute(conn, _CREATE_CONTENTS_TABLE)
    execute(conn, _CREATE_GEOMETRY_COLUMNS_TABLE)


def _upsert_srs(conn: sqlite3.Connection, srs: SrsInfo) -> None:
    execute(
        conn,
        _UPSERT_SRS,
        (
            srs.srs_name,
            srs.srs_id,
            srs.organization,
            srs.organization_coordsys_id,
            srs.definition,
            srs.description,
        ),
    )


def generic_srs(srid: int) -> SrsInfo:
    """Placeholder entry for an EPSG code without a built-in definition"""
    return SrsInfo(
        srid,
        f"EPSG:{srid}",
        "EPSG",
        srid,
        "undefined",
        f"Coordinate reference system EPSG:{srid}",
    )


def resolve_srs(srid: int) -> SrsInfo:
    """
    Build an entry for an EPSG code using pyproj's CRS database.

    Falls back to the generic placeholder when pyproj does not know the code.
    """
    try:
        crs = CRS.from_epsg(srid)
    except CRSError:
        LOGGER.warning("EPSG:%s is unknown to pyproj, using placeholder definition", srid)
        return generic_srs(srid)
    return SrsInfo(
        srid,
        crs.name,
        "EPSG",
        srid,
        crs.to_wkt("WKT1_GDAL") or crs.to_wkt(),
        f"Coordinate reference system EPSG:{srid}",
    )


def setup_srs(conn: sqlite3.Connection, srid: int, resolve_crs: bool = False) -> None:
    """
    Register the spatial reference systems needed for ``srid``.

    The two undefined systems (-1 and 0) are always written. 3006 and 4326
    use built-in WKT definitions, and 3006 also brings in 4326. Any other
    srid gets a placeholder definition, or its real definition from pyproj
    when ``resolve_crs`` is set. Existing rows are replaced.
    """
    validate_srid(srid)

    _upsert_srs(conn, UNDEFINED_CARTESIAN)
    _upsert_srs(conn, UNDEFINED_GEOGRAPHIC)

    if srid in KNOWN_SRS:
        entries = KNOWN_SRS[srid]
    elif resolve_crs:
        entries = (resolve_srs(srid),)
    else:
        entries = (generic_srs(srid),)

    for srs in entries:
        _upsert_srs(conn, srs)


def srs_exists(conn: sqlite3.Connection, srid: int) -> bool:
    row = execute(
        conn, "SELECT COUNT(*) FROM gpkg_spatial_ref_sys WHERE srs_id = ?", (srid,)
    ).fetchone()
    return row[0] > 0


def register_layer(
    conn: sqlite3.Connection,
    table: str,
    geometry_column: str,
    geometry_type: str,
    srid: int,
    extent: BoundingBox | None = None,
) -> None:
    """
    Insert the gpkg_contents and gpkg_geometry_columns rows for a table.

    Call this after the table has been created and inside the same
    transaction, so the table and its registration appear together.
    """
    validate_identifier(table, "table name")
    validate_identifier(geometry_column, "geometry column name")
    validate_srid(srid)

    min_x, min_y, max_x, max_y = extent if extent is not None else (None,) * 4
    execute(
        conn,
        """
        INSERT INTO gpkg_contents
        (table_name, data_type, identifier, description, srs_id, min_x, min_y, max_x, max_y)
        VALUES (?, 'features', ?, ?, ?, ?, ?, ?, ?)""",
        (table, table, f"Spatial table {table}", srid, min_x, min_y, max_x, max_y),
    )
    # No Z or M support
    execute(
        conn,
        """
        INSERT INTO gpkg_geometry_columns
        (table_name, column_name, geometry_type_name, srs_id, z, m)
        VALUES (?, ?, ?, ?, 0, 0)""",
        (table, geometry_column, geometry_type, srid),
    )


def create_layer(
    conn: sqlite3.Connection,
    table: str,
    columns: Mapping[str, str],
    geometry_type: str = "POINT",
    srid: int = DEFAULT_SRID,
    geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
    constraints: Mapping[str, str] | None = None,
    resolve_crs: bool = False,
) -> None:
    """
    Create a layer table and register it in the metadata tables.

    Args:
        conn: Open connection to an initialized GeoPackage
        table: Layer name
        columns: Attribute column names mapped to their SQL types
        geometry_type: Declared geometry type (POINT, LINESTRING, ...)
        srid: Spatial reference id of the layer
        geometry_column: Name of the geometry column
        constraints: Optional raw SQL constraints per column, e.g. "UNIQUE"
        resolve_crs: Look up an unregistered srid with pyproj

    The table has an ``id INTEGER PRIMARY KEY AUTOINCREMENT`` column, the
    attribute columns in order and a BLOB geometry column. Table creation
    and registration run in one transaction.
    """
    validate_identifier(table, "layer name")
    validate_identifier(geometry_column, "geometry column name")
    validate_srid(srid)
    type_name = GeometryType.parse(geometry_type).name
    constraints = dict(constraints or {})

    definitions = ["id INTEGER PRIMARY KEY AUTOINCREMENT"]
    for name, sql_type in columns.items():
        validate_identifier(name, "column name")
        definition = f"{name} {validate_column_type(name, sql_type)}"
        if constraints.get(name):
            definition += f" {constraints[name]}"
        definitions.append(definition)
    definitions.append(f"{geometry_column} BLOB")

    with storage_errors(), transaction(conn):
        if not srs_exists(conn, srid):
            setup_srs(conn, srid, resolve_crs=resolve_crs)
        execute(conn, f"CREATE TABLE {table} ({', '.join(definitions)})")
        register_layer(conn, table, geometry_column, type_name, srid)

    LOGGER.info("Created spatial layer '%s' (%s, SRID %s)", table, type_name, srid)


def layer_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = execute(
        conn, "SELECT COUNT(*) FROM gpkg_contents WHERE table_name = ?", (table,)
    ).fetchone()
    return row[0] > 0


def get_layer_geometry_type(conn: sqlite3.Connection, table: str) -> str | None:
    """Declared geometry type of a layer, from gpkg_geometry_columns"""
    row = execute(
        conn,
        "SELECT geometry_type_name FROM gpkg_geometry_columns WHERE table_name = ?",
        (table,),
    ).fetchone()
    return row[0] if row is not None else None


def get_geometry_column(conn: sqlite3.Connection, table: str) -> str | None:
    row = execute(
        conn,
        "SELECT column_name FROM gpkg_geometry_columns WHERE table_name = ?",
        (table,),
    ).fetchone()
    return row[0] if row is not None else None


def compute_extent(
    conn: sqlite3.Connection, table: str, geometry_column: str = DEFAULT_GEOMETRY_COLUMN
) -> BoundingBox | None:
    """
    Scan every geometry of a table and return their combined envelope.

    Blobs that cannot be decoded and empty geometries are skipped. Returns
    None when no geometry contributes.
    """
    validate_identifier(table, "layer name")
    validate_identifier(geometry_column, "geometry column name")

    extent: BoundingBox | None = None
    cursor = execute(
        conn,
        f"SELECT {geometry_column} FROM {table} WHERE {geometry_column} IS NOT NULL",
    )
    with storage_errors():
        for (blob,) in cursor:
            try:
                geom = decode_geometry(blob)
            except (MalformedBlob, GEOSException, ValueError) as e:
                LOGGER.warning("Skipping undecodable geometry in '%s': %s", table, e)
                continue
            if geom.is_empty:
                continue
            bounds = BoundingBox.of(geom)
            extent = bounds if extent is None else extent.union(bounds)
    return extent


def update_extent(
    conn: sqlite3.Connection,
    table: str,
    geometry_column: str = DEFAULT_GEOMETRY_COLUMN,
    buffer_percent: float = DEFAULT_BUFFER_PERCENT,
) -> BoundingBox | None:
    """
    Recompute a layer's extent and store it in gpkg_contents.

    The extent of all geometries is padded on each side by
    ``max(size * buffer_percent / 100, 100)`` map units, independently for X
    and Y, and written together with a fresh last_change timestamp. Nothing
    is written when the table has no geometries.

    This is a full table scan.

    Returns:
        The padded extent that was written, or None
    """
    extent = compute_extent(conn, table, geometry_column)
    if extent is None:
        return None

    padded = extent.buffered(buffer_percent, MIN_EXTENT_BUFFER)
    execute(
        conn,
        """
        UPDATE gpkg_contents
        SET min_x = ?, min_y = ?, max_x = ?, max_y = ?,
            last_change = strftime('%Y-%m-%dT%H:%M:%fZ','now')
        WHERE table_name = ?""",
        (*padded, table),
    )
    return padded


def get_info(conn: sqlite3.Connection) -> GeoPackageInfo:
    """
    Describe all layers and spatial reference systems of a GeoPackage.

    Layers are those listed in gpkg_contents, ordered by name.
    """
    srs_list = [
        SrsInfo(
            srs_id=row["srs_id"],
            srs_name=row["srs_name"],
            organization=row["organization"],
            organization_coordsys_id=row["organization_coordsys_id"],
            definition=row["definition"],
            description=row["description"],
        )
        for row in execute(
            conn,
            "SELECT srs_id, srs_name, organization, organization_coordsys_id, "
            "definition, description FROM gpkg_spatial_ref_sys",
        ).fetchall()
    ]

    geom_info = {
        row["table_name"]: row
        for row in execute(
            conn,
            "SELECT table_name, column_name, geometry_type_name, srs_id "
            "FROM gpkg_geometry_columns",
        ).fetchall()
    }

    layers: list[LayerInfo] = []
    for row in execute(
        conn,
        "SELECT table_name, data_type, srs_id, min_x, min_y, max_x, max_y "
        "FROM gpkg_contents ORDER BY table_name",
    ).fetchall():
        table_name = row["table_name"]
        info = LayerInfo(
            table_name=table_name,
            data_type=row["data_type"],
            srid=row["srs_id"],
            min_x=row["min_x"],
            min_y=row["min_y"],
            max_x=row["max_x"],
            max_y=row["max_y"],
        )

        if table_name in geom_info:
            gi = geom_info[table_name]
            info.geometry_column = gi["column_name"]
            info.geometry_type = gi["geometry_type_name"]
            if info.srid is None:
                info.srid = gi["srs_id"]

        info.columns = table_columns(conn, table_name, validate=False)
        excluded = {"id", (info.geometry_column or "").lower()}
        info.attribute_columns = [
            c for c in info.columns if c.name.lower() not in excluded
        ]
        if info.columns:
            info.row_count = execute(
                conn, f"SELECT COUNT(*) FROM {quote_identifier(table_name)}"
            ).fetchone()[0]
        layers.append(info)

    return GeoPackageInfo(layers=layers, spatial_ref_systems=srs_list)
