"""
GeoPackage Kit

Create, fill and read OGC GeoPackage (.gpkg) files with plain SQLite.

This library writes the GeoPackage metadata tables and binary geometry
format itself; geometries are shapely objects and SQLite does the storage.

Example:
    >>> from shapely.geometry import Point
    >>> from geopackage_kit import Feature, GeoPackage, ReadOptions
    >>>
    >>> with GeoPackage("cities.gpkg") as gpkg:
    ...     layer = gpkg.ensure_layer("cities", {"name": "TEXT", "population": "INTEGER"})
    ...     layer.bulk_insert([
    ...         Feature(Point(674188, 6580251), {"name": "Stockholm", "population": "975000"}),
    ...     ])
    ...     for feature in layer.read_features(ReadOptions(order_by="population DESC")):
    ...         print(feature["name"], feature.geometry.wkt)

CLI Example:
    $ geopackage-kit create cities.gpkg --srid 3006
    $ geopackage-kit info cities.gpkg
    $ geopackage-kit dump cities.gpkg cities -n 5
"""

__version__ = "0.1.0"

from .exceptions import (
    GeoPackageError,
    InvalidIdentifier,
    InvalidSrid,
    InvalidBatchSize,
    InvalidColumnType,
    InvalidReadOptions,
    TypeMismatch,
    UnsupportedColumnType,
    ColumnCountMismatch,
    GeometryTypeMismatch,
    MalformedBlob,
    LayerNotFound,
    BulkInsertCancelled,
    GeoPackageFileNotFound,
    StorageEngineError,
)

from .validation import (
    validate_identifier,
    validate_srid,
    validate_batch_size,
)

from .geometry import (
    GeometryType,
    BoundingBox,
    is_geometry_type_compatible,
)

from .codec import (
    GeoPackageBlobCodec,
    GeoPackageHeader,
    encode,
    decode,
    read_header,
    encode_geometry,
    decode_geometry,
)

from .coercion import (
    ColumnInfo,
    validate_value,
    convert_value,
)

from .metadata import (
    DEFAULT_SRID,
    GeoPackageInfo,
    LayerInfo,
    SrsInfo,
)

from .feature import Feature

from .bulk import (
    BulkInsertOptions,
    BulkProgress,
    ConflictPolicy,
)

from .query import ReadOptions

from .database import (
    GeoPackage,
    GeoPackageLayer,
    create_geopackage,
    get_geopackage_info,
    update_layer_extent,
)

__all__ = [
    # Version
    "__version__",
    # Errors
    "GeoPackageError",
    "InvalidIdentifier",
    "InvalidSrid",
    "InvalidBatchSize",
    "InvalidColumnType",
    "InvalidReadOptions",
    "TypeMismatch",
    "UnsupportedColumnType",
    "ColumnCountMismatch",
    "GeometryTypeMismatch",
    "MalformedBlob",
    "LayerNotFound",
    "BulkInsertCancelled",
    "GeoPackageFileNotFound",
    "StorageEngineError",
    # Validation
    "validate_identifier",
    "validate_srid",
    "validate_batch_size",
    # Geometry
    "GeometryType",
    "BoundingBox",
    "is_geometry_type_compatible",
    # Codec
    "GeoPackageBlobCodec",
    "GeoPackageHeader",
    "encode",
    "decode",
    "read_header",
    "encode_geometry",
    "decode_geometry",
    # Coercion
    "ColumnInfo",
    "validate_value",
    "convert_value",
    # Metadata
    "DEFAULT_SRID",
    "GeoPackageInfo",
    "LayerInfo",
    "SrsInfo",
    # Features
    "Feature",
    "BulkInsertOptions",
    "BulkProgress",
    "ConflictPolicy",
    "ReadOptions",
    # Database
    "GeoPackage",
    "GeoPackageLayer",
    "create_geopackage",
    "get_geopackage_info",
    "update_layer_extent",
]
