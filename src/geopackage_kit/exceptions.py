"""
Exception hierarchy for geopackage-kit.

Every error raised by the library derives from GeoPackageError. Most also
derive from the closest built-in exception (ValueError, LookupError,
FileNotFoundError) so existing ``except ValueError`` handlers keep working.
"""


class GeoPackageError(Exception):
    """Base class for all geopackage-kit errors"""


class InvalidIdentifier(GeoPackageError, ValueError):
    """A table or column name is unsafe to interpolate into SQL"""

    def __init__(self, name: str | None, role: str, reason: str):
        self.name = name
        self.role = role
        super().__init__(f"Invalid {role}: {name!r}. {reason}")


class InvalidSrid(GeoPackageError, ValueError):
    def __init__(self, srid: int):
        self.srid = srid
        super().__init__(
            f"Invalid SRID {srid}: must be -1 (undefined cartesian), "
            "0 (undefined geographic), or a positive EPSG code"
        )


class InvalidBatchSize(GeoPackageError, ValueError):
    def __init__(self, batch_size: int, reason: str):
        self.batch_size = batch_size
        super().__init__(f"Invalid batch size {batch_size}: {reason}")


class InvalidColumnType(GeoPackageError, ValueError):
    def __init__(self, column: str, sql_type: str):
        self.column = column
        self.sql_type = sql_type
        super().__init__(f"Invalid SQL type for column '{column}': {sql_type!r}")


class InvalidReadOptions(GeoPackageError, ValueError):
    pass


class TypeMismatch(GeoPackageError, ValueError):
    """An attribute value cannot be stored in its column's declared type"""

    def __init__(
        self, index: int, column: str, expected: str, reason: str, value: str
    ):
        self.index = index
        self.column = column
        self.expected = expected
        self.reason = reason
        self.value = value
        super().__init__(
            f"Data type mismatch at index {index}: column '{column}' expects "
            f"{expected}, but received {value!r} ({reason})"
        )


class UnsupportedColumnType(GeoPackageError, ValueError):
    def __init__(self, column: str, sql_type: str):
        self.column = column
        self.type = sql_type
        super().__init__(
            f"Column '{column}' is of type {sql_type} and cannot be populated "
            "from a string value"
        )


class ColumnCountMismatch(GeoPackageError, ValueError):
    def __init__(self, table: str, expected: int, received: int, columns: str = ""):
        self.table = table
        self.expected = expected
        self.received = received
        detail = f" for columns: {columns}" if columns else ""
        super().__init__(
            f"Column count mismatch for table '{table}': expected {expected} "
            f"attribute values{detail}, but received {received}"
        )


class GeometryTypeMismatch(GeoPackageError, ValueError):
    def __init__(self, layer: str, declared: str, actual: str):
        self.layer = layer
        self.declared = declared
        self.actual = actual
        super().__init__(
            f"Geometry type mismatch: layer '{layer}' is declared as "
            f"'{declared}' but received a '{actual}'"
        )


class MalformedBlob(GeoPackageError, ValueError):
    pass


class LayerNotFound(GeoPackageError, LookupError):
    def __init__(self, layer: str):
        self.layer = layer
        super().__init__(f"Layer not found: {layer}")


class BulkInsertCancelled(GeoPackageError):
    def __init__(self, processed: int):
        self.processed = processed
        super().__init__(f"Bulk insert cancelled after {processed} features")


class GeoPackageFileNotFound(GeoPackageError, FileNotFoundError):
    def __init__(self, path: object):
        self.path = path
        super().__init__(f"GeoPackage file not found: {path}")


class StorageEngineError(GeoPackageError):
    """Wraps an error raised by the underlying SQLite engine"""
