"""
Geometry type tags and bounding boxes.

Geometry objects themselves come from shapely; this module only knows the
flat OGC type names a layer can be declared with and how they relate.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import IntEnum

from shapely.geometry.base import BaseGeometry

from .exceptions import GeometryTypeMismatch


class GeometryType(IntEnum):
    """OGC geometry type codes as used in WKB"""

    GEOMETRY = 0
    POINT = 1
    LINESTRING = 2
    POLYGON = 3
    MULTIPOINT = 4
    MULTILINESTRING = 5
    MULTIPOLYGON = 6
    GEOMETRYCOLLECTION = 7

    @classmethod
    def parse(cls, name: str) -> "GeometryType":
        """Look up a type tag by name (case-insensitive)"""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown geometry type: {name!r}") from None


# Multi* tags also accept their singular form
_MULTI_ACCEPTS = {
    "MULTIPOINT": ("POINT", "MULTIPOINT"),
    "MULTILINESTRING": ("LINESTRING", "MULTILINESTRING"),
    "MULTIPOLYGON": ("POLYGON", "MULTIPOLYGON"),
}


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned extent of a layer or geometry"""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __iter__(self) -> Iterator[float]:
        return iter((self.min_x, self.min_y, self.max_x, self.max_y))

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    def buffered(self, percent: float, minimum: float) -> "BoundingBox":
        """
        Grow the box on every side.

        The margin is ``percent`` of the width (height) but never less than
        ``minimum`` map units, so a single point still gets a visible box.
        """
        buffer_x = max(self.width * percent / 100.0, minimum)
        buffer_y = max(self.height * percent / 100.0, minimum)
        return BoundingBox(
            self.min_x - buffer_x,
            self.min_y - buffer_y,
            self.max_x + buffer_x,
            self.max_y + buffer_y,
        )

    @classmethod
    def of(cls, geom: BaseGeometry) -> "BoundingBox":
        min_x, min_y, max_x, max_y = geom.bounds
        return cls(min_x, min_y, max_x, max_y)


def geometry_type_name(geom: BaseGeometry) -> str:
    """Upper-case OGC type name of a shapely geometry, e.g. 'MULTIPOINT'"""
    return geom.geom_type.upper()


def is_geometry_type_compatible(
    geom: BaseGeometry | None, declared_type: str | None
) -> bool:
    """
    Check whether a geometry may be stored in a layer of the declared type.

    GEOMETRY accepts anything, a Multi* type accepts its singular form too,
    and every other type only accepts itself.

    Example:
        >>> from shapely.geometry import Point
        >>> is_geometry_type_compatible(Point(0, 0), "MULTIPOINT")
        True
        >>> is_geometry_type_compatible(Point(0, 0), "LINESTRING")
        False
    """
    if geom is None or not declared_type:
        return True

    declared = declared_type.upper()
    if declared in ("GEOMETRY", "GEOMETRYCOLLECTION"):
        return True

    actual = geometry_type_name(geom)
    if actual == declared:
        return True

    return actual in _MULTI_ACCEPTS.get(declared, ())


def validate_geometry_type(
    geom: BaseGeometry | None, declared_type: str | None, layer: str
) -> None:
    """Raise GeometryTypeMismatch if the geometry does not fit the layer"""
    if not is_geometry_type_compatible(geom, declared_type):
        assert geom is not None and declared_type is not None
        raise GeometryTypeMismatch(layer, declared_type, geom.geom_type)
