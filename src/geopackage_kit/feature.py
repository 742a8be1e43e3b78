"""The Feature value type exchanged with callers on reads and writes."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class Feature:
    """
    A feature (row) of a layer.

    Attributes:
        geometry: The feature's shapely geometry, or None
        attributes: Attribute values keyed by column name, in column order.
            Values are strings; None stands for SQL NULL.

    Example:
        >>> from shapely.geometry import Point
        >>> f = Feature(Point(674188, 6580251), {"name": "Stockholm"})
        >>> f["name"]
        'Stockholm'
    """

    geometry: BaseGeometry | None
    attributes: Mapping[str, str | None] = field(default_factory=lambda: {})

    def __post_init__(self) -> None:
        # Freeze a private copy so later changes to the caller's dict don't leak in
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def __getitem__(self, key: str) -> str | None:
        """Allow dict-like access to attributes"""
        return self.attributes[key]

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get attribute with default"""
        return self.attributes.get(key, default)
