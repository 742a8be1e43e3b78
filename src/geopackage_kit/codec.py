"""
GeoPackage binary geometry codec.

A GeoPackage geometry blob is a small header followed by standard WKB:

    offset  size  content
    0       2     magic 'GP'
    2       1     version (0)
    3       1     flags; bits 1-3 hold the envelope indicator
    4       4     srs_id, little-endian int32
    8       0-64  optional envelope (doubles)
    ...           WKB body

Blobs are always written without an envelope. Blobs written by other tools
may carry one; it is skipped when decoding.
"""

import struct
from dataclasses import dataclass

from shapely import wkb as shapely_wkb
from shapely.geometry.base import BaseGeometry

from .exceptions import MalformedBlob

HEADER_SIZE = 8


@dataclass(frozen=True)
class GeoPackageHeader:
    """
    Decoded blob header.

    Attributes:
        version: Header version byte
        flags: Raw flags byte
        srid: Spatial reference id stored in the header
        envelope: Envelope values (min_x, max_x, min_y, max_y[, ...]) if the
            blob carries one, else None
        header_size: Number of bytes before the WKB body
    """

    version: int
    flags: int
    srid: int
    envelope: tuple[float, ...] | None
    header_size: int


class GeoPackageBlobCodec:
    """
    Converts between WKB and GeoPackage geometry blobs.

    Example:
        >>> codec = GeoPackageBlobCodec()
        >>> blob = codec.encode(b"\\x01\\x01\\x00\\x00\\x00" + bytes(16), 3006)
        >>> blob[:4]
        b'GP\\x00\\x00'
    """

    MAGIC = b"GP"
    VERSION = 0x00
    # Flags written on encode: no envelope, not empty
    FLAGS = 0x00

    # Envelope indicator (flags bits 1-3) -> envelope size in bytes
    ENVELOPE_SIZES = {0: 0, 1: 32, 2: 48, 3: 64}

    @staticmethod
    def envelope_indicator(flags: int) -> int:
        return (flags >> 1) & 0x07

    def envelope_size(self, flags: int) -> int:
        indicator = self.envelope_indicator(flags)
        try:
            return self.ENVELOPE_SIZES[indicator]
        except KeyError:
            raise MalformedBlob(
                f"Invalid envelope indicator ({indicator}) in GeoPackage header"
            ) from None

    def encode(self, wkb: bytes, srid: int) -> bytes:
        """
        Wrap WKB bytes in a GeoPackage header.

        Args:
            wkb: Well-known binary geometry
            srid: Spatial reference id to store in the header

        Returns:
            The GeoPackage blob (8-byte header + WKB)
        """
        header = self.MAGIC + bytes((self.VERSION, self.FLAGS))
        return header + struct.pack("<i", srid) + bytes(wkb)

    def read_header(self, blob: bytes) -> GeoPackageHeader:
        """
        Parse the blob header, including the envelope when present.

        Raises:
            MalformedBlob: If the blob is too short for its header or the
                envelope indicator is out of range
        """
        if len(blob) < HEADER_SIZE:
            raise MalformedBlob(
                f"Invalid GeoPackage geometry header: blob too short ({len(blob)} bytes)"
            )

        version = blob[2]
        flags = blob[3]
        envelope_bytes = self.envelope_size(flags)
        header_size = HEADER_SIZE + envelope_bytes
        if len(blob) < header_size:
            raise MalformedBlob("Incomplete GeoPackage geometry header")

        (srid,) = struct.unpack("<i", blob[4:8])

        envelope = None
        if envelope_bytes:
            # Flags bit 0 gives the envelope byte order (1 = little-endian)
            byte_order = "<" if flags & 0x01 else ">"
            count = envelope_bytes // 8
            envelope = struct.unpack(
                f"{byte_order}{count}d", blob[HEADER_SIZE:header_size]
            )

        return GeoPackageHeader(
            version=version,
            flags=flags,
            srid=srid,
            envelope=envelope,
            header_size=header_size,
        )

    def decode(self, blob: bytes) -> bytes:
        """
        Strip the GeoPackage header (and any envelope) from a blob.

        Args:
            blob: GeoPackage geometry blob

        Returns:
            The WKB body

        Raises:
            MalformedBlob: If the header is invalid
        """
        if len(blob) < HEADER_SIZE:
            raise MalformedBlob(
                f"Invalid GeoPackage geometry header: blob too short ({len(blob)} bytes)"
            )
        header_size = HEADER_SIZE + self.envelope_size(blob[3])
        if len(blob) < header_size:
            raise MalformedBlob("Incomplete GeoPackage geometry header")
        return bytes(blob[header_size:])

    def read_srid(self, blob: bytes) -> int:
        return self.read_header(blob).srid


_codec = GeoPackageBlobCodec()


def encode(wkb: bytes, srid: int) -> bytes:
    """Module-level shortcut for GeoPackageBlobCodec().encode"""
    return _codec.encode(wkb, srid)


def decode(blob: bytes) -> bytes:
    """Module-level shortcut for GeoPackageBlobCodec().decode"""
    return _codec.decode(blob)


def read_header(blob: bytes) -> GeoPackageHeader:
    return _codec.read_header(blob)


def encode_geometry(geom: BaseGeometry, srid: int) -> bytes:
    """
    Serialize a shapely geometry into a GeoPackage blob.

    Example:
        >>> from shapely.geometry import Point
        >>> blob = encode_geometry(Point(10, 20), 4326)
        >>> decode_geometry(blob).wkt
        'POINT (10 20)'
    """
    # ISO WKB, little-endian, X/Y only
    return _codec.encode(shapely_wkb.dumps(geom, output_dimension=2, byte_order=1), srid)


def decode_geometry(blob: bytes) -> BaseGeometry:
    """
    Parse a GeoPackage blob into a shapely geometry.

    Raises:
        MalformedBlob: If the header is invalid
        shapely.errors.GEOSException: If the WKB body cannot be parsed
    """
    return shapely_wkb.loads(_codec.decode(blob))
