"""Archive header: fixed 127-byte record at offset 0.

Layout (little endian, no padding):
  magic                  7B  b"PMTiles"
  version                u8  3
  root_offset/length     u64 u64
  metadata_offset/length u64 u64
  leaf_dir_offset/length u64 u64
  tile_data_offset/length u64 u64
  addressed_tiles_count  u64
  tile_entries_count     u64
  tile_contents_count    u64
  clustered              u8 (0/1)
  internal_compression   u8
  tile_compression       u8
  tile_type              u8
  min_zoom, max_zoom     u8 u8
  min_lon/min_lat/max_lon/max_lat  i32 x4 (degrees * 1e7)
  center_zoom            u8
  center_lon/center_lat  i32 x2 (degrees * 1e7)

This is a wire format read by independent readers: field order and width
are frozen.
"""

from __future__ import annotations

import struct
from dataclasses import asdict, dataclass, fields
from enum import IntEnum
from typing import Any, BinaryIO

from cota.errors import BadMagic, MalformedHeader, UnsupportedVersion

MAGIC = b"PMTiles"
VERSION = 3

_HEADER_STRUCT = struct.Struct("<7sB11Q6B4iB2i")
HEADER_LEN = _HEADER_STRUCT.size  # 127

E7 = 10_000_000


class Compression(IntEnum):
    UNKNOWN = 0
    NONE = 1
    GZIP = 2
    BROTLI = 3
    ZSTD = 4


class TileType(IntEnum):
    UNKNOWN = 0
    MVT = 1
    PNG = 2
    JPEG = 3
    WEBP = 4
    AVIF = 5


def to_e7(degrees: float) -> int:
    """Decimal degrees -> fixed point i32 (x 1e7)."""
    return int(round(float(degrees) * E7))


def from_e7(value: int) -> float:
    return int(value) / E7


@dataclass(frozen=True)
class Header:
    root_offset: int = 0
    root_length: int = 0
    metadata_offset: int = 0
    metadata_length: int = 0
    leaf_directory_offset: int = 0
    leaf_directory_length: int = 0
    tile_data_offset: int = 0
    tile_data_length: int = 0
    addressed_tiles_count: int = 0
    tile_entries_count: int = 0
    tile_contents_count: int = 0
    clustered: bool = False
    internal_compression: Compression = Compression.NONE
    tile_compression: Compression = Compression.NONE
    tile_type: TileType = TileType.UNKNOWN
    min_zoom: int = 0
    max_zoom: int = 0
    min_lon_e7: int = 0
    min_lat_e7: int = 0
    max_lon_e7: int = 0
    max_lat_e7: int = 0
    center_zoom: int = 0
    center_lon_e7: int = 0
    center_lat_e7: int = 0

    def bounds(self) -> tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat) in decimal degrees."""
        return (
            from_e7(self.min_lon_e7),
            from_e7(self.min_lat_e7),
            from_e7(self.max_lon_e7),
            from_e7(self.max_lat_e7),
        )

    def center(self) -> tuple[float, float, int]:
        """(lon, lat, zoom)."""
        return (from_e7(self.center_lon_e7), from_e7(self.center_lat_e7), int(self.center_zoom))

    def to_dict(self) -> dict[str, Any]:
        # Keep key order stable (field order)
        d = asdict(self)
        for k in ("internal_compression", "tile_compression", "tile_type"):
            d[k] = getattr(self, k).name.lower()
        return d


HEADER_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(Header))


def serialize_header(header: Header) -> bytes:
    try:
        return _HEADER_STRUCT.pack(
            MAGIC,
            VERSION,
            header.root_offset,
            header.root_length,
            header.metadata_offset,
            header.metadata_length,
            header.leaf_directory_offset,
            header.leaf_directory_length,
            header.tile_data_offset,
            header.tile_data_length,
            header.addressed_tiles_count,
            header.tile_entries_count,
            header.tile_contents_count,
            1 if header.clustered else 0,
            int(header.internal_compression),
            int(header.tile_compression),
            int(header.tile_type),
            header.min_zoom,
            header.max_zoom,
            header.min_lon_e7,
            header.min_lat_e7,
            header.max_lon_e7,
            header.max_lat_e7,
            header.center_zoom,
            header.center_lon_e7,
            header.center_lat_e7,
        )
    except struct.error as e:
        raise ValueError(f"header: campo fuori range: {e}") from e


def _enum(cls: type[IntEnum], code: int, name: str) -> Any:
    try:
        return cls(code)
    except ValueError:
        raise MalformedHeader(f"header: {name} sconosciuto: {code}") from None


def deserialize_header(data: bytes | bytearray | memoryview | BinaryIO) -> Header:
    """Parse the fixed header record.

    `data` may be a bytes-like object (only the first 127 bytes are used) or a
    binary file-like object positioned at the header.
    """
    if hasattr(data, "read"):
        buf = data.read(HEADER_LEN)  # type: ignore[union-attr]
    else:
        buf = bytes(data[:HEADER_LEN])  # type: ignore[index]
    if len(buf) < HEADER_LEN:
        raise MalformedHeader(f"header troncato: {len(buf)} bytes (attesi {HEADER_LEN})")

    raw = _HEADER_STRUCT.unpack(buf)
    if raw[0] != MAGIC:
        raise BadMagic("header: magic non valido")
    if raw[1] != VERSION:
        raise UnsupportedVersion(f"header: version non supportata: {raw[1]}")

    clustered = raw[13]
    if clustered not in (0, 1):
        raise MalformedHeader(f"header: clustered non booleano: {clustered}")

    return Header(
        root_offset=raw[2],
        root_length=raw[3],
        metadata_offset=raw[4],
        metadata_length=raw[5],
        leaf_directory_offset=raw[6],
        leaf_directory_length=raw[7],
        tile_data_offset=raw[8],
        tile_data_length=raw[9],
        addressed_tiles_count=raw[10],
        tile_entries_count=raw[11],
        tile_contents_count=raw[12],
        clustered=bool(clustered),
        internal_compression=_enum(Compression, raw[14], "internal_compression"),
        tile_compression=_enum(Compression, raw[15], "tile_compression"),
        tile_type=_enum(TileType, raw[16], "tile_type"),
        min_zoom=raw[17],
        max_zoom=raw[18],
        min_lon_e7=raw[19],
        min_lat_e7=raw[20],
        max_lon_e7=raw[21],
        max_lat_e7=raw[22],
        center_zoom=raw[23],
        center_lon_e7=raw[24],
        center_lat_e7=raw[25],
    )
