"""Internal compression for directories and metadata.

Only the codecs named by the header's `internal_compression` tag. Tile bodies
are never touched here.
"""

from __future__ import annotations

import gzip

from cota.core.header import Compression
from cota.errors import CorruptPayload, UnsupportedCompression

try:
    import zstandard as zstd  # type: ignore
except Exception:  # pragma: no cover
    zstd = None

try:
    import brotli  # type: ignore
except Exception:  # pragma: no cover
    brotli = None

ZSTD_LEVEL = 19
BROTLI_QUALITY = 11


def _require(mod: object, name: str) -> None:
    if mod is None:
        raise UnsupportedCompression(
            f"Modulo '{name}' non disponibile. Installa con: python3 -m pip install {name}"
        )


def compress(data: bytes, compression: Compression) -> bytes:
    c = Compression(compression)
    if c == Compression.NONE:
        return bytes(data)
    if c == Compression.GZIP:
        # mtime=0: same input, same bytes
        return gzip.compress(bytes(data), compresslevel=9, mtime=0)
    if c == Compression.BROTLI:
        _require(brotli, "brotli")
        return brotli.compress(bytes(data), quality=BROTLI_QUALITY)
    if c == Compression.ZSTD:
        _require(zstd, "zstandard")
        return zstd.ZstdCompressor(level=ZSTD_LEVEL).compress(bytes(data))
    raise UnsupportedCompression(f"compressione non supportata: {c.name.lower()}")


def decompress(data: bytes, compression: Compression) -> bytes:
    c = Compression(compression)
    if c == Compression.NONE:
        return bytes(data)
    try:
        if c == Compression.GZIP:
            return gzip.decompress(bytes(data))
        if c == Compression.BROTLI:
            _require(brotli, "brotli")
            return brotli.decompress(bytes(data))
        if c == Compression.ZSTD:
            _require(zstd, "zstandard")
            # one-shot: a truncated frame is an error, not a short result
            return zstd.ZstdDecompressor().decompress(bytes(data))
    except UnsupportedCompression:
        raise
    except Exception as e:
        # BadGzipFile/zlib.error/EOFError, brotli.error, zstd.ZstdError
        raise CorruptPayload(f"{c.name.lower()}: payload corrotto: {e}") from e
    raise UnsupportedCompression(f"compressione non supportata: {c.name.lower()}")
