"""Resolve tile ids to byte ranges.

The root directory is decoded once at construction. Leaves are fetched on
demand and not cached: caching belongs to the caller, keyed by
(offset, length) of the directory.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import NamedTuple

from cota.archive.source import FileSource, RangeSource
from cota.core.compression import decompress
from cota.core.entries import TileEntry, deserialize_entries
from cota.core.header import HEADER_LEN, Header, deserialize_header
from cota.core.search import LeafHit, TileHit, lookup
from cota.errors import MalformedEntries

# root + up to three levels of leaves
MAX_DIRECTORY_DEPTH = 4


class TileRange(NamedTuple):
    """Absolute byte range of a tile inside the archive."""

    offset: int
    length: int


class ArchiveResolver:
    def __init__(self, source: RangeSource):
        self.source = source
        self._header = deserialize_header(source.read(0, HEADER_LEN))
        self._root = self._read_directory(self._header.root_offset, self._header.root_length)

    @classmethod
    def open(cls, path: Path) -> "ArchiveResolver":
        src = FileSource(path)
        try:
            return cls(src)
        except Exception:
            src.close()
            raise

    @property
    def header(self) -> Header:
        return self._header

    @property
    def root_entries(self) -> list[TileEntry]:
        return list(self._root)

    def _read_directory(self, offset: int, length: int) -> list[TileEntry]:
        raw = self.source.read(offset, length)
        return deserialize_entries(decompress(raw, self._header.internal_compression))

    def read_leaf(self, offset: int, length: int) -> list[TileEntry]:
        """Decode the leaf directory at (offset, length) relative to the leaf section."""
        return self._read_directory(self._header.leaf_directory_offset + offset, length)

    def resolve(self, tile_id: int) -> TileRange | None:
        """Return the absolute (offset, length) of `tile_id`, or None if not addressed."""
        entries = self._root
        for _ in range(MAX_DIRECTORY_DEPTH):
            hit = lookup(entries, tile_id)
            if isinstance(hit, TileHit):
                return TileRange(self._header.tile_data_offset + hit.offset, hit.length)
            if isinstance(hit, LeafHit):
                entries = self.read_leaf(hit.offset, hit.length)
                continue
            return None
        raise MalformedEntries(
            f"directory annidate oltre {MAX_DIRECTORY_DEPTH} livelli (tile_id={tile_id})"
        )

    def read_metadata(self) -> bytes:
        """Metadata section, decompressed. Content is opaque to this layer."""
        h = self._header
        if h.metadata_length == 0:
            return b""
        raw = self.source.read(h.metadata_offset, h.metadata_length)
        return decompress(raw, h.internal_compression)

    def iter_entries(self) -> Iterator[TileEntry]:
        """All tile entries (no pointers), in directory order."""
        yield from self._walk(self._root, 1)

    def _walk(self, entries: list[TileEntry], depth: int) -> Iterator[TileEntry]:
        for e in entries:
            if not e.is_leaf_pointer:
                yield e
                continue
            if depth >= MAX_DIRECTORY_DEPTH:
                raise MalformedEntries(f"directory annidate oltre {MAX_DIRECTORY_DEPTH} livelli")
            yield from self._walk(self.read_leaf(e.offset, e.length), depth + 1)

    def close(self) -> None:
        close = getattr(self.source, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "ArchiveResolver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
