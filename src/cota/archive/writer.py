"""ArchiveWriter: build a single-file tile archive.

Layout:
  [header 127B][root dir][metadata][leaf dirs][tile data]

Tiles are appended in ascending tile_id order and spooled to a temporary file;
directories are only known at finalize(), when the whole entry list exists.

Deduplication:
  - identical contents (sha256) are stored once and share (offset, length)
  - consecutive tile ids with the same content collapse into one run
"""

from __future__ import annotations

import hashlib
import json
import shutil
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, BinaryIO

from cota.build_spec import BuildSpecV1
from cota.core.compression import compress
from cota.core.entries import TileEntry
from cota.core.header import HEADER_FIELDS, HEADER_LEN, Header, serialize_header
from cota.core.varint import U32_MAX
from cota.engine.tree import optimize_directories
from cota.errors import UsageError

# Filled by finalize(), never by the caller.
MANAGED_FIELDS: frozenset[str] = frozenset(
    {
        "root_offset",
        "root_length",
        "metadata_offset",
        "metadata_length",
        "leaf_directory_offset",
        "leaf_directory_length",
        "tile_data_offset",
        "tile_data_length",
        "addressed_tiles_count",
        "tile_entries_count",
        "tile_contents_count",
        "clustered",
        "internal_compression",
    }
)


class ArchiveWriter:
    def __init__(self, path: Path, *, spec: BuildSpecV1 | None = None):
        self.path = Path(path)
        self.spec = spec or BuildSpecV1()
        self._spool: BinaryIO = tempfile.TemporaryFile()
        self._data_len = 0
        self._entries: list[TileEntry] = []
        self._by_digest: dict[bytes, tuple[int, int]] = {}
        self._addressed = 0
        self._last_id: int | None = None
        self._closed = False

    @property
    def entries(self) -> list[TileEntry]:
        return list(self._entries)

    def write_tile(self, tile_id: int, data: bytes) -> TileEntry:
        if self._closed:
            raise ValueError("ArchiveWriter: write_tile su writer chiuso")
        tile_id = int(tile_id)
        if tile_id < 0:
            raise ValueError(f"ArchiveWriter: tile_id negativo: {tile_id}")
        if self._last_id is not None and tile_id <= self._last_id:
            raise ValueError(
                f"ArchiveWriter: tile_id non crescente: {tile_id} dopo {self._last_id}"
            )
        blob = bytes(data)
        if len(blob) > U32_MAX:
            raise ValueError(f"ArchiveWriter: tile troppo grande: {len(blob)} bytes")

        digest = hashlib.sha256(blob).digest()
        loc = self._by_digest.get(digest)
        if loc is None:
            loc = (self._data_len, len(blob))
            self._spool.write(blob)
            self._data_len += len(blob)
            self._by_digest[digest] = loc

        last = self._entries[-1] if self._entries else None
        if (
            last is not None
            and tile_id == last.tile_id + last.run_length
            and (last.offset, last.length) == loc
            and last.run_length < U32_MAX
        ):
            ent = replace(last, run_length=last.run_length + 1)
            self._entries[-1] = ent
        else:
            ent = TileEntry(tile_id=tile_id, offset=loc[0], length=loc[1], run_length=1)
            self._entries.append(ent)

        self._addressed += 1
        self._last_id = tile_id
        return ent

    def finalize(self, *, metadata: bytes | None = None, **header_fields: Any) -> Header:
        """Write the archive and return its header.

        metadata: opaque bytes; None writes {"name": <build spec name>} as JSON,
        b"" writes no metadata section.
        header_fields: any Header field not in MANAGED_FIELDS (tile_type,
        zooms, bounds, center...). tile_type/tile_compression default to the
        build spec.
        """
        if self._closed:
            raise ValueError("ArchiveWriter: finalize su writer chiuso")
        unknown = sorted(set(header_fields) - set(HEADER_FIELDS))
        if unknown:
            raise UsageError(f"ArchiveWriter: campi header sconosciuti: {', '.join(unknown)}")
        managed = sorted(set(header_fields) & MANAGED_FIELDS)
        if managed:
            raise UsageError(f"ArchiveWriter: campi header gestiti dal writer: {', '.join(managed)}")

        spec = self.spec
        layout = optimize_directories(
            self._entries,
            spec.directory_target_size,
            compression=spec.internal_compression,
            jobs=spec.jobs,
        )
        if metadata is None:
            metadata = json.dumps({"name": spec.name}, separators=(",", ":")).encode("utf-8")
        meta = compress(metadata, spec.internal_compression) if metadata else b""

        root_offset = HEADER_LEN
        metadata_offset = root_offset + len(layout.root)
        leaf_offset = metadata_offset + len(meta)
        tile_data_offset = leaf_offset + len(layout.leaves)

        fields: dict[str, Any] = {
            "tile_compression": spec.tile_compression,
            "tile_type": spec.tile_type,
        }
        fields.update(header_fields)
        header = Header(
            root_offset=root_offset,
            root_length=len(layout.root),
            metadata_offset=metadata_offset,
            metadata_length=len(meta),
            leaf_directory_offset=leaf_offset,
            leaf_directory_length=len(layout.leaves),
            tile_data_offset=tile_data_offset,
            tile_data_length=self._data_len,
            addressed_tiles_count=self._addressed,
            tile_entries_count=len(self._entries),
            tile_contents_count=len(self._by_digest),
            clustered=True,
            internal_compression=spec.internal_compression,
            **fields,
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        # path only ever holds a complete archive
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with tmp_path.open("wb") as f:
                f.write(serialize_header(header))
                f.write(layout.root)
                f.write(meta)
                f.write(layout.leaves)
                self._spool.seek(0)
                shutil.copyfileobj(self._spool, f)
            tmp_path.replace(self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        self._close_spool()
        return header

    def abort(self) -> None:
        """Drop spooled tiles without writing anything."""
        self._close_spool()

    def _close_spool(self) -> None:
        if self._closed:
            return
        self._spool.close()
        self._closed = True

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # No implicit finalize: header fields (zooms, bounds) must come from the caller.
        self.abort()
