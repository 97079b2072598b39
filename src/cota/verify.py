"""Archive verification.

Checks, light mode (directories only):
  - header decodes (magic/version/enums)
  - every directory decodes, nesting depth bounded
  - tile ids strictly increasing over the whole traversal, runs not overlapping
  - leaf contents stay inside the id range of their pointer
  - tile entries inside the tile-data section, pointers inside the leaf section
  - clustered archives: new contents appear in offset order, back to back
  - addressed_tiles_count / tile_entries_count match the header

full=True also reads every distinct tile content and checks tile_contents_count.

Policy: light by default, full reads tile bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cota.archive.resolver import MAX_DIRECTORY_DEPTH, ArchiveResolver
from cota.archive.source import FileSource, RangeSource
from cota.core.entries import TileEntry
from cota.core.header import Header
from cota.errors import InconsistentArchive


@dataclass(frozen=True)
class VerifyReport:
    header: Header
    directories: int
    max_depth: int
    tile_entries: int
    addressed_tiles: int
    tile_contents: int | None  # only with full=True


class _Walker:
    def __init__(self, rd: ArchiveResolver):
        self.rd = rd
        self.h = rd.header
        self.directories = 1
        self.max_depth = 1
        self.tile_entries = 0
        self.addressed = 0
        self.last_end: int | None = None  # tile_id + run_length of the previous tile entry
        self.contents: set[tuple[int, int]] = set()
        self.next_offset = 0  # clustered: expected offset of the next new content

    def walk(self, entries: list[TileEntry], depth: int, lo: int, hi: int | None) -> None:
        self.max_depth = max(self.max_depth, depth)
        prev_id: int | None = None
        for i, e in enumerate(entries):
            if prev_id is not None and e.tile_id <= prev_id:
                raise InconsistentArchive(f"tile_id non crescente: {e.tile_id} dopo {prev_id}")
            prev_id = e.tile_id
            if e.tile_id < lo or (hi is not None and e.tile_id >= hi):
                raise InconsistentArchive(
                    f"tile_id={e.tile_id} fuori dal range della leaf [{lo}, {hi})"
                )

            if e.is_leaf_pointer:
                if depth >= MAX_DIRECTORY_DEPTH:
                    raise InconsistentArchive(
                        f"directory annidate oltre {MAX_DIRECTORY_DEPTH} livelli"
                    )
                if e.offset + e.length > self.h.leaf_directory_length:
                    raise InconsistentArchive(
                        f"leaf pointer fuori sezione: offset={e.offset} length={e.length}"
                    )
                child_hi = entries[i + 1].tile_id if i + 1 < len(entries) else hi
                self.directories += 1
                self.walk(self.rd.read_leaf(e.offset, e.length), depth + 1, e.tile_id, child_hi)
                continue

            self._tile(e)

    def _tile(self, e: TileEntry) -> None:
        if self.last_end is not None and e.tile_id < self.last_end:
            raise InconsistentArchive(f"run sovrapposti: tile_id={e.tile_id} < {self.last_end}")
        self.last_end = e.tile_id + e.run_length
        if e.offset + e.length > self.h.tile_data_length:
            raise InconsistentArchive(
                f"tile fuori sezione: tile_id={e.tile_id} offset={e.offset} length={e.length}"
            )

        key = (e.offset, e.length)
        if key not in self.contents:
            if self.h.clustered:
                if e.offset != self.next_offset:
                    raise InconsistentArchive(
                        f"archivio clustered ma offset fuori ordine: tile_id={e.tile_id} "
                        f"offset={e.offset} atteso={self.next_offset}"
                    )
                self.next_offset += e.length
            self.contents.add(key)

        self.tile_entries += 1
        self.addressed += e.run_length


def verify_archive(source: RangeSource | Path, *, full: bool = False) -> VerifyReport:
    """Verify a whole archive. Raises a CotaError subclass on the first problem."""
    if isinstance(source, (str, Path)):
        with FileSource(Path(source)) as fs:
            return verify_archive(fs, full=full)

    rd = ArchiveResolver(source)
    h = rd.header
    w = _Walker(rd)
    w.walk(rd.root_entries, 1, 0, None)

    if w.addressed != h.addressed_tiles_count:
        raise InconsistentArchive(
            f"addressed_tiles_count: header={h.addressed_tiles_count} contati={w.addressed}"
        )
    if w.tile_entries != h.tile_entries_count:
        raise InconsistentArchive(
            f"tile_entries_count: header={h.tile_entries_count} contati={w.tile_entries}"
        )

    contents: int | None = None
    if full:
        for off, ln in sorted(w.contents):
            # short read -> ArchiveIOError
            source.read(h.tile_data_offset + off, ln)
        contents = len(w.contents)
        if contents != h.tile_contents_count:
            raise InconsistentArchive(
                f"tile_contents_count: header={h.tile_contents_count} contati={contents}"
            )

    return VerifyReport(
        header=h,
        directories=w.directories,
        max_depth=w.max_depth,
        tile_entries=w.tile_entries,
        addressed_tiles=w.addressed,
        tile_contents=contents,
    )
