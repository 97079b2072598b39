from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, Union

from cota.core.entries import TileEntry


@dataclass(frozen=True, slots=True)
class TileHit:
    """Tile found: offset is relative to the tile-data section."""

    offset: int
    length: int


@dataclass(frozen=True, slots=True)
class LeafHit:
    """Query delegated to a child directory: offset is relative to the leaf section."""

    offset: int
    length: int


class NotFound:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final[NotFound] = NotFound()

Lookup = Union[TileHit, LeafHit, NotFound]


def find_tile(entries: Sequence[TileEntry], tile_id: int) -> TileEntry | None:
    """Floor search over entries sorted by tile_id.

    Returns the responsible entry or None. A leaf pointer (run_length == 0) is
    returned whenever it is the floor entry: its upper bound is enforced by the
    child directory, not here.
    """
    i = bisect_right(entries, tile_id, key=lambda e: e.tile_id) - 1
    if i < 0:
        return None
    e = entries[i]
    if e.run_length == 0:
        return e
    if tile_id < e.tile_id + e.run_length:
        return e
    return None


def lookup(entries: Sequence[TileEntry], tile_id: int) -> Lookup:
    e = find_tile(entries, tile_id)
    if e is None:
        return NOT_FOUND
    if e.is_leaf_pointer:
        return LeafHit(offset=e.offset, length=e.length)
    return TileHit(offset=e.offset, length=e.length)
