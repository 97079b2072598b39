"""Directory tree builder: root + leaves.

Given the complete sorted entry list and a byte budget per directory, decide
whether a single root directory is enough or whether the entries must be split
into fixed-size leaf directories referenced by a root of pointer entries
(run_length == 0).

Leaf-size choice: a leaf size (entries per leaf) is usable when every leaf and
the root built on top of them fit the budget. Larger leaf size means fewer
leaves, i.e. fewer extra reads at query time. Fit is not monotone in the leaf
size (chunk boundaries move, and the first entry of every chunk pays its
absolute id and offset), so:

  1. binary search on "every leaf fits" gives a starting size
  2. the REFINE_WINDOW sizes above it, then the start itself, are checked
     directly, largest first
  3. if none is usable every other size in [1, n-1] is tried before giving up

ConfigurationError only when no leaf size is usable.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from itertools import chain
from typing import NamedTuple

from cota.core.compression import compress
from cota.core.entries import TileEntry, serialize_entries
from cota.core.header import Compression
from cota.errors import ConfigurationError

# Sizes above the binary-search start that are checked one by one.
REFINE_WINDOW = 16


class DirectoryLayout(NamedTuple):
    root: bytes
    leaves: bytes
    num_leaves: int


def _encode_dir(entries: Sequence[TileEntry], compression: Compression) -> bytes:
    return compress(serialize_entries(entries), compression)


def _chunks(entries: Sequence[TileEntry], leaf_size: int) -> list[Sequence[TileEntry]]:
    return [entries[i : i + leaf_size] for i in range(0, len(entries), leaf_size)]


def build_roots_leaves(
    entries: Sequence[TileEntry],
    leaf_size: int,
    *,
    compression: Compression = Compression.NONE,
    jobs: int = 1,
) -> DirectoryLayout:
    """Split entries in chunks of `leaf_size`, one leaf directory per chunk.

    Leaves are concatenated in ascending tile_id order; each root entry points
    at its leaf by (offset, length) inside the concatenated blob.
    """
    leaf_size = int(leaf_size)
    if leaf_size < 1:
        raise ConfigurationError(f"leaf_size deve essere >= 1, got {leaf_size}")

    chunks = _chunks(entries, leaf_size)
    jobs = max(1, int(jobs))
    if jobs > 1 and len(chunks) > 1:
        # map() keeps input order: write order stays deterministic
        with ThreadPoolExecutor(max_workers=jobs) as ex:
            leaves = list(ex.map(lambda c: _encode_dir(c, compression), chunks))
    else:
        leaves = [_encode_dir(c, compression) for c in chunks]

    root_entries: list[TileEntry] = []
    offset = 0
    for chunk, leaf in zip(chunks, leaves):
        root_entries.append(
            TileEntry(tile_id=chunk[0].tile_id, offset=offset, length=len(leaf), run_length=0)
        )
        offset += len(leaf)

    root = _encode_dir(root_entries, compression)
    return DirectoryLayout(root=root, leaves=b"".join(leaves), num_leaves=len(leaves))


def _leaves_fit(
    entries: Sequence[TileEntry], leaf_size: int, target_size: int, compression: Compression
) -> bool:
    for chunk in _chunks(entries, leaf_size):
        if len(_encode_dir(chunk, compression)) > target_size:
            return False
    return True


def _try_layout(
    entries: Sequence[TileEntry],
    leaf_size: int,
    target_size: int,
    compression: Compression,
    jobs: int,
) -> DirectoryLayout | None:
    if not _leaves_fit(entries, leaf_size, target_size, compression):
        return None
    layout = build_roots_leaves(entries, leaf_size, compression=compression, jobs=jobs)
    if len(layout.root) > target_size:
        return None
    return layout


def optimize_directories(
    entries: Sequence[TileEntry],
    target_size: int,
    *,
    compression: Compression = Compression.NONE,
    jobs: int = 1,
) -> DirectoryLayout:
    """Pack entries in the fewest directories that each fit `target_size` bytes.

    Returns DirectoryLayout(root, leaves, num_leaves); `leaves` is empty and
    `num_leaves` is 0 when everything fits in the root.
    """
    target_size = int(target_size)
    if target_size < 1:
        raise ConfigurationError(f"target_size deve essere >= 1, got {target_size}")

    root = _encode_dir(entries, compression)
    if len(root) <= target_size:
        return DirectoryLayout(root=root, leaves=b"", num_leaves=0)

    n = len(entries)

    # Starting point only: "every leaf fits" is not monotone in leaf_size.
    # lo == 0 means no size is known to fit.
    lo, hi = 0, n - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if _leaves_fit(entries, mid, target_size, compression):
            lo = mid
        else:
            hi = mid - 1

    top = min(n - 1, lo + REFINE_WINDOW)
    window = range(top, max(lo, 1) - 1, -1)
    rest = (s for s in range(n - 1, 0, -1) if s not in window)
    for leaf_size in chain(window, rest):
        layout = _try_layout(entries, leaf_size, target_size, compression, jobs)
        if layout is not None:
            return layout

    raise ConfigurationError(
        f"target_size={target_size} troppo piccolo: nessuna leaf size in [1, {n - 1}] "
        "con leaves e root entro il limite"
    )
