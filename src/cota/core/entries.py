"""Directory entry codec.

Wire layout (all values unsigned LEB128):

  count
  tile_id[0], tile_id[1]-tile_id[0], ...      (delta encoded)
  run_length[0..count)
  length[0..count)
  offset[0..count)                            (0 = previous.offset + previous.length,
                                               otherwise offset + 1)

The blob is not self-delimiting: its length is stored by whoever points at it
(header or parent directory).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import BinaryIO

from cota.core.varint import U32_MAX, U64_MAX, dec_varint, enc_varint
from cota.errors import MalformedEntries

# tile_id + run_length + length + offset: at least one byte each
_MIN_ENTRY_BYTES = 4


@dataclass(frozen=True, slots=True)
class TileEntry:
    tile_id: int
    offset: int
    length: int
    run_length: int

    @property
    def is_leaf_pointer(self) -> bool:
        return self.run_length == 0


def serialize_entries(entries: Sequence[TileEntry]) -> bytes:
    out = bytearray()
    out += enc_varint(len(entries))

    last_id = 0
    for i, e in enumerate(entries):
        if not (0 <= e.tile_id <= U64_MAX):
            raise ValueError(f"entries: tile_id fuori range u64: {e.tile_id}")
        if i > 0 and e.tile_id <= last_id:
            raise ValueError(f"entries: tile_id non crescente: {e.tile_id} dopo {last_id}")
        out += enc_varint(e.tile_id - last_id)
        last_id = e.tile_id

    for e in entries:
        if not (0 <= e.run_length <= U32_MAX):
            raise ValueError(f"entries: run_length fuori range u32: {e.run_length}")
        out += enc_varint(e.run_length)

    for e in entries:
        if not (0 <= e.length <= U32_MAX):
            raise ValueError(f"entries: length fuori range u32: {e.length}")
        out += enc_varint(e.length)

    prev: TileEntry | None = None
    for e in entries:
        if not (0 <= e.offset < U64_MAX):
            raise ValueError(f"entries: offset fuori range: {e.offset}")
        if prev is not None and e.offset == prev.offset + prev.length:
            out.append(0)
        else:
            out += enc_varint(e.offset + 1)
        prev = e

    return bytes(out)


def _read_all(data: bytes | bytearray | memoryview | BinaryIO) -> bytes:
    if hasattr(data, "read"):
        return bytes(data.read())  # type: ignore[union-attr]
    return bytes(data)  # type: ignore[arg-type]


def deserialize_entries(data: bytes | bytearray | memoryview | BinaryIO) -> list[TileEntry]:
    """Inverse of serialize_entries.

    Raises MalformedEntries on truncation, impossible counts, trailing bytes or
    out-of-range values. Never returns a partial list.
    """
    buf = _read_all(data)
    try:
        n, idx = dec_varint(buf, 0)
        if n * _MIN_ENTRY_BYTES > len(buf) - idx:
            raise MalformedEntries(
                f"entries: count={n} incompatibile con {len(buf) - idx} bytes residui"
            )

        tile_ids: list[int] = []
        last_id = 0
        for _ in range(n):
            delta, idx = dec_varint(buf, idx)
            last_id += delta
            if last_id > U64_MAX:
                raise MalformedEntries("entries: tile_id oltre u64")
            tile_ids.append(last_id)

        run_lengths: list[int] = []
        for _ in range(n):
            v, idx = dec_varint(buf, idx)
            if v > U32_MAX:
                raise MalformedEntries(f"entries: run_length oltre u32: {v}")
            run_lengths.append(v)

        lengths: list[int] = []
        for _ in range(n):
            v, idx = dec_varint(buf, idx)
            if v > U32_MAX:
                raise MalformedEntries(f"entries: length oltre u32: {v}")
            lengths.append(v)

        out: list[TileEntry] = []
        for i in range(n):
            v, idx = dec_varint(buf, idx)
            if v == 0:
                if i == 0:
                    raise MalformedEntries("entries: offset relativo sulla prima entry")
                prev = out[-1]
                offset = prev.offset + prev.length
            else:
                offset = v - 1
            if offset > U64_MAX:
                raise MalformedEntries("entries: offset oltre u64")
            out.append(
                TileEntry(
                    tile_id=tile_ids[i],
                    offset=offset,
                    length=lengths[i],
                    run_length=run_lengths[i],
                )
            )
    except ValueError as e:
        # varint troncato / troppo grande
        raise MalformedEntries(f"entries: {e}") from e

    if idx != len(buf):
        raise MalformedEntries(f"entries: {len(buf) - idx} bytes residui dopo {n} entries")
    return out
