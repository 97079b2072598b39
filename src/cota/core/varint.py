from __future__ import annotations

U32_MAX = 0xFFFFFFFF
U64_MAX = 0xFFFFFFFFFFFFFFFF


def enc_varint(x: int) -> bytes:
    """Unsigned LEB128."""
    if x < 0:
        raise ValueError("varint negativo non supportato")
    out = bytearray()
    while True:
        b = x & 0x7F
        x >>= 7
        if x:
            out.append(0x80 | b)
        else:
            out.append(b)
            break
    return bytes(out)


def dec_varint(buf: bytes, idx: int) -> tuple[int, int]:
    """Unsigned LEB128 decode. Returns (value, next_idx)."""
    shift = 0
    x = 0
    while True:
        if idx >= len(buf):
            raise ValueError("varint troncato")
        b = buf[idx]
        idx += 1
        x |= (b & 0x7F) << shift
        if (b & 0x80) == 0:
            break
        shift += 7
        if shift > 63:
            raise ValueError("varint troppo grande")
    if x > U64_MAX:
        raise ValueError("varint troppo grande")
    return x, idx
