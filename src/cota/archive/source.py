"""Byte-range sources.

The resolver only needs `read(offset, length) -> bytes`. A short read is an
error, never a partial result.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import BinaryIO, Protocol

from cota.errors import ArchiveIOError


class RangeSource(Protocol):
    def read(self, offset: int, length: int) -> bytes: ...


def _check_range(offset: int, length: int) -> None:
    if offset < 0 or length < 0:
        raise ArchiveIOError(f"range non valido: offset={offset} length={length}")


class BytesSource:
    """In-memory archive (tests, archives fetched whole)."""

    def __init__(self, data: bytes):
        self._data = bytes(data)

    def __len__(self) -> int:
        return len(self._data)

    def read(self, offset: int, length: int) -> bytes:
        _check_range(offset, length)
        blob = self._data[offset : offset + length]
        if len(blob) != length:
            raise ArchiveIOError(
                f"lettura corta: offset={offset} length={length} got={len(blob)}"
            )
        return blob


class FileSource:
    """Local file. Reads are serialized so one source can serve many threads."""

    def __init__(self, path: Path):
        self.path = Path(path)
        try:
            self._fp: BinaryIO = self.path.open("rb")
        except OSError as e:
            raise ArchiveIOError(f"apertura fallita: {self.path}: {e}") from e
        self._lock = threading.Lock()

    def read(self, offset: int, length: int) -> bytes:
        _check_range(offset, length)
        with self._lock:
            try:
                self._fp.seek(int(offset))
                blob = self._fp.read(int(length))
            except (OSError, ValueError) as e:
                raise ArchiveIOError(f"lettura fallita: {self.path}: {e}") from e
        if len(blob) != int(length):
            raise ArchiveIOError(
                f"lettura corta: {self.path} offset={offset} length={length} got={len(blob)}"
            )
        return blob

    def close(self) -> None:
        self._fp.close()

    def __enter__(self) -> "FileSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
