"""Build spec (v1) for COTA archives.

Goal: make archive builds reproducible (same spec + same tiles = same bytes).

This module intentionally stays *small* and strict:
  - JSON only
  - explicit schema id
  - unknown keys are rejected
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cota.core.header import HEADER_LEN, Compression, TileType
from cota.errors import BuildSpecError

SPEC_ID_V1 = "cota.build.v1"

# header + root must fit the first 16 KiB of the archive
DEFAULT_DIRECTORY_TARGET_SIZE = 16384 - HEADER_LEN


def _load_json_arg(spec_arg: str) -> dict[str, Any]:
    s = spec_arg.strip()
    if not s:
        raise BuildSpecError("build spec: argomento vuoto")

    if s.startswith("@"):
        p = Path(s[1:]).expanduser()
        if not p.exists() or not p.is_file():
            raise BuildSpecError(f"build spec: file non trovato: {p}")
        raw = p.read_text(encoding="utf-8")
        try:
            obj = json.loads(raw)
        except Exception as e:
            raise BuildSpecError(f"build spec: JSON non valido in {p}: {e}") from e
        if not isinstance(obj, dict):
            raise BuildSpecError(f"build spec: il JSON in {p} deve essere un oggetto")
        return obj

    try:
        obj = json.loads(s)
    except Exception as e:
        raise BuildSpecError(f"build spec: JSON inline non valido: {e}") from e
    if not isinstance(obj, dict):
        raise BuildSpecError("build spec: il JSON inline deve essere un oggetto")
    return obj


def _enum_by_name(obj: dict[str, Any], key: str, cls: Any, default: Any) -> Any:
    if key not in obj:
        return default
    v = obj.get(key)
    if not isinstance(v, str) or not v.strip():
        raise BuildSpecError(f"build spec: campo '{key}' deve essere stringa")
    try:
        return cls[v.strip().upper()]
    except KeyError:
        allowed = ", ".join(m.name.lower() for m in cls)
        raise BuildSpecError(
            f"build spec: {key}={v!r} non supportato (ammessi: {allowed})"
        ) from None


def _positive_int(obj: dict[str, Any], key: str, default: int) -> int:
    if key not in obj:
        return default
    v = obj.get(key)
    # bool is an int subclass: reject it explicitly
    if isinstance(v, bool) or not isinstance(v, int) or v < 1:
        raise BuildSpecError(f"build spec: campo '{key}' deve essere un intero >= 1")
    return v


@dataclass(frozen=True)
class BuildSpecV1:
    """How directories and header tags are produced for one archive."""

    name: str = "archive"
    internal_compression: Compression = Compression.GZIP
    tile_compression: Compression = Compression.NONE
    tile_type: TileType = TileType.UNKNOWN
    directory_target_size: int = DEFAULT_DIRECTORY_TARGET_SIZE
    jobs: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec": SPEC_ID_V1,
            "name": self.name,
            "internal_compression": self.internal_compression.name.lower(),
            "tile_compression": self.tile_compression.name.lower(),
            "tile_type": self.tile_type.name.lower(),
            "directory_target_size": self.directory_target_size,
            "jobs": self.jobs,
        }


def load_build_spec(spec_arg: str) -> BuildSpecV1:
    """Load and validate a build spec.

    spec_arg:
      - '@file.json'
      - inline JSON object
    """
    obj = _load_json_arg(spec_arg)

    allowed = {
        "spec",
        "name",
        "internal_compression",
        "tile_compression",
        "tile_type",
        "directory_target_size",
        "jobs",
    }
    extra = sorted(set(obj.keys()) - allowed)
    if extra:
        raise BuildSpecError(f"build spec: chiavi non supportate: {', '.join(extra)}")

    spec_id = obj.get("spec")
    if spec_id != SPEC_ID_V1:
        raise BuildSpecError(
            f"build spec: spec non supportata: {spec_id!r} (attesa {SPEC_ID_V1!r})"
        )

    name = obj.get("name", "archive")
    if not isinstance(name, str) or not name.strip():
        raise BuildSpecError("build spec: campo 'name' deve essere stringa")

    internal = _enum_by_name(obj, "internal_compression", Compression, Compression.GZIP)
    if internal == Compression.UNKNOWN:
        raise BuildSpecError("build spec: internal_compression non puo' essere 'unknown'")

    return BuildSpecV1(
        name=name.strip(),
        internal_compression=internal,
        tile_compression=_enum_by_name(obj, "tile_compression", Compression, Compression.NONE),
        tile_type=_enum_by_name(obj, "tile_type", TileType, TileType.UNKNOWN),
        directory_target_size=_positive_int(
            obj, "directory_target_size", DEFAULT_DIRECTORY_TARGET_SIZE
        ),
        jobs=_positive_int(obj, "jobs", 1),
    )
