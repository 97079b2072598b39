from __future__ import annotations

import json
from pathlib import Path

import pytest

from cota.build_spec import (
    DEFAULT_DIRECTORY_TARGET_SIZE,
    BuildSpecError,
    BuildSpecV1,
    load_build_spec,
)
from cota.core.header import Compression, TileType
from cota.errors import UsageError


def test_build_spec_inline_minimal() -> None:
    spec = load_build_spec(json.dumps({"spec": "cota.build.v1"}))
    assert spec == BuildSpecV1()
    assert spec.internal_compression == Compression.GZIP
    assert spec.directory_target_size == DEFAULT_DIRECTORY_TARGET_SIZE == 16257


def test_build_spec_full() -> None:
    obj = {
        "spec": "cota.build.v1",
        "name": "basemap",
        "internal_compression": "zstd",
        "tile_compression": "gzip",
        "tile_type": "MVT",
        "directory_target_size": 4096,
        "jobs": 4,
    }
    spec = load_build_spec(json.dumps(obj))
    assert spec.name == "basemap"
    assert spec.internal_compression == Compression.ZSTD
    assert spec.tile_compression == Compression.GZIP
    assert spec.tile_type == TileType.MVT
    assert spec.directory_target_size == 4096
    assert spec.jobs == 4
    # to_dict is loadable again
    assert load_build_spec(json.dumps(spec.to_dict())) == spec


def test_build_spec_from_file(tmp_path: Path) -> None:
    p = tmp_path / "b.json"
    p.write_text(
        json.dumps({"spec": "cota.build.v1", "internal_compression": "none"}), encoding="utf-8"
    )
    spec = load_build_spec("@" + str(p))
    assert spec.internal_compression == Compression.NONE


def test_build_spec_unknown_key_rejected() -> None:
    with pytest.raises(BuildSpecError, match="chiavi non supportate: wat"):
        load_build_spec(json.dumps({"spec": "cota.build.v1", "wat": 1}))


@pytest.mark.parametrize(
    "obj, msg",
    [
        ({}, "spec non supportata"),
        ({"spec": "cota.build.v0"}, "spec non supportata"),
        ({"spec": "cota.build.v1", "internal_compression": "lzma"}, "non supportato"),
        ({"spec": "cota.build.v1", "internal_compression": "unknown"}, "unknown"),
        ({"spec": "cota.build.v1", "tile_type": 1}, "stringa"),
        ({"spec": "cota.build.v1", "directory_target_size": 0}, "intero"),
        ({"spec": "cota.build.v1", "jobs": True}, "intero"),
        ({"spec": "cota.build.v1", "name": ""}, "name"),
    ],
)
def test_build_spec_invalid(obj: dict, msg: str) -> None:
    with pytest.raises(BuildSpecError, match=msg):
        load_build_spec(json.dumps(obj))


def test_build_spec_bad_json_and_missing_file(tmp_path: Path) -> None:
    with pytest.raises(BuildSpecError, match="JSON inline"):
        load_build_spec("{nope")
    with pytest.raises(BuildSpecError, match="oggetto"):
        load_build_spec("[1, 2]")
    with pytest.raises(BuildSpecError, match="file non trovato"):
        load_build_spec("@" + str(tmp_path / "missing.json"))
    with pytest.raises(BuildSpecError, match="vuoto"):
        load_build_spec("   ")


def test_build_spec_error_is_usage_and_value_error() -> None:
    with pytest.raises(UsageError):
        load_build_spec("{}")
    with pytest.raises(ValueError):
        load_build_spec("{}")
