from __future__ import annotations

import ast
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

# High-level orchestrator modules (I/O, archive assembly, verification).
# LOW-level code (core codecs, engine/tree builder) must NEVER import these.
#
# IMPORTANT:
#   Modules that define *shared specs/schemas* (e.g. build_spec) are NOT
#   considered ORCH, because they are contracts.
ORCH_PREFIXES: tuple[str, ...] = (
    "cota.archive",
    "cota.verify",
)

PACKAGE_ROOT = "cota"


@dataclass(frozen=True)
class ImportEdge:
    src: str
    dst: str
    file: Path
    lineno: int


def _is_orch(mod: str) -> bool:
    return any(mod == p or mod.startswith(p + ".") for p in ORCH_PREFIXES)


def _module_name_from_path(src_dir: Path, py_file: Path) -> str | None:
    # namespace packages: no __init__.py to special-case
    parts = py_file.relative_to(src_dir).with_suffix("").parts
    if not parts or parts[0] != PACKAGE_ROOT:
        return None
    return ".".join(parts)


def _iter_import_edges(src_dir: Path) -> Iterable[ImportEdge]:
    for py in src_dir.rglob("*.py"):
        mod = _module_name_from_path(src_dir, py)
        if not mod:
            continue

        tree = ast.parse(py.read_text(encoding="utf-8"), filename=str(py))

        for node in ast.walk(tree):
            lineno = getattr(node, "lineno", 0)
            if isinstance(node, ast.Import):
                names = [alias.name for alias in node.names]
            elif isinstance(node, ast.ImportFrom):
                if node.level:
                    # cota imports are absolute only
                    dst = "." * node.level + (node.module or "")
                    yield ImportEdge(src=mod, dst=dst, file=py, lineno=lineno)
                    continue
                names = [node.module or ""]
            else:
                continue
            for name in names:
                if name == PACKAGE_ROOT or name.startswith(PACKAGE_ROOT + "."):
                    yield ImportEdge(src=mod, dst=name, file=py, lineno=lineno)


def test_no_relative_imports() -> None:
    src_dir = Path(__file__).resolve().parents[1] / "src"
    relative = [e for e in _iter_import_edges(src_dir) if e.dst.startswith(".")]
    assert relative == [], [f"{e.file}:{e.lineno} {e.dst}" for e in relative]


def test_no_low_level_imports_orchestrator() -> None:
    """core/engine/build_spec must not import archive/verify (LOW -> ORCH)."""
    src_dir = Path(__file__).resolve().parents[1] / "src"
    if not src_dir.is_dir():
        raise AssertionError(f"Expected src/ directory at: {src_dir}")

    violations = sorted(
        (e for e in _iter_import_edges(src_dir) if not _is_orch(e.src) and _is_orch(e.dst)),
        key=lambda e: (str(e.file), e.lineno, e.dst),
    )
    if violations:
        lines = ["Forbidden imports detected (LOW -> ORCH):"]
        lines += [f"  {v.file}:{v.lineno}  {v.src}  ->  {v.dst}" for v in violations]
        lines.append("")
        lines.append("Fix: move high-level logic out of LOW modules, or invert the dependency.")
        raise AssertionError("\n".join(lines))
