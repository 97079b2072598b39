"""Standalone run of the layering check (core/engine must not import archive/verify).

Usage: python tools/check_arch_boundaries.py
"""

from __future__ import annotations

import runpy
import sys
from pathlib import Path


def main() -> int:
    repo_root = Path(__file__).resolve().parents[1]
    test_path = repo_root / "tests" / "test_arch_boundaries.py"
    if not test_path.is_file():
        print(f"[cota] ERROR: {test_path} not found.", file=sys.stderr)
        return 3

    ns = runpy.run_path(str(test_path))
    fn = ns.get("test_no_low_level_imports_orchestrator")
    if not callable(fn):
        print("[cota] ERROR: test_no_low_level_imports_orchestrator not found.", file=sys.stderr)
        return 3
    try:
        fn()
    except AssertionError as e:
        print(str(e), file=sys.stderr)
        return 2
    print("[cota] OK: architecture boundaries respected.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
