#!/usr/bin/env python3
"""
Verify a strategy export directory.

Checks performed:
- manifest.json exists and is parseable
- strategy.dat exists, its size and SHA256 match the manifest
- the blob decodes cleanly and holds manifest.exported_infosets records
- every decoded record has positive probability mass
- the CSV table, when written, has one row per infoset

Exit codes:
 0 on success, non-zero on any validation failure.
"""
from __future__ import annotations

import argparse
import csv
import hashlib
import json
import sys
from pathlib import Path

from tictactoe_cfr.strategy import StrategyTable


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open('rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            h.update(chunk)
    return h.hexdigest()


def count_csv_rows(path: Path) -> int:
    with path.open('r', newline='') as f:
        reader = csv.reader(f)
        # subtract header
        return sum(1 for _ in reader) - 1


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Verify a CFR strategy export")
    ap.add_argument("out", type=Path, help="Export directory (contains manifest.json)")
    ns = ap.parse_args(argv)
    out = ns.out
    manifest_path = out / "manifest.json"
    if not manifest_path.exists():
        print(f"ERROR: manifest not found: {manifest_path}", file=sys.stderr)
        return 2
    try:
        manifest = json.loads(manifest_path.read_text())
    except ValueError as e:
        print(f"ERROR: failed to parse manifest: {e}", file=sys.stderr)
        return 2

    blob_path = out / "strategy.dat"
    if not blob_path.exists():
        print(f"ERROR: strategy blob not found: {blob_path}", file=sys.stderr)
        return 2

    ok = True
    size = blob_path.stat().st_size
    if manifest.get("strategy_bytes") != size:
        print(f"ERROR: size mismatch: manifest={manifest.get('strategy_bytes')} actual={size}", file=sys.stderr)
        ok = False
    have = sha256_file(blob_path)
    if manifest.get("strategy_sha256") != have:
        print(f"ERROR: checksum mismatch: manifest={manifest.get('strategy_sha256')} computed={have}",
              file=sys.stderr)
        ok = False

    try:
        table = StrategyTable.load(blob_path)
    except ValueError as e:
        print(f"ERROR: strategy blob does not decode: {e}", file=sys.stderr)
        return 1
    if manifest.get("exported_infosets") != len(table):
        print(f"ERROR: record count mismatch: manifest={manifest.get('exported_infosets')} "
              f"decoded={len(table)}", file=sys.stderr)
        ok = False
    for key, strategy in table.items.items():
        if not strategy.sum() > 0.0:
            print(f"ERROR: record {key} has no probability mass", file=sys.stderr)
            ok = False

    table_csv = (manifest.get("files", {}) or {}).get("table_csv")
    if table_csv:
        n = count_csv_rows(Path(table_csv))
        if manifest.get("infosets") != n:
            print(f"ERROR: table row count mismatch: manifest={manifest.get('infosets')} actual={n}",
                  file=sys.stderr)
            ok = False

    if not ok:
        return 1
    print(f"OK: export verified ({len(table)} records, {size} bytes)", file=sys.stdout)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
