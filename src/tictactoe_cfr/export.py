"""
Compact strategy export.

Only infosets whose average strategy is noticeably different from uniform
play are written. Each record is a variable-length tag followed by one byte
per nonzero move:

    tag  = history << 6 | private << 4 | n_nonzero
    byte = move << 4 | palette_index

Tags are delta-encoded against the previous record (1 or 2 bytes) or written
absolute in 4 bytes when the delta is too large.
"""
from __future__ import annotations

import csv
import hashlib
import importlib.util
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

import numpy as np

from .checkpoint import load
from .game import iter_history
from .infosets import InfosetNode, InfosetStore
from .paths import STRATEGY_NAME, get_git_commit
from .tracking import log_artifact, log_params

PALETTE = (0.0, 0.01, 0.1, 0.2, 0.3, 1 / 3, 0.4, 0.5, 0.6, 2 / 3, 0.7, 0.8, 0.9, 0.98, 0.99, 1.0)

INTERESTING_THRESHOLD = 0.9
MAX_NONZERO = 7
MAX_HISTORY = (1 << 26) - 1
MAX_TAG = 1 << 31

EXPORT_VERSION = "1.0.0"


def similarity_to_uniform(node: InfosetNode, strategy: np.ndarray) -> float:
    """Bhattacharyya coefficient between `strategy` and uniform over legal moves."""
    default = node.normalize(np.zeros_like(node.strategy_sum))
    return float(np.sqrt(default.astype(np.float64) * np.asarray(strategy, dtype=np.float64)).sum())


def is_interesting(node: InfosetNode, strategy: np.ndarray,
                   threshold: float = INTERESTING_THRESHOLD) -> bool:
    return similarity_to_uniform(node, strategy) < threshold


def quantize(strategy) -> List[int]:
    """Palette index of each probability; ties go to the lower index."""
    out = []
    for p in strategy:
        dist = [abs(float(p) - v) for v in PALETTE]
        out.append(min(range(len(PALETTE)), key=lambda i: dist[i]))
    return out


def make_tag(history: int, private: int, n_nonzero: int) -> int:
    if history & MAX_HISTORY != history:
        raise RuntimeError(f"History {history} does not fit in 26 bits")
    if private & 0b11 != private:
        raise RuntimeError(f"Private value {private} does not fit in 2 bits")
    if not 1 <= n_nonzero <= MAX_NONZERO:
        raise RuntimeError(f"Nonzero count {n_nonzero} outside [1, {MAX_NONZERO}]")
    return history << 6 | private << 4 | n_nonzero


def encode_tag(tag: int, last_tag: int) -> bytes:
    delta = tag - last_tag
    if 0 <= delta < 64:
        return bytes([delta])
    if 0 <= delta < 64 * 256:
        return bytes([0b01000000 | (delta >> 8), delta & 0xFF])
    if 0 <= tag < MAX_TAG:
        return (tag | 0x80000000).to_bytes(4, "big")
    raise RuntimeError(f"Tag is too big: {tag}")


def encode_record(history: int, private: int, quantized: List[int], last_tag: int) -> Tuple[bytes, int]:
    entries = [(mv, q) for mv, q in enumerate(quantized) if q != 0]
    tag = make_tag(history, private, len(entries))
    out = bytearray(encode_tag(tag, last_tag))
    for mv, q in entries:
        out.append(mv << 4 | q)
    return bytes(out), tag


def export_strategy(infosets: InfosetStore,
                    threshold: float = INTERESTING_THRESHOLD) -> bytes:
    """Serialize the interesting average strategies in ascending (history, private) order."""
    blob, _ = _encode(infosets, threshold)
    return blob


def _encode(infosets: InfosetStore, threshold: float) -> Tuple[bytes, int]:
    out = bytearray()
    last_tag = 0
    exported = 0
    for (history, private), node in infosets.sorted_items():
        strategy = node.get_average_strategy()
        if not is_interesting(node, strategy, threshold):
            continue
        record, last_tag = encode_record(history, private, quantize(strategy), last_tag)
        out.extend(record)
        exported += 1
    logging.info("Exported %d of %d infosets (%d bytes)", exported, len(infosets), len(out))
    return bytes(out), exported


def strategy_rows(infosets: InfosetStore,
                  threshold: float = INTERESTING_THRESHOLD) -> List[Dict[str, Any]]:
    """One row per infoset with its average strategy, for inspection."""
    rows: List[Dict[str, Any]] = []
    for (history, private), node in infosets.sorted_items():
        avg = node.get_average_strategy()
        row: Dict[str, Any] = {
            "history": history,
            "moves": " ".join(map(str, iter_history(history))),
            "private": private,
            "similarity": round(similarity_to_uniform(node, avg), 6),
            "exported": is_interesting(node, avg, threshold),
        }
        for mv in range(len(avg)):
            row[f"p{mv}"] = round(float(avg[mv]), 6) if node.legal[mv] else None
        rows.append(row)
    return rows


@dataclass
class ExportArgs:
    checkpoint: Path
    out: Path
    table: str = "none"  # one of: "none", "csv", "parquet", "both"
    threshold: float = INTERESTING_THRESHOLD


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def run_export(args: ExportArgs) -> Path:
    fmt = (args.table or "none").lower()
    if fmt not in {"none", "csv", "parquet", "both"}:
        raise ValueError(f"Unknown table format: {args.table}")
    if fmt == "parquet" and not _have_parquet():
        # fail before writing anything
        raise RuntimeError(
            "Parquet dependencies not available (install pandas and pyarrow). "
            "Use pip install .[parquet] to enable parquet support."
        )

    session = load(args.checkpoint)
    args.out.mkdir(parents=True, exist_ok=True)

    blob, n_exported = _encode(session.infosets, args.threshold)
    blob_path = args.out / STRATEGY_NAME
    blob_path.write_bytes(blob)
    logging.info("Wrote %s (%d bytes)", blob_path, len(blob))

    rows: List[Dict[str, Any]] = []
    files: Dict[str, Any] = {"strategy": str(blob_path), "table_csv": None, "table_parquet": None}
    if fmt != "none":
        rows = strategy_rows(session.infosets, args.threshold)
    if fmt in {"csv", "both"}:
        csv_path = args.out / "strategy_table.csv"
        _write_csv(csv_path, rows)
        files["table_csv"] = str(csv_path)
        logging.info("Wrote %s (%d rows)", csv_path, len(rows))
    if fmt in {"parquet", "both"}:
        if _have_parquet():
            import pandas as pd  # type: ignore

            parquet_path = args.out / "strategy_table.parquet"
            pd.DataFrame(rows).to_parquet(parquet_path)
            files["table_parquet"] = str(parquet_path)
            logging.info("Wrote %s", parquet_path)
        else:
            logging.warning(
                "Parquet dependencies not available; proceeding with CSV only."
            )

    manifest = {
        "export_version": EXPORT_VERSION,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "trained_iterations": session.trained_iterations,
        "infosets": len(session.infosets),
        "exported_infosets": n_exported,
        "threshold": args.threshold,
        "palette": list(PALETTE),
        "strategy_bytes": len(blob),
        "strategy_sha256": sha256_bytes(blob),
        "git_commit": get_git_commit(),
        "files": files,
    }
    manifest_path = args.out / "manifest.json"
    manifest_path.write_text(json.dumps(manifest, indent=2))
    logging.info("Wrote manifest.json")

    log_params({
        "trained_iterations": session.trained_iterations,
        "exported_infosets": n_exported,
        "strategy_bytes": len(blob),
    })
    log_artifact(blob_path)
    log_artifact(manifest_path)
    return args.out


def _have_parquet() -> bool:
    return (importlib.util.find_spec("pandas") is not None
            and importlib.util.find_spec("pyarrow") is not None)


def _write_csv(path: Path, rows: List[Dict[str, Any]]) -> None:
    fieldnames: List[str] = []
    for r in rows:
        for k in r:
            if k not in fieldnames:
                fieldnames.append(k)
    with path.open("w", newline="") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        for r in rows:
            w.writerow(r)
