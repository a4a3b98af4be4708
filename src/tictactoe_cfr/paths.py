"""Where the trainer keeps its checkpoint and exports.

Environment variables win; otherwise everything lives under the repository
root (git checkout) or, for an installed package, the current directory.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

CHECKPOINT_NAME = "cfr.dat"
EXPORT_DIR_NAME = "exports"
STRATEGY_NAME = "strategy.dat"


def _find_git_root(start: Path) -> Path | None:
    for cur in [start, *start.parents][:6]:
        if (cur / ".git").exists():
            return cur
    return None


def repo_root() -> Path:
    """TTT_CFR_ROOT, else the enclosing git checkout, else CWD."""
    env = os.getenv("TTT_CFR_ROOT")
    if env:
        return Path(env)
    return _find_git_root(Path(__file__).resolve()) or Path.cwd()


def checkpoint_path() -> Path:
    p = os.getenv("TTT_CFR_CHECKPOINT")
    return Path(p) if p else repo_root() / CHECKPOINT_NAME


def export_dir() -> Path:
    p = os.getenv("TTT_CFR_EXPORT")
    return Path(p) if p else repo_root() / EXPORT_DIR_NAME


def strategy_path() -> Path:
    """Blob written by the last export into export_dir()."""
    return export_dir() / STRATEGY_NAME


def get_git_commit() -> str | None:
    """Commit hash recorded in export manifests; None outside a checkout."""
    try:
        out = subprocess.check_output(
            ["git", "-C", str(repo_root()), "rev-parse", "HEAD"],
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=2.0,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    return out.strip() or None
