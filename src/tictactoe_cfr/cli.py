from __future__ import annotations

import argparse
import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

import numpy as np

from .cfr import CONTEMPT_ITERATIONS
from .checkpoint import CheckpointError
from .export import INTERESTING_THRESHOLD, ExportArgs, run_export
from .game import OUTCOME_NAMES, Board, Outcome, play, possible_moves, score, serialize_board
from .paths import checkpoint_path, export_dir, strategy_path
from .strategy import StrategyTable, simulate_game
from .training import DESIRED_ITERATIONS, SAVE_EVERY, TrainArgs, run_training


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ttt-cfr", description="Hidden-wish tic-tac-toe CFR trainer")
    sub = p.add_subparsers(dest="cmd")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument(
        "--info",
        action="store_true",
        help="Print environment and dependency info and exit",
    )
    p.add_argument("--seed", type=int, default=None, help="Global seed for reproducibility")
    p.add_argument(
        "--deterministic",
        action="store_true",
        help="Enable deterministic mode (sets PYTHONHASHSEED, seeds numpy)",
    )

    p_train = sub.add_parser("train", help="Train (or resume training) until the target iteration")
    p_train.add_argument("--checkpoint", type=Path, default=None,
                         help="Checkpoint file (default: $TTT_CFR_CHECKPOINT or ./cfr.dat)")
    p_train.add_argument("--iterations", type=int, default=DESIRED_ITERATIONS,
                         help=f"Target trained iterations (default: {DESIRED_ITERATIONS})")
    p_train.add_argument("--save-every", type=int, default=SAVE_EVERY,
                         help=f"Checkpoint interval in iterations (default: {SAVE_EVERY})")
    p_train.add_argument("--contempt-iterations", type=int, default=CONTEMPT_ITERATIONS,
                         help="Iterations over which contempt decays to its floor")
    p_train.add_argument(
        "--tracking",
        choices=["none", "mlflow"],
        default="none",
        help="Experiment tracking backend",
    )
    p_train.add_argument(
        "--log-dir",
        type=Path,
        default=Path("runs"),
        help="Directory for tracking logs/artifacts (for mlflow local backend)",
    )

    p_export = sub.add_parser("export", help="Export the compact strategy blob from a checkpoint")
    p_export.add_argument("--checkpoint", type=Path, default=None,
                          help="Checkpoint file (default: $TTT_CFR_CHECKPOINT or ./cfr.dat)")
    p_export.add_argument("--out", type=Path, default=None,
                          help="Output directory (default: $TTT_CFR_EXPORT or ./exports)")
    p_export.add_argument(
        "--table",
        choices=["none", "csv", "parquet", "both"],
        default="none",
        help="Also write the per-infoset average strategy table",
    )
    p_export.add_argument("--threshold", type=float, default=INTERESTING_THRESHOLD,
                          help="Skip infosets at least this similar to uniform play")

    p_adv = sub.add_parser("advise", help="Show the exported move distribution for the player to move")
    p_adv.add_argument("--strategy", type=Path, default=None,
                       help="strategy.dat file (default: $TTT_CFR_EXPORT/strategy.dat)")
    p_adv.add_argument("--wants", choices=sorted(OUTCOME_NAMES), required=True,
                       help="Outcome the player to move wants")
    p_adv.add_argument("--moves", default="", help='Comma-separated moves so far, e.g. "0,4"')

    p_sim = sub.add_parser("simulate", help="Sample one self-play game from a strategy.dat file")
    p_sim.add_argument("--strategy", type=Path, default=None,
                       help="strategy.dat file (default: $TTT_CFR_EXPORT/strategy.dat)")
    p_sim.add_argument("--p0-wants", choices=sorted(OUTCOME_NAMES), default="p0win")
    p_sim.add_argument("--p1-wants", choices=sorted(OUTCOME_NAMES), default="p1win")

    return p


def _set_global_seed(seed: Optional[int]) -> None:
    if seed is None:
        return
    import random

    random.seed(seed)
    np.random.seed(seed)


def _set_deterministic_env(seed: Optional[int]) -> None:
    import os

    if seed is not None:
        os.environ.setdefault("PYTHONHASHSEED", str(seed))
    # Avoid BLAS variability if present
    for var in ("MKL_NUM_THREADS", "OPENBLAS_NUM_THREADS", "NUMEXPR_NUM_THREADS", "OMP_NUM_THREADS"):
        os.environ.setdefault(var, "1")
    _set_global_seed(seed)


def _print_info() -> None:
    import importlib.util
    import platform
    import sys

    print(f"python={sys.version.split()[0]} platform={platform.platform()}")
    for pkg in ["numpy", "pandas", "pyarrow", "mlflow"]:
        spec = importlib.util.find_spec(pkg)
        if spec is None:
            print(f"{pkg}=<not installed>")
        else:
            mod = __import__(pkg)
            ver = getattr(mod, "__version__", "?")
            print(f"{pkg}={ver}")


def _parse_moves(raw: str) -> List[int]:
    return [int(x) for x in raw.split(",") if x.strip()]


def _load_table(path: Path) -> Optional[StrategyTable]:
    try:
        return StrategyTable.load(path)
    except (OSError, ValueError) as e:
        logging.error("Could not load strategy %s: %s", path, e)
        return None


def _format_distribution(dist) -> str:
    return " ".join(f"{mv}:{p:.3f}" for mv, p in enumerate(dist) if p > 0)


def _cmd_train(ns: argparse.Namespace) -> int:
    if ns.iterations < 0 or ns.save_every < 1 or ns.contempt_iterations < 1:
        logging.error("iterations must be >= 0; save-every and contempt-iterations must be >= 1")
        return 2
    args = TrainArgs(
        checkpoint=ns.checkpoint or checkpoint_path(),
        iterations=ns.iterations,
        contempt_iterations=ns.contempt_iterations,
        save_every=ns.save_every,
        tracking=ns.tracking == "mlflow",
        log_dir=ns.log_dir,
    )
    try:
        session = run_training(args)
    except CheckpointError as e:
        logging.error("%s", e)
        return 2
    logging.info("Training complete at iteration %d", session.trained_iterations)
    return 0


def _cmd_export(ns: argparse.Namespace) -> int:
    if not 0.0 < ns.threshold <= 1.0:
        logging.error("Threshold out of range (0,1]: %s", ns.threshold)
        return 2
    args = ExportArgs(
        checkpoint=ns.checkpoint or checkpoint_path(),
        out=ns.out or export_dir(),
        table=ns.table,
        threshold=ns.threshold,
    )
    try:
        out = run_export(args)
    except FileNotFoundError as e:
        logging.error("Checkpoint not found: %s", e.filename)
        return 2
    except (CheckpointError, RuntimeError) as e:
        logging.error("%s", e)
        return 2
    logging.info("Exported strategy to: %s", out)
    return 0


def _cmd_advise(ns: argparse.Namespace) -> int:
    try:
        moves = _parse_moves(ns.moves)
    except ValueError:
        logging.error("Invalid move list: %r", ns.moves)
        return 2
    # only the mover's own wish is part of its infoset key
    wants = OUTCOME_NAMES[ns.wants]
    board = Board(p0_wants=wants, p1_wants=wants)
    for mv in moves:
        if score(board) is not None or mv not in possible_moves(board):
            logging.error("Illegal move %d after %s", mv, serialize_board(board))
            return 2
        play(board, mv)
    if score(board) is not None:
        logging.error("Game is already over: %s", serialize_board(board))
        return 2

    table = _load_table(ns.strategy or strategy_path())
    if table is None:
        return 2
    dist = table.board_distribution(board)
    logging.info("to_move=p%d exported=%s advice=%s",
                 board.turn % 2,
                 (board.history, int(wants)) in table,
                 _format_distribution(dist))
    return 0


def _cmd_simulate(ns: argparse.Namespace) -> int:
    table = _load_table(ns.strategy or strategy_path())
    if table is None:
        return 2
    rng = np.random.default_rng(ns.seed)
    moves, (outcome, util_p0, util_p1) = simulate_game(
        table, rng, OUTCOME_NAMES[ns.p0_wants], OUTCOME_NAMES[ns.p1_wants]
    )
    logging.info("moves=%s outcome=%s utils=%d/%d",
                 moves, Outcome(outcome).name, util_p0, util_p1)
    return 0


COMMANDS = {
    "train": _cmd_train,
    "export": _cmd_export,
    "advise": _cmd_advise,
    "simulate": _cmd_simulate,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if ns.verbose else logging.INFO,
                        format="[%(levelname)s] %(message)s")

    if ns.version:
        try:
            print(version("tictactoe-cfr"))
        except PackageNotFoundError:
            print("unknown")
        return 0
    if ns.info:
        _print_info()
        return 0

    if ns.deterministic or ns.seed is not None:
        _set_deterministic_env(ns.seed)

    handler = COMMANDS.get(ns.cmd)
    if handler is None:
        parser.print_help()
        return 0
    return handler(ns)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
