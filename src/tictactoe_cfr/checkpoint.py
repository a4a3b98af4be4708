"""
Checkpoint persistence for training sessions.

A checkpoint is a numpy .npz archive of plain arrays (no pickled objects).
Losing accumulated training is worse than stopping, so every failure other
than "file does not exist" raises CheckpointError and leaves the file alone.
"""
from __future__ import annotations

import io
import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, Optional

import numpy as np

from .game import N_MOVES, Board, Infoset
from .graph import map_game
from .infosets import InfosetNode, InfosetStore
from .session import StateNode, TrainingSession

FORMAT_VERSION = 1

NO_STATE = -1


class CheckpointError(RuntimeError):
    """Checkpoint could not be read or written; training must stop."""


def session_to_arrays(session: TrainingSession) -> dict:
    n_states = len(session.states)
    present = np.zeros(n_states, dtype=bool)
    successors = np.full((n_states, N_MOVES), NO_STATE, dtype=np.int64)
    has_score = np.zeros(n_states, dtype=bool)
    scores = np.zeros((n_states, 2), dtype=np.int8)
    for i, node in enumerate(session.states):
        if node is None:
            continue
        present[i] = True
        successors[i] = [NO_STATE if s is None else s for s in node.successors]
        if node.score is not None:
            has_score[i] = True
            scores[i] = node.score

    initial = np.array(
        [[s, iset.history, iset.p0_private, iset.p1_private] for s, iset in session.initial],
        dtype=np.uint32,
    ).reshape(-1, 4)

    items = list(session.infosets.sorted_items())
    keys = np.array([k for k, _ in items], dtype=np.uint32).reshape(-1, 2)
    legal = np.array([n.legal for _, n in items], dtype=bool).reshape(-1, N_MOVES)
    regret_sum = np.array([n.regret_sum for _, n in items], dtype=np.float32).reshape(-1, N_MOVES)
    strategy_sum = np.array([n.strategy_sum for _, n in items], dtype=np.float32).reshape(-1, N_MOVES)

    return {
        "format_version": np.array(FORMAT_VERSION, dtype=np.uint32),
        "trained_iterations": np.array(session.trained_iterations, dtype=np.uint64),
        "initial": initial,
        "state_present": present,
        "state_successors": successors,
        "state_has_score": has_score,
        "state_score": scores,
        "infoset_keys": keys,
        "infoset_legal": legal,
        "infoset_regret_sum": regret_sum,
        "infoset_strategy_sum": strategy_sum,
    }


def session_from_arrays(arrays) -> TrainingSession:
    version = int(arrays["format_version"])
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported checkpoint format version {version}")

    states = []
    present = arrays["state_present"]
    successors = arrays["state_successors"]
    has_score = arrays["state_has_score"]
    scores = arrays["state_score"]
    for i in range(len(present)):
        if not present[i]:
            states.append(None)
            continue
        succ = tuple(None if s == NO_STATE else int(s) for s in successors[i])
        sc = (int(scores[i][0]), int(scores[i][1])) if has_score[i] else None
        states.append(StateNode(successors=succ, score=sc))

    initial = [
        (int(row[0]), Infoset(history=int(row[1]), p0_private=int(row[2]), p1_private=int(row[3])))
        for row in arrays["initial"]
    ]

    nodes = {}
    for key, legal, regret, strat in zip(arrays["infoset_keys"], arrays["infoset_legal"],
                                         arrays["infoset_regret_sum"], arrays["infoset_strategy_sum"]):
        nodes[(int(key[0]), int(key[1]))] = InfosetNode(legal, regret.copy(), strat.copy())

    return TrainingSession(
        initial=initial,
        states=states,
        infosets=InfosetStore(nodes),
        trained_iterations=int(arrays["trained_iterations"]),
    )


def save(session: TrainingSession, path: Path) -> None:
    """Atomically replace `path` with a snapshot of `session`."""
    path = Path(path)
    try:
        buf = io.BytesIO()
        np.savez(buf, **session_to_arrays(session))
    except (ValueError, TypeError, OverflowError) as e:
        raise CheckpointError(f"Could not serialize training session: {e}") from e

    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path.parent, prefix=path.name + ".",
                                         suffix=".tmp", delete=False) as f:
            tmp_name = f.name
            f.write(buf.getvalue())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise CheckpointError(f"Could not write checkpoint {path}: {e}") from e
    logging.info("Saved checkpoint %s (iteration %d, %d infosets)",
                 path, session.trained_iterations, len(session.infosets))


def load(path: Path) -> TrainingSession:
    """Read a checkpoint; FileNotFoundError propagates, anything else is a CheckpointError."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise
    except OSError as e:
        raise CheckpointError(f"Could not read checkpoint {path}: {e}") from e
    try:
        with np.load(io.BytesIO(data), allow_pickle=False) as arrays:
            return session_from_arrays(arrays)
    except (ValueError, TypeError, KeyError, IndexError, EOFError, zipfile.BadZipFile) as e:
        raise CheckpointError(
            f"Checkpoint {path} exists but could not be parsed; refusing to overwrite it ({e})"
        ) from e


def load_or_build(path: Path, starts: Optional[Iterable[Board]] = None) -> TrainingSession:
    """Resume from `path`, or map the game and save a fresh session there."""
    path = Path(path)
    logging.info("Loading CFR data from %s", path)
    try:
        session = load(path)
    except FileNotFoundError:
        logging.info("No checkpoint found; mapping game")
        session = map_game(starts)
        save(session, path)
        return session
    logging.info("Resumed at iteration %d with %d infosets",
                 session.trained_iterations, len(session.infosets))
    return session
