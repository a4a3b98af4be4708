"""
Reading the compact strategy export back.

StrategyTable is an ordinary object: load it once and hand it to whoever
needs move advice.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .export import MAX_NONZERO, PALETTE
from .game import (
    N_MOVES,
    Board,
    Outcome,
    base_infoset,
    play,
    possible_moves,
    score,
)


def decode_tag(data: bytes, offset: int, last_tag: int) -> Tuple[int, int]:
    """Decode one tag at `offset`; returns (tag, next_offset)."""
    byte1 = data[offset]
    if byte1 & 0b11000000 == 0:
        return last_tag + byte1, offset + 1
    width = 2 if byte1 & 0b11000000 == 0b01000000 else 4
    if offset + width > len(data):
        raise ValueError(f"Truncated tag at offset {offset}")
    if width == 2:
        delta = int.from_bytes(bytes([byte1 & 0b00111111, data[offset + 1]]), "big")
        return last_tag + delta, offset + 2
    raw = bytes([byte1 & 0b01111111]) + bytes(data[offset + 1:offset + 4])
    return int.from_bytes(raw, "big"), offset + 4


def split_tag(tag: int) -> Tuple[int, int, int]:
    """(history, private, n_nonzero) packed in a tag."""
    return tag >> 6, (tag >> 4) & 0b11, tag & 0b1111


class StrategyTable:
    def __init__(self, items: Dict[Tuple[int, int], np.ndarray]):
        self.items = items

    @classmethod
    def from_bytes(cls, data: bytes) -> "StrategyTable":
        items: Dict[Tuple[int, int], np.ndarray] = {}
        last_tag = 0
        i = 0
        while i < len(data):
            tag, i = decode_tag(data, i, last_tag)
            last_tag = tag
            history, private, n_nonzero = split_tag(tag)
            if not 1 <= n_nonzero <= MAX_NONZERO:
                raise ValueError(f"Bad nonzero count {n_nonzero} in tag {tag}")
            if i + n_nonzero > len(data):
                raise ValueError(f"Truncated record for tag {tag}")
            strategy = np.zeros(N_MOVES, dtype=np.float64)
            for ix_val in data[i:i + n_nonzero]:
                mv, val = ix_val >> 4, ix_val & 0b1111
                if mv >= N_MOVES:
                    raise ValueError(f"Move index {mv} out of range in tag {tag}")
                strategy[mv] = PALETTE[val]
            i += n_nonzero
            items[(history, private)] = strategy
        return cls(items)

    @classmethod
    def load(cls, path: Path) -> "StrategyTable":
        table = cls.from_bytes(Path(path).read_bytes())
        logging.info("Loaded %d strategies from %s", len(table), path)
        return table

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, key: object) -> bool:
        return key in self.items

    def distribution(self, history: int, private: int, legal_moves: Sequence[int]) -> np.ndarray:
        """Stored strategy renormalized, or uniform over `legal_moves` when absent."""
        stored = self.items.get((history, private))
        if stored is not None:
            total = stored.sum()
            if total <= 0.0:
                raise RuntimeError(f"Stored strategy for {(history, private)} sums to zero")
            return stored / total
        out = np.zeros(N_MOVES, dtype=np.float64)
        if legal_moves:
            out[list(legal_moves)] = 1.0 / len(legal_moves)
        return out

    def board_distribution(self, board: Board) -> np.ndarray:
        """Distribution for the player to move on `board`."""
        history, private = base_infoset(board).key(for_p0=board.turn % 2 == 0)
        return self.distribution(history, private, possible_moves(board))


def sample_move(rng: np.random.Generator, distribution: Sequence[float],
                legal_moves: Sequence[int]) -> int:
    """Draw a legal move with probability proportional to `distribution`."""
    if not legal_moves:
        raise RuntimeError("No legal moves to sample from")
    weights = np.asarray([distribution[mv] for mv in legal_moves], dtype=np.float64)
    total = weights.sum()
    if not total > 0.0:
        raise RuntimeError(f"Cannot sample from all-zero distribution {list(distribution)}")
    return int(legal_moves[rng.choice(len(legal_moves), p=weights / total)])


def simulate_game(table: StrategyTable, rng: np.random.Generator,
                  p0_wants: Outcome, p1_wants: Outcome) -> Tuple[List[int], Tuple[Outcome, int, int]]:
    """Play both seats from `table` until the game ends."""
    board = Board(p0_wants=p0_wants, p1_wants=p1_wants)
    moves: List[int] = []
    while True:
        result = score(board)
        if result is not None:
            return moves, result
        mv = sample_move(rng, table.board_distribution(board), possible_moves(board))
        logging.debug("turn=%d move=%d", board.turn, mv)
        play(board, mv)
        moves.append(mv)
