"""
Infoset regret store: the learned model.

Keys are (history, private) where private is the acting player's own wish.
The opponent's wish is deliberately absent, so boards that differ only in it
share one node.
"""
from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .game import N_MOVES

InfosetKey = Tuple[int, int]


class InfosetNode:
    __slots__ = ("legal", "mask", "moves", "regret_sum", "strategy_sum")

    def __init__(self, legal: Sequence[bool],
                 regret_sum: Optional[np.ndarray] = None,
                 strategy_sum: Optional[np.ndarray] = None):
        self.legal = np.asarray(legal, dtype=bool)
        if self.legal.shape != (N_MOVES,):
            raise ValueError(f"legal mask must have {N_MOVES} entries")
        self.mask = tuple(bool(x) for x in self.legal)
        self.moves = tuple(mv for mv, ok in enumerate(self.mask) if ok)
        self.regret_sum = (np.zeros(N_MOVES, dtype=np.float32) if regret_sum is None
                           else np.asarray(regret_sum, dtype=np.float32))
        self.strategy_sum = (np.zeros(N_MOVES, dtype=np.float32) if strategy_sum is None
                             else np.asarray(strategy_sum, dtype=np.float32))

    def normalize(self, weights: np.ndarray) -> np.ndarray:
        """Scale weights to sum to 1; all-zero falls back to uniform over legal moves."""
        weights = np.asarray(weights, dtype=np.float32)
        total = weights.sum()
        if total == 0.0:
            return self.legal.astype(np.float32) / np.float32(self.legal.sum())
        return weights / total

    def get_strategy(self, weight: float, contempt: float) -> Tuple[List[float], List[float]]:
        """Regret-matching strategy and its contempt-blended variant.

        Both are plain 9-entry lists; the tree walk calls this once per visited
        node. The unblended strategy is accumulated into strategy_sum with the
        acting player's reach probability as weight.
        """
        regrets = self.regret_sum.tolist()
        strategy = [0.0] * N_MOVES
        total = 0.0
        for mv in self.moves:
            if regrets[mv] > 0.0:
                strategy[mv] = regrets[mv]
                total += regrets[mv]
        if total > 0.0:
            for mv in self.moves:
                strategy[mv] /= total
        else:
            for mv in self.moves:
                strategy[mv] = 1.0 / len(self.moves)
        self.strategy_sum += np.asarray(strategy, dtype=np.float32) * np.float32(weight)

        if contempt <= 0.0:
            return strategy, strategy
        share = contempt / len(self.moves)
        blended = [0.0] * N_MOVES
        total = 0.0
        for mv in self.moves:
            blended[mv] = strategy[mv] * (1.0 - contempt) + share
            total += blended[mv]
        for mv in self.moves:
            blended[mv] /= total
        return strategy, blended

    def add_regret(self, utils: Sequence[float], node_util: float, weight: float) -> None:
        """regret_sum[mv] += weight * (utils[mv] - node_util) for every legal move."""
        delta = [0.0] * N_MOVES
        for mv in self.moves:
            delta[mv] = weight * (utils[mv] - node_util)
        self.regret_sum += np.asarray(delta, dtype=np.float32)

    def get_average_strategy(self) -> np.ndarray:
        return self.normalize(self.strategy_sum)

    def __repr__(self) -> str:
        return (f"InfosetNode(legal={self.legal.astype(int).tolist()}, "
                f"regret_sum={self.regret_sum.tolist()}, "
                f"strategy_sum={self.strategy_sum.tolist()})")


class InfosetStore:
    """Mapping InfosetKey -> InfosetNode, created on first visit."""

    def __init__(self, nodes: Optional[Dict[InfosetKey, InfosetNode]] = None):
        self._nodes: Dict[InfosetKey, InfosetNode] = dict(nodes or {})

    def node(self, key: InfosetKey, legal: Sequence[bool]) -> InfosetNode:
        found = self._nodes.get(key)
        if found is None:
            found = self._nodes[key] = InfosetNode(legal)
        elif found.mask != tuple(legal):
            raise RuntimeError(
                f"Infoset {key} reached with legal mask {list(legal)}, "
                f"expected {found.legal.tolist()}"
            )
        return found

    def get(self, key: InfosetKey) -> Optional[InfosetNode]:
        return self._nodes.get(key)

    def sorted_items(self) -> Iterator[Tuple[InfosetKey, InfosetNode]]:
        for key in sorted(self._nodes):
            yield key, self._nodes[key]

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[InfosetKey]:
        return iter(self._nodes)
