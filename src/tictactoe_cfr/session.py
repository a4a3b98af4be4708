"""
Training session: the immutable state graph plus the learned infoset table.

The graph is an arena: `states[i]` is the node for canonical state id `i`,
or None when no reachable board encodes to `i`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .cfr import train
from .game import N_MOVES, Infoset
from .infosets import InfosetStore


@dataclass(frozen=True)
class StateNode:
    successors: Tuple[Optional[int], ...] = (None,) * N_MOVES
    score: Optional[Tuple[int, int]] = None
    # derived from successors once; the tree walk reads them on every visit
    legal: Tuple[bool, ...] = field(init=False, repr=False, compare=False)
    moves: Tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "legal", tuple(s is not None for s in self.successors))
        object.__setattr__(self, "moves", tuple(mv for mv, ok in enumerate(self.legal) if ok))

    def legal_mask(self) -> Tuple[bool, ...]:
        return self.legal


@dataclass
class TrainingSession:
    initial: List[Tuple[int, Infoset]]
    states: List[Optional[StateNode]]
    infosets: InfosetStore = field(default_factory=InfosetStore)
    trained_iterations: int = 0

    def state(self, state_id: int) -> StateNode:
        node = self.states[state_id] if 0 <= state_id < len(self.states) else None
        if node is None:
            raise RuntimeError(f"Missing state node for id {state_id}")
        return node

    def train(self, contempt: float) -> float:
        """Run one full CFR iteration; see cfr.train."""
        return train(self, contempt)
