"""
Breadth-first enumeration of the canonical state graph.

Every canonical state is expanded once; later arrivals at the same state only
record the incoming edge. The result is a dense arena indexed by state id.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from .game import (
    N_MOVES,
    Board,
    Infoset,
    base_infoset,
    play,
    possible_moves,
    possible_starts,
    score,
    to_state,
)
from .session import StateNode, TrainingSession


def map_game(starts: Optional[Iterable[Board]] = None) -> TrainingSession:
    """Enumerate all states reachable from `starts` (default: the 9 empty boards)."""
    if starts is None:
        starts = possible_starts()
    reached: Set[int] = set()
    state_initial: Dict[int, Infoset] = {}
    state_edges: Dict[int, List[Optional[int]]] = {}
    state_score: Dict[int, Tuple[int, int]] = {}

    q: Deque[Tuple[Optional[Tuple[int, int]], Board]] = deque()
    for start in starts:
        q.append((None, start.copy()))

    while q:
        predecessor, board = q.popleft()
        state = to_state(board)
        if predecessor is None:
            state_initial[state] = base_infoset(board)
        else:
            pred, mv = predecessor
            state_edges.setdefault(pred, [None] * N_MOVES)[mv] = state

        if state in reached:
            continue
        reached.add(state)

        res = score(board)
        if res is not None:
            state_score[state] = (res[1], res[2])
            continue

        for mv in possible_moves(board):
            child = board.copy()
            play(child, mv)
            q.append(((state, mv), child))

    if not reached:
        raise RuntimeError("Game graph has no reachable states")

    initial = sorted(state_initial.items(), key=lambda item: item[0])
    states: List[Optional[StateNode]] = [None] * (max(reached) + 1)
    for s in reached:
        states[s] = StateNode(
            successors=tuple(state_edges.get(s, [None] * N_MOVES)),
            score=state_score.get(s),
        )
    logging.info(
        "Mapped %d reachable states (%d terminal, %d initial) into an arena of %d slots",
        len(reached), len(state_score), len(initial), len(states),
    )
    return TrainingSession(initial=initial, states=states)
