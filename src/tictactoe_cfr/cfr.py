"""
Vector-form counterfactual regret minimization over the state graph.

Each iteration walks the full tree below every initial state. Utilities are
returned from the perspective of the player acting at the caller, so a child
value is negated on the way up.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from .game import N_MOVES, Infoset

if TYPE_CHECKING:
    from .session import TrainingSession

CONTEMPT_START = 0.5
CONTEMPT_FLOOR = 0.01
CONTEMPT_ITERATIONS = 10000


def contempt_schedule(iteration: int,
                      contempt_iterations: int = CONTEMPT_ITERATIONS,
                      start: float = CONTEMPT_START,
                      floor: float = CONTEMPT_FLOOR) -> float:
    """Linear decay from `start`, clamped below at `floor`."""
    return max(floor, start * (1.0 - iteration / contempt_iterations))


def terminal_utility(score, turn: int, contempt: float) -> float:
    """Zero-sum utility for player 0 with a bonus for satisfied wishes met early."""
    sc_p0, sc_p1 = float(score[0]), float(score[1])
    adj_turn = turn // 2
    bonus = contempt * max(0.0, 4.0 - adj_turn) / 4.0
    if sc_p0 > 0.0:
        sc_p0 += bonus
    if sc_p1 > 0.0:
        sc_p1 += bonus
    return sc_p0 - sc_p1


def train(session: "TrainingSession", contempt: float) -> float:
    """One CFR iteration over every initial state; returns the mean root utility."""
    util = 0.0
    for state_id, infoset in session.initial:
        util += _value(session, state_id, infoset, contempt, 0, 1.0, 1.0)
    util /= len(session.initial)
    session.trained_iterations += 1
    return util


def _value(session: "TrainingSession", state_id: int, infoset: Infoset,
           contempt: float, turn: int, reach_p0: float, reach_p1: float) -> float:
    player = turn % 2
    node = session.state(state_id)

    if node.score is not None:
        utility = terminal_utility(node.score, turn, contempt)
        return -utility if player == 1 else utility

    key = infoset.key(for_p0=player == 0)
    reach = reach_p0 if player == 0 else reach_p1
    strategy, explore = session.infosets.node(key, node.legal).get_strategy(reach, contempt)

    util = [0.0] * N_MOVES
    node_util = 0.0
    for mv in node.moves:
        if player == 0:
            child = _value(session, node.successors[mv], infoset.cons(mv), contempt, turn + 1,
                           reach_p0 * explore[mv], reach_p1)
        else:
            child = _value(session, node.successors[mv], infoset.cons(mv), contempt, turn + 1,
                           reach_p0, reach_p1 * explore[mv])
        util[mv] = -child
        node_util += strategy[mv] * util[mv]

    # re-fetch: the store may have grown during descent
    session.infosets.node(key, node.legal).add_regret(util, node_util, reach)
    return node_util
