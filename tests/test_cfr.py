import numpy as np
import pytest

from tictactoe_cfr.cfr import contempt_schedule, terminal_utility, train
from tictactoe_cfr.game import Infoset, Outcome, base_infoset, play_moves, possible_starts
from tictactoe_cfr.graph import map_game
from tictactoe_cfr.infosets import InfosetNode, InfosetStore
from tictactoe_cfr.session import StateNode, TrainingSession

from conftest import QUIET, WINNABLE, midgame_starts


def test_contempt_schedule_decays_to_floor():
    assert contempt_schedule(0) == pytest.approx(0.5)
    assert contempt_schedule(5000) == pytest.approx(0.25)
    assert contempt_schedule(9990) == pytest.approx(0.01)
    assert contempt_schedule(40000) == pytest.approx(0.01)
    assert contempt_schedule(50, contempt_iterations=100) == pytest.approx(0.25)


@pytest.mark.parametrize(
    "score_pair,turn,contempt,expected",
    [
        ((1, 0), 5, 0.0, 1.0),
        ((1, 0), 5, 0.4, 1.2),   # adj turn 2 -> half bonus
        ((0, 1), 6, 0.4, -1.1),  # adj turn 3 -> quarter bonus
        ((1, 1), 5, 0.4, 0.0),
        ((0, 0), 5, 0.4, 0.0),
        ((1, 0), 9, 0.4, 1.0),   # adj turn 4 -> no bonus
    ],
)
def test_terminal_utility_bonus(score_pair, turn, contempt, expected):
    assert terminal_utility(score_pair, turn, contempt) == pytest.approx(expected)


def test_train_counts_iterations_and_keeps_utility_bounded(quiet_session):
    for i, contempt in enumerate([0.5, 0.3, 0.1, 0.05, 0.01]):
        util = train(quiet_session, contempt)
        assert quiet_session.trained_iterations == i + 1
        assert -1.0 <= util <= 1.0


def test_session_train_method_delegates(quiet_session):
    quiet_session.train(0.2)
    quiet_session.train(0.1)
    assert quiet_session.trained_iterations == 2
    assert len(quiet_session.infosets) > 0


def test_infosets_ignore_opponent_wish(winnable_session):
    train(winnable_session, 0.1)
    root = base_infoset(play_moves(possible_starts()[0], WINNABLE)).history
    root_keys = sorted(k for k in winnable_session.infosets if k[0] == root)
    # 9 start boards, but player 0 only sees its own wish
    assert root_keys == [(root, 0), (root, 1), (root, 2)]
    for history, private in winnable_session.infosets:
        assert private in (0, 1, 2)


def test_infoset_legal_matches_graph(winnable_session):
    train(winnable_session, 0.1)
    state_id, iset = winnable_session.initial[0]
    node = winnable_session.state(state_id)
    learned = winnable_session.infosets.get(iset.key(for_p0=True))
    assert tuple(learned.legal.tolist()) == node.legal_mask()
    assert [mv for mv, ok in enumerate(node.legal_mask()) if ok] == [3, 5, 6, 7, 8]


def test_player_who_wants_to_win_learns_the_winning_move(winnable_session):
    for _ in range(20):
        train(winnable_session, 0.1)
    root = base_infoset(play_moves(possible_starts()[0], WINNABLE)).history
    avg = winnable_session.infosets.get((root, int(Outcome.P0_WIN))).get_average_strategy()
    assert int(np.argmax(avg)) == 8
    assert avg[8] > 0.8


def test_training_is_deterministic(quiet_session):
    other = map_game(midgame_starts(QUIET))
    a = [train(quiet_session, c) for c in (0.4, 0.2, 0.1)]
    b = [train(other, c) for c in (0.4, 0.2, 0.1)]
    assert a == b
    for key, node in quiet_session.infosets.sorted_items():
        twin = other.infosets.get(key)
        assert np.array_equal(node.regret_sum, twin.regret_sum)
        assert np.array_equal(node.strategy_sum, twin.strategy_sum)


def _tiny_session():
    """Three decisions, hand-wired.

    root (p0) -- 0 --> terminal (1, 0)
              -- 1 --> p1 node -- 0 --> terminal (0, 1)
                               -- 1 --> p0 node -- 0 --> terminal (1, 0)
                                                -- 1 --> terminal (0, 0)
    """
    two = (0, 1) + (None,) * 7

    def moves_to(a, b):
        return (a, b) + (None,) * 7

    states = [
        StateNode(successors=moves_to(1, 2)),
        StateNode(score=(1, 0)),
        StateNode(successors=moves_to(3, 5)),
        StateNode(score=(0, 1)),
        None,
        StateNode(successors=moves_to(6, 7)),
        StateNode(score=(1, 0)),
        StateNode(score=(0, 0)),
    ]
    legal = [ok is not None for ok in two]
    # regret 3:1 at the root so the blended strategy differs from the plain one
    root = InfosetNode(legal, regret_sum=np.array([3, 1] + [0] * 7, dtype=np.float32))
    return TrainingSession(
        initial=[(0, Infoset(history=1, p0_private=1, p1_private=2))],
        states=states,
        infosets=InfosetStore({(1, 1): root}),
    )


def test_single_iteration_update_rules_on_hand_built_tree():
    session = _tiny_session()
    util = train(session, 0.3)

    # root: strategy (0.75, 0.25), blended (0.675, 0.325).
    # move 0 ends at turn 1 with bonus 0.3 -> 1.3; move 1 is worth -0.30625
    root = session.infosets.get((1, 1))
    assert np.allclose(root.strategy_sum[:2], [0.75, 0.25])
    assert util == pytest.approx(0.75 * 1.3 + 0.25 * -0.30625)
    assert np.allclose(root.regret_sum[:2], [3 + 1.3 - util, 1 - 0.30625 - util])

    # player 1 acts with its own reach 1.0 (player 0 reached it with 0.325)
    p1 = session.infosets.get((10, 2))
    assert np.allclose(p1.strategy_sum[:2], [0.5, 0.5])
    assert np.allclose(p1.regret_sum[:2], [0.91875, -0.91875])

    # player 0 again, reached with the blended probability 0.325 of move 1
    deep = session.infosets.get((91, 1))
    assert np.allclose(deep.strategy_sum[:2], [0.1625, 0.1625])
    assert np.allclose(deep.regret_sum[:2], [0.325 * 0.6125, -0.325 * 0.6125])

    for node in (root, p1, deep):
        assert not node.regret_sum[2:].any() and not node.strategy_sum[2:].any()
    assert len(session.infosets) == 3
