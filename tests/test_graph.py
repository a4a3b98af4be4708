import pytest

from tictactoe_cfr.game import (
    EMPTY,
    base_infoset,
    from_state,
    play,
    possible_moves,
    possible_starts,
    score,
    to_state,
)
from tictactoe_cfr.graph import map_game

from conftest import QUIET, midgame_starts


def _reachable_boards():
    """All distinct (wishes, cells) reachable by legal play, stopping at terminals."""
    seen = {}
    stack = possible_starts()
    while stack:
        board = stack.pop()
        key = (board.p0_wants, board.p1_wants, tuple(board.cells))
        if key in seen:
            continue
        seen[key] = board
        if score(board) is not None:
            continue
        for mv in possible_moves(board):
            child = board.copy()
            play(child, mv)
            stack.append(child)
    return seen


def test_initial_states_sorted_and_complete(full_session):
    assert len(full_session.initial) == 9
    ids = [s for s, _ in full_session.initial]
    assert ids == sorted(ids)
    by_id = {to_state(b): base_infoset(b) for b in possible_starts()}
    assert dict(full_session.initial) == by_id
    assert all(iset.history == 1 for _, iset in full_session.initial)


def test_every_reachable_board_has_a_node_and_ids_do_not_collide(full_session):
    boards = _reachable_boards()
    ids = {to_state(b) for b in boards.values()}
    assert len(ids) == len(boards)
    present = {i for i, node in enumerate(full_session.states) if node is not None}
    assert present == ids
    assert len(full_session.states) == max(ids) + 1


def test_terminals_have_no_successors_and_edges_advance_one_turn(full_session):
    for i, node in enumerate(full_session.states):
        if node is None:
            continue
        _, _, cells = from_state(i)
        filled = sum(1 for c in cells if c != EMPTY)
        if node.score is not None:
            assert all(s is None for s in node.successors)
            continue
        assert any(s is not None for s in node.successors)
        for mv, succ in enumerate(node.successors):
            if succ is None:
                continue
            assert full_session.states[succ] is not None
            _, _, child_cells = from_state(succ)
            assert cells[mv] == EMPTY and child_cells[mv] != EMPTY
            assert sum(1 for c in child_cells if c != EMPTY) == filled + 1


def test_terminal_scores_are_utility_pairs(full_session):
    for i, node in enumerate(full_session.states):
        if node is None or node.score is None:
            continue
        p0, p1, cells = from_state(i)
        assert node.score in {(0, 0), (0, 1), (1, 0), (1, 1)}
        if p0 == p1:
            assert node.score[0] == node.score[1]


def test_first_move_only_reaches_three_openings(full_session):
    for state_id, _ in full_session.initial:
        node = full_session.state(state_id)
        assert [mv for mv, s in enumerate(node.successors) if s is not None] == [0, 1, 4]


def test_midgame_starts_restrict_the_graph(full_session):
    session = map_game(midgame_starts(QUIET))
    assert len(session.initial) == 9
    assert all(iset.history > 9 ** 4 for _, iset in session.initial)
    n_small = sum(1 for n in session.states if n is not None)
    n_full = sum(1 for n in full_session.states if n is not None)
    assert 0 < n_small < n_full


def test_missing_state_lookup_fails(full_session):
    hole = next(i for i, n in enumerate(full_session.states) if n is None)
    with pytest.raises(RuntimeError):
        full_session.state(hole)


def test_empty_start_set_is_rejected():
    with pytest.raises(RuntimeError):
        map_game([])


def test_start_board_is_not_mutated():
    start = possible_starts()[0]
    map_game([start])
    assert start.turn == 0 and start.cells == [EMPTY] * 9
