"""Shared pytest fixtures for the CFR trainer tests."""

import pytest

from tictactoe_cfr.game import play_moves, possible_starts
from tictactoe_cfr.graph import map_game

# P0 holds 0 and 4, P1 holds 1 and 2; P0 to move and can win at 8.
WINNABLE = [4, 1, 0, 2]
# P0 holds 4 and 8, P1 holds 0 and 2; P0 must block at 1.
QUIET = [4, 0, 8, 2]


def midgame_starts(moves):
    return [play_moves(b, moves) for b in possible_starts()]


@pytest.fixture
def winnable_session():
    return map_game(midgame_starts(WINNABLE))


@pytest.fixture
def quiet_session():
    return map_game(midgame_starts(QUIET))


@pytest.fixture(scope="module")
def full_session():
    return map_game()
