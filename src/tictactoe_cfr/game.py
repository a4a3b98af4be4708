"""
Game basics: board representation, rules, terminal scoring and state encodings.
Notes:
- Cells are small ints: 0=empty, 1=player 0, 2=player 1. Player 0 always starts.
- Each player privately "wants" one outcome (tie, p0 win, p1 win) and scores 1
  only if the realized outcome matches that wish.
- The first move is restricted to cells 0, 1 and 4; every other opening is a
  rotation of one of these.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Iterator, List, Optional, Tuple

N_MOVES = 9

EMPTY, P0, P1 = 0, 1, 2

FIRST_MOVES = (0, 1, 4)

WIN_PATTERNS = [
    [0, 1, 2], [3, 4, 5], [6, 7, 8],
    [0, 3, 6], [1, 4, 7], [2, 5, 8],
    [0, 4, 8], [2, 4, 6]
]


class Outcome(IntEnum):
    TIE = 0
    P0_WIN = 1
    P1_WIN = 2


OUTCOME_NAMES = {
    "tie": Outcome.TIE,
    "p0win": Outcome.P0_WIN,
    "p1win": Outcome.P1_WIN,
}


@dataclass(frozen=True)
class Infoset:
    """Public move history plus both private wishes.

    Only one of the privates is visible to a given player; see key().
    """
    history: int
    p0_private: int
    p1_private: int

    def cons(self, move: int) -> "Infoset":
        return replace(self, history=self.history * N_MOVES + move)

    def key(self, for_p0: bool) -> Tuple[int, int]:
        return (self.history, self.p0_private if for_p0 else self.p1_private)


@dataclass
class Board:
    p0_wants: Outcome
    p1_wants: Outcome
    cells: List[int] = field(default_factory=lambda: [EMPTY] * N_MOVES)
    turn: int = 0
    # base-9 move sequence with a leading sentinel digit 1
    history: int = 1

    def copy(self) -> "Board":
        return replace(self, cells=self.cells[:])


def possible_starts(p0_wants: Optional[Outcome] = None,
                    p1_wants: Optional[Outcome] = None) -> List[Board]:
    starts = []
    for p0 in Outcome:
        if p0_wants is not None and p0 != p0_wants:
            continue
        for p1 in Outcome:
            if p1_wants is not None and p1 != p1_wants:
                continue
            starts.append(Board(p0_wants=p0, p1_wants=p1))
    return starts


def next_to_move(board: Board) -> int:
    return P0 if board.turn % 2 == 0 else P1


def possible_moves(board: Board) -> List[int]:
    if board.turn >= N_MOVES:
        return []
    if board.turn == 0:
        return list(FIRST_MOVES)
    return [i for i, v in enumerate(board.cells) if v == EMPTY]


def play(board: Board, move: int) -> None:
    if not 0 <= move < N_MOVES or board.cells[move] != EMPTY:
        raise ValueError(f"Illegal move {move} on board {serialize_board(board)}")
    board.cells[move] = next_to_move(board)
    board.turn += 1
    board.history = board.history * N_MOVES + move


def play_moves(board: Board, moves) -> Board:
    for mv in moves:
        play(board, mv)
    return board


def get_winner(cells: List[int]) -> int:
    for pattern in WIN_PATTERNS:
        a, b, c = pattern
        v = cells[a]
        if v != EMPTY and v == cells[b] and v == cells[c]:
            return v
    return EMPTY


def score(board: Board) -> Optional[Tuple[Outcome, int, int]]:
    """Return (outcome, p0_util, p1_util) for a finished game, else None."""
    w = get_winner(board.cells)
    if w == P0:
        outcome = Outcome.P0_WIN
    elif w == P1:
        outcome = Outcome.P1_WIN
    elif board.turn >= N_MOVES:
        outcome = Outcome.TIE
    else:
        return None
    return outcome, int(board.p0_wants == outcome), int(board.p1_wants == outcome)


def base_infoset(board: Board) -> Infoset:
    return Infoset(
        history=board.history,
        p0_private=int(board.p0_wants),
        p1_private=int(board.p1_wants),
    )


def to_state(board: Board) -> int:
    value = 0
    for digit in [int(board.p0_wants), int(board.p1_wants)] + board.cells:
        value = value * 3 + digit
    return value


def from_state(state: int) -> Tuple[Outcome, Outcome, List[int]]:
    digits = []
    for _ in range(N_MOVES + 2):
        state, d = divmod(state, 3)
        digits.append(d)
    if state != 0:
        raise ValueError("State id out of range")
    digits.reverse()
    return Outcome(digits[0]), Outcome(digits[1]), digits[2:]


def serialize_board(board: Board) -> str:
    return ''.join(str(cell) for cell in board.cells)


def iter_history(history: int) -> Iterator[int]:
    """Yield the moves encoded in a history number, oldest first."""
    moves = []
    while history > 1:
        history, mv = divmod(history, N_MOVES)
        moves.append(mv)
    if history != 1:
        raise ValueError("History is missing its sentinel digit")
    return iter(reversed(moves))
