"""
Player-side board state: reveals, flags, move counting, and win detection.

Revealing a zero cell opens the connected zero region and its numbered
border. The region is walked with an explicit queue so large boards never
hit the interpreter recursion limit.
"""

from __future__ import annotations

from collections import deque
from enum import StrEnum
from typing import TYPE_CHECKING

from game.logic.board import MINE, neighbours

if TYPE_CHECKING:
    from game.logic.board import Board


class PlayStatus(StrEnum):
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class PlayState:
    """Mutable reveal/flag grid for one board.

    moves counts reveal clicks that changed the board; flag toggles and
    clicks on already revealed or flagged cells are free.
    """

    def __init__(self, board: Board) -> None:
        self.board = board
        self.revealed = [[False] * board.width for _ in range(board.height)]
        self.flagged = [[False] * board.width for _ in range(board.height)]
        self.moves = 0
        self.status = PlayStatus.PLAYING

    def reveal(self, x: int, y: int) -> int:
        """Reveal a cell. Return the number of newly revealed cells.

        Hitting a mine ends the game and exposes every mine.
        """
        if self.status != PlayStatus.PLAYING or self.revealed[y][x] or self.flagged[y][x]:
            return 0

        if self.board.is_mine(x, y):
            self.status = PlayStatus.LOST
            for mx, my, cell in self.board.cells():
                if cell == MINE:
                    self.revealed[my][mx] = True
            return 0

        opened = self._flood_reveal(x, y)
        self.moves += 1
        if self.is_won():
            self.status = PlayStatus.WON
        return opened

    def toggle_flag(self, x: int, y: int) -> None:
        if self.status != PlayStatus.PLAYING or self.revealed[y][x]:
            return
        self.flagged[y][x] = not self.flagged[y][x]

    def is_won(self) -> bool:
        return all(self.revealed[y][x] for x, y, cell in self.board.cells() if cell != MINE)

    def solution_state(self) -> list[list[bool]]:
        """Copy of the revealed grid, as submitted for verification."""
        return [list(row) for row in self.revealed]

    def _flood_reveal(self, x: int, y: int) -> int:
        width, height = self.board.width, self.board.height
        self.revealed[y][x] = True
        opened = 1
        if self.board.rows[y][x] != 0:
            return opened

        queue = deque([(x, y)])
        while queue:
            cx, cy = queue.popleft()
            for nx, ny in neighbours(cx, cy, width, height):
                if self.revealed[ny][nx] or self.flagged[ny][nx]:
                    continue
                self.revealed[ny][nx] = True
                opened += 1
                if self.board.rows[ny][nx] == 0:
                    queue.append((nx, ny))
        return opened


def play_to_win(board: Board) -> PlayState:
    """Reveal every safe cell, opening from the centre first.

    Used to drive a board to a verified-win state without guessing.
    """
    state = PlayState(board)
    state.reveal(board.width // 2, board.height // 2)
    for x, y, cell in board.cells():
        if cell != MINE and not state.revealed[y][x]:
            state.reveal(x, y)
    return state
