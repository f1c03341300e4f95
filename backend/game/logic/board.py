"""
Minefield generation with a guaranteed mine-free opening block.

Mines are placed by rejection sampling over the whole grid: a uniformly
random cell is drawn and discarded if it falls inside the 3x3 safe block
centred on the grid or is already mined. After placement every non-mine
cell stores the number of mines among its up-to-8 in-grid neighbours.

Randomness defaults to random.SystemRandom (OS entropy) so each board is
unpredictable; tests pass a seeded random.Random for reproducible boards.
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from game.logic.exceptions import (
    CorruptedBoardError,
    GeneratorExhaustedError,
    InvalidBoardParametersError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

MINE: Literal["X"] = "X"
MIN_DIMENSION = 3
SAFE_RADIUS = 1  # 3x3 block around the centre
MAX_MINE_DENSITY = 0.5  # of the cells outside the safe block
MAX_DIFFICULTY = 10
BASE_DIFFICULTY = 3
BASE_SIZE = 8

Cell = int | Literal["X"]

_NEIGHBOUR_OFFSETS = tuple((dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dx, dy) != (0, 0))


@dataclass(frozen=True, slots=True)
class Board:
    """Immutable minefield. rows[y][x] is either MINE or an adjacency count."""

    rows: tuple[tuple[Cell, ...], ...]

    @property
    def width(self) -> int:
        return len(self.rows[0])

    @property
    def height(self) -> int:
        return len(self.rows)

    @property
    def mine_count(self) -> int:
        return sum(1 for row in self.rows for cell in row if cell == MINE)

    @property
    def safe_cell_count(self) -> int:
        return self.width * self.height - self.mine_count

    def is_mine(self, x: int, y: int) -> bool:
        return self.rows[y][x] == MINE

    def cells(self) -> Iterator[tuple[int, int, Cell]]:
        """Yield (x, y, cell) in row-major order."""
        for y, row in enumerate(self.rows):
            for x, cell in enumerate(row):
                yield x, y, cell

    def to_wire(self) -> list[list[Cell]]:
        return [list(row) for row in self.rows]

    def serialize(self) -> str:
        """Canonical compact JSON form used as commitment input."""
        return json.dumps(self.to_wire(), separators=(",", ":"))

    @classmethod
    def from_wire(cls, rows: Sequence[Sequence[object]]) -> Board:
        """Rebuild a board from its wire form, validating shape and cell values.

        Raises CorruptedBoardError when the grid is ragged, too small, holds
        values other than MINE or 0..8, or has counts that disagree with the
        mine layout.
        """
        if not rows or not all(isinstance(row, (list, tuple)) for row in rows):
            raise CorruptedBoardError("board must be a non-empty list of rows")
        width = len(rows[0])
        if width < MIN_DIMENSION or len(rows) < MIN_DIMENSION:
            raise CorruptedBoardError(f"board smaller than {MIN_DIMENSION}x{MIN_DIMENSION}")
        if any(len(row) != width for row in rows):
            raise CorruptedBoardError("board rows have unequal lengths")

        parsed: list[tuple[Cell, ...]] = []
        for row in rows:
            out: list[Cell] = []
            for cell in row:
                if cell == MINE:
                    out.append(MINE)
                elif isinstance(cell, int) and not isinstance(cell, bool) and 0 <= cell <= len(_NEIGHBOUR_OFFSETS):
                    out.append(cell)
                else:
                    raise CorruptedBoardError(f"invalid cell value {cell!r}")
            parsed.append(tuple(out))

        board = cls(rows=tuple(parsed))
        mines = {(x, y) for x, y, cell in board.cells() if cell == MINE}
        if board.rows != _with_counts(board.width, board.height, mines).rows:
            raise CorruptedBoardError("adjacency counts do not match mine layout")
        return board


@dataclass(frozen=True, slots=True)
class BoardParameters:
    difficulty: int
    width: int
    height: int
    mine_count: int


def board_parameters_for_contest(contest_id: int) -> BoardParameters:
    """
    Derive board size and mine count from the contest id.

    Difficulty grows by one every ten contests, starting at 3 and capped at 10.
    Density is 12% plus 1% per difficulty level, floored to a whole mine.
    """
    difficulty = min(BASE_DIFFICULTY + max(contest_id, 0) // 10, MAX_DIFFICULTY)
    size = BASE_SIZE + difficulty
    mine_count = size * size * (12 + difficulty) // 100
    return BoardParameters(difficulty=difficulty, width=size, height=size, mine_count=mine_count)


def safe_block(width: int, height: int) -> frozenset[tuple[int, int]]:
    """Cells of the mine-free block centred on (width // 2, height // 2)."""
    cx, cy = width // 2, height // 2
    return frozenset(
        (x, y)
        for y in range(cy - SAFE_RADIUS, cy + SAFE_RADIUS + 1)
        for x in range(cx - SAFE_RADIUS, cx + SAFE_RADIUS + 1)
        if 0 <= x < width and 0 <= y < height
    )


def neighbours(x: int, y: int, width: int, height: int) -> Iterator[tuple[int, int]]:
    """Yield in-grid Moore neighbours of (x, y)."""
    for dx, dy in _NEIGHBOUR_OFFSETS:
        nx, ny = x + dx, y + dy
        if 0 <= nx < width and 0 <= ny < height:
            yield nx, ny


def _with_counts(width: int, height: int, mines: set[tuple[int, int]]) -> Board:
    rows: list[tuple[Cell, ...]] = []
    for y in range(height):
        row: list[Cell] = []
        for x in range(width):
            if (x, y) in mines:
                row.append(MINE)
            else:
                row.append(sum(1 for n in neighbours(x, y, width, height) if n in mines))
        rows.append(tuple(row))
    return Board(rows=tuple(rows))


def _validate_parameters(width: int, height: int, mine_count: int) -> None:
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        raise InvalidBoardParametersError(
            f"board must be at least {MIN_DIMENSION}x{MIN_DIMENSION}, got {width}x{height}",
        )
    if mine_count < 0 or mine_count >= width * height:
        raise InvalidBoardParametersError(f"mine count must be in [0, {width * height}), got {mine_count}")

    placeable = width * height - len(safe_block(width, height))
    if mine_count > placeable * MAX_MINE_DENSITY:
        raise GeneratorExhaustedError(
            f"{mine_count} mines exceed the {MAX_MINE_DENSITY:.0%} density limit for a "
            f"{width}x{height} board ({placeable} cells outside the safe block)",
        )


def generate_board(
    width: int,
    height: int,
    mine_count: int,
    rng: random.Random | None = None,
) -> Board:
    """
    Generate a minefield with mine_count mines and a mine-free centre block.

    Raises InvalidBoardParametersError for dimensions below the minimum or a
    mine count outside [0, width * height), and GeneratorExhaustedError when
    the density is too high to place mines outside the safe block.
    """
    _validate_parameters(width, height, mine_count)
    if rng is None:
        rng = random.SystemRandom()

    reserved = safe_block(width, height)
    mines: set[tuple[int, int]] = set()
    while len(mines) < mine_count:
        cell = (rng.randrange(width), rng.randrange(height))
        if cell in reserved or cell in mines:
            continue
        mines.add(cell)

    return _with_counts(width, height, mines)
