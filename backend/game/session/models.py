from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from game.logic.board import Board


@dataclass(frozen=True)
class NewGameResult:
    game_id: str
    commitment: str


@dataclass(frozen=True)
class BoardView:
    """What the owning player may see before completion."""

    board: Board
    difficulty: int
    contest_id: int


@dataclass(frozen=True)
class VerifiedCompletion:
    """Disclosure returned to the player for submission to the contest ledger."""

    secret: str
    proof: str
