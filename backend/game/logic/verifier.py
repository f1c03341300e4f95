"""
Completion verification: decide whether a submitted board proves a win.

Checks run in a fixed order and the first failure wins:
1. the game exists and belongs to the claiming player (NOT_FOUND)
2. the game has not already been completed (ALREADY_COMPLETED)
3. the solution grid reveals every safe cell and no mine (INVALID_SOLUTION)
4. move count and elapsed time are within sane bounds (INVALID_SOLUTION)

The verifier is pure. Persisting the completion (and making the
already-completed check atomic with that write) is the session manager's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from game.logic.board import MINE
from game.logic.commitment import HEX_PREFIX, reveal_proof

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from shared.dal.models import GameRecord

MAX_ELAPSED_SECONDS = 86400
CLOCK_SKEW_SECONDS = 60


class RejectionReason(StrEnum):
    NOT_FOUND = "not_found"
    ALREADY_COMPLETED = "already_completed"
    INVALID_SOLUTION = "invalid_solution"


@dataclass(frozen=True)
class CompletionClaim:
    """What the player submits: who they are, their score, and the revealed grid."""

    player_address: str
    moves: int
    elapsed_seconds: int
    solution: Sequence[Sequence[bool]]


@dataclass(frozen=True)
class Accepted:
    secret: str  # 0x-prefixed
    proof: str


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    detail: str = ""


VerificationOutcome = Accepted | Rejected


def _solution_error(game: GameRecord, solution: Sequence[Sequence[bool]]) -> str | None:
    board = game.board
    if len(solution) != board.height or any(len(row) != board.width for row in solution):
        return f"solution grid must be {board.width}x{board.height}"
    for x, y, cell in board.cells():
        revealed = solution[y][x] is True
        if cell == MINE and revealed:
            return "solution reveals a mine"
        if cell != MINE and not revealed:
            return "solution leaves a safe cell hidden"
    return None


def _bounds_error(game: GameRecord, claim: CompletionClaim, now: datetime) -> str | None:
    max_moves = game.board.safe_cell_count
    if not 1 <= claim.moves <= max_moves:
        return f"moves must be between 1 and {max_moves}"
    if not 1 <= claim.elapsed_seconds <= MAX_ELAPSED_SECONDS:
        return f"elapsed time must be between 1 and {MAX_ELAPSED_SECONDS} seconds"
    game_age = (now - game.created_at).total_seconds()
    if claim.elapsed_seconds > game_age + CLOCK_SKEW_SECONDS:
        return "elapsed time exceeds the age of the game"
    return None


def verify_completion(
    game: GameRecord | None,
    claim: CompletionClaim,
    *,
    now: datetime,
) -> VerificationOutcome:
    """Verify a completion claim against the stored game.

    On success returns the secret and the reveal proof bound to
    (game_id, moves, elapsed_seconds, player_address).
    """
    if game is None or game.player_address.lower() != claim.player_address.lower():
        return Rejected(RejectionReason.NOT_FOUND)

    if game.is_completed:
        return Rejected(RejectionReason.ALREADY_COMPLETED)

    error = _solution_error(game, claim.solution) or _bounds_error(game, claim, now)
    if error is not None:
        return Rejected(RejectionReason.INVALID_SOLUTION, error)

    proof = reveal_proof(game.game_id, claim.moves, claim.elapsed_seconds, game.player_address, game.secret)
    return Accepted(secret=HEX_PREFIX + game.secret, proof=proof)
