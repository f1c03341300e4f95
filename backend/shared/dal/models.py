"""Persistence models for the data access layer."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator

from game.logic.board import Board


class GameStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class GameRecord(BaseModel, frozen=True):
    """One game attempt: the private board and secret plus its public commitment."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    game_id: str
    player_address: str  # lowercase 0x address
    contest_id: int
    difficulty: int
    board: Board
    secret: str  # 64 hex chars, no 0x prefix; never leaves the server before verification
    commitment: str
    created_at: datetime
    status: GameStatus = GameStatus.IN_PROGRESS
    moves: int | None = None
    elapsed_seconds: int | None = None
    completed_at: datetime | None = None

    @field_validator("board", mode="before")
    @classmethod
    def _parse_board(cls, v: Any) -> Board:  # noqa: ANN401
        if isinstance(v, Board):
            return v
        return Board.from_wire(v)

    @field_serializer("board")
    def _serialize_board(self, board: Board) -> list[list[int | str]]:
        return board.to_wire()

    @property
    def is_completed(self) -> bool:
        return self.status == GameStatus.COMPLETED


class CompletionRecord(BaseModel, frozen=True):
    """Immutable leaderboard row, written exactly once per verified game."""

    game_id: str
    player_address: str
    contest_id: int
    moves: int
    elapsed_seconds: int
    completed_at: datetime
    board_size: str  # "WxH"
    mine_count: int
