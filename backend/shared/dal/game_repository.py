"""Abstract interface for game and completion persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from shared.dal.models import CompletionRecord, GameRecord


class GameRepository(ABC):
    """Abstract interface for game and completion persistence."""

    @abstractmethod
    async def create_game(self, game: GameRecord) -> GameRecord:
        """Insert a game. When the player already has an open game in the contest, return that one instead."""

    @abstractmethod
    async def find_open_game(self, player_address: str, contest_id: int) -> GameRecord | None: ...

    @abstractmethod
    async def get_game(self, game_id: str) -> GameRecord | None: ...

    @abstractmethod
    async def complete_game(self, completion: CompletionRecord) -> bool:
        """Mark the game completed and store the completion atomically.

        Return False (and change nothing) when the game is not in progress.
        """

    @abstractmethod
    async def get_completions(self, contest_id: int) -> list[CompletionRecord]: ...

    @abstractmethod
    async def purge_expired(self, created_before: datetime) -> int:
        """Delete unfinished games created at or before the cutoff. Return the count removed."""
