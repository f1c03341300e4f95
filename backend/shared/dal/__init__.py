"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.game_repository import GameRepository
from shared.dal.models import CompletionRecord, GameRecord, GameStatus

__all__ = [
    "CompletionRecord",
    "GameRecord",
    "GameRepository",
    "GameStatus",
]
