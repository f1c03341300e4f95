"""SQLite-backed game repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from game.logic.exceptions import CorruptedBoardError, CorruptedGameError
from shared.dal.game_repository import GameRepository
from shared.dal.models import CompletionRecord, GameRecord, GameStatus

if TYPE_CHECKING:
    from datetime import datetime

    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteGameRepository(GameRepository):
    """SQLite implementation of GameRepository.

    Stores full game snapshots as JSON with indexed columns for queries.
    A partial unique index allows one open game per (player, contest), and
    completions are keyed by game id so each game is ranked at most once.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    @staticmethod
    def _decode_game(game_id: str, raw: str) -> GameRecord:
        try:
            return GameRecord.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, CorruptedBoardError) as exc:
            logger.error("corrupted game record", game_id=game_id, error=type(exc).__name__)
            raise CorruptedGameError(game_id) from exc

    async def create_game(self, game: GameRecord) -> GameRecord:
        """Insert a game record, or return the open game that won a concurrent insert."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO games (id, player_address, contest_id, status, created_at, data) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        game.game_id,
                        game.player_address,
                        game.contest_id,
                        game.status,
                        game.created_at.isoformat(),
                        game.model_dump_json(),
                    ),
                )
            except sqlite3.IntegrityError:
                row = self._db.connection.execute(
                    "SELECT id, data FROM games WHERE player_address = ? AND contest_id = ? AND status = ?",
                    (game.player_address, game.contest_id, GameStatus.IN_PROGRESS),
                ).fetchone()
                if row is None:
                    raise
                logger.warning("open game already exists, returning it", game_id=row[0], contest_id=game.contest_id)
                return self._decode_game(row[0], row[1])
            return game

    async def find_open_game(self, player_address: str, contest_id: int) -> GameRecord | None:
        """Return the in-progress game for (player, contest), expired or not."""
        row = self._db.connection.execute(
            "SELECT id, data FROM games WHERE player_address = ? AND contest_id = ? AND status = ?",
            (player_address, contest_id, GameStatus.IN_PROGRESS),
        ).fetchone()
        if row is None:
            return None
        return self._decode_game(row[0], row[1])

    async def get_game(self, game_id: str) -> GameRecord | None:
        """Retrieve a single game by its id."""
        row = self._db.connection.execute(
            "SELECT data FROM games WHERE id = ?",
            (game_id,),
        ).fetchone()
        if row is None:
            return None
        return self._decode_game(game_id, row[0])

    async def complete_game(self, completion: CompletionRecord) -> bool:
        """Flip in_progress -> completed and insert the completion in one transaction."""
        completed_at_iso = completion.completed_at.isoformat()
        async with self._lock:
            conn = self._db.connection
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    "UPDATE games SET "
                    "status = ?, "
                    "data = json_set(data, "
                    "  '$.status', ?, "
                    "  '$.moves', ?, "
                    "  '$.elapsed_seconds', ?, "
                    "  '$.completed_at', ? "
                    ") "
                    "WHERE id = ? AND status = ?",
                    (
                        GameStatus.COMPLETED,
                        GameStatus.COMPLETED,
                        completion.moves,
                        completion.elapsed_seconds,
                        completed_at_iso,
                        completion.game_id,
                        GameStatus.IN_PROGRESS,
                    ),
                )
                if cursor.rowcount == 0:
                    conn.execute("ROLLBACK")
                    logger.warning("complete_game had no effect (not found or already completed)", game_id=completion.game_id)
                    return False
                conn.execute(
                    "INSERT INTO completions "
                    "(game_id, player_address, contest_id, moves, elapsed_seconds, completed_at, data) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        completion.game_id,
                        completion.player_address,
                        completion.contest_id,
                        completion.moves,
                        completion.elapsed_seconds,
                        completed_at_iso,
                        completion.model_dump_json(),
                    ),
                )
                conn.execute("COMMIT")
            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK")
                logger.warning("completion already recorded", game_id=completion.game_id)
                return False
            except Exception:
                conn.execute("ROLLBACK")
                raise
            return True

    async def get_completions(self, contest_id: int) -> list[CompletionRecord]:
        """All completions for a contest, best score first."""
        rows = self._db.connection.execute(
            "SELECT game_id, data FROM completions WHERE contest_id = ? ORDER BY moves, elapsed_seconds, completed_at",
            (contest_id,),
        ).fetchall()
        completions: list[CompletionRecord] = []
        for game_id, raw in rows:
            try:
                completions.append(CompletionRecord.model_validate_json(raw))
            except ValidationError:
                logger.error("corrupted completion record skipped", game_id=game_id, contest_id=contest_id)
        return completions

    async def purge_expired(self, created_before: datetime) -> int:
        async with self._lock:
            cursor = self._db.connection.execute(
                "DELETE FROM games WHERE status = ? AND created_at <= ?",
                (GameStatus.IN_PROGRESS, created_before.isoformat()),
            )
            return cursor.rowcount
