from __future__ import annotations

import asyncio
import contextlib
import random
import secrets
from collections.abc import AsyncIterator, Callable, Hashable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

from game.logic.board import board_parameters_for_contest, generate_board
from game.logic.commitment import commit, generate_secret
from game.logic.exceptions import AlreadyCompletedError, GameNotFoundError, InvalidSolutionError
from game.logic.ranking import (
    DEFAULT_PLATFORM_FEE_BPS,
    DEFAULT_PRIZE_WEIGHTS,
    RankedEntry,
    compute_prize_distribution,
    rank_completions,
)
from game.logic.verifier import Accepted, RejectionReason, verify_completion
from game.session.models import BoardView, NewGameResult, VerifiedCompletion
from shared.dal.models import CompletionRecord, GameRecord

if TYPE_CHECKING:
    from game.logic.ranking import PrizeDistribution
    from game.logic.verifier import CompletionClaim
    from shared.dal.game_repository import GameRepository

logger = structlog.get_logger()

_K = TypeVar("_K", bound=Hashable)

DEFAULT_GAME_TTL_SECONDS = 86400  # 24 hours
DEFAULT_CLEANUP_INTERVAL_SECONDS = 300  # 5 minutes
GAME_ID_BYTES = 16


def _utcnow() -> datetime:
    return datetime.now(UTC)


class KeyedLocks(Generic[_K]):
    """One asyncio.Lock per key, dropped once no task holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[_K, asyncio.Lock] = {}
        self._users: dict[_K, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, key: _K) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class GameSessionManager:
    """Owns the game lifecycle: create, fetch board, verify, rank.

    Callers pass lowercase player addresses (see shared.validators.normalize_address).
    Verification for one game is serialized by a per-game asyncio.Lock and
    the repository's conditional update, so concurrent duplicate submissions
    yield exactly one acceptance.
    """

    def __init__(
        self,
        repository: GameRepository,
        *,
        game_ttl_seconds: int = DEFAULT_GAME_TTL_SECONDS,
        cleanup_interval_seconds: int = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        platform_fee_bps: int = DEFAULT_PLATFORM_FEE_BPS,
        prize_weights: tuple[int, ...] = DEFAULT_PRIZE_WEIGHTS,
        fallback_recipient: str = "",
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._game_ttl = timedelta(seconds=game_ttl_seconds)
        self._cleanup_interval = cleanup_interval_seconds
        self._platform_fee_bps = platform_fee_bps
        self._prize_weights = prize_weights
        self._fallback_recipient = fallback_recipient
        self._rng = rng
        self._clock = clock
        self._game_locks: KeyedLocks[str] = KeyedLocks()  # game_id
        self._new_game_locks: KeyedLocks[tuple[str, int]] = KeyedLocks()  # (player, contest)
        self._cleanup_task: asyncio.Task[None] | None = None

    def _expiry_cutoff(self) -> datetime:
        return self._clock() - self._game_ttl

    def _is_expired(self, game: GameRecord) -> bool:
        return not game.is_completed and game.created_at <= self._expiry_cutoff()

    async def new_game(self, player_address: str, contest_id: int) -> NewGameResult:
        """Return the player's open game for the contest, or create one."""
        async with self._new_game_locks.hold((player_address, contest_id)):
            stored = await self._open_or_create_game(player_address, contest_id)
        return NewGameResult(game_id=stored.game_id, commitment=stored.commitment)

    async def _open_or_create_game(self, player_address: str, contest_id: int) -> GameRecord:
        existing = await self._repository.find_open_game(player_address, contest_id)
        if existing is not None and not self._is_expired(existing):
            logger.info("returning open game", game_id=existing.game_id, contest_id=contest_id)
            return existing
        if existing is not None:
            await self.purge_expired()

        params = board_parameters_for_contest(contest_id)
        board = generate_board(params.width, params.height, params.mine_count, self._rng)
        secret = generate_secret()
        game = GameRecord(
            game_id=secrets.token_hex(GAME_ID_BYTES),
            player_address=player_address,
            contest_id=contest_id,
            difficulty=params.difficulty,
            board=board,
            secret=secret,
            commitment=commit(board, secret, player_address),
            created_at=self._clock(),
        )
        stored = await self._repository.create_game(game)
        logger.info(
            "game created",
            game_id=stored.game_id,
            contest_id=contest_id,
            player_address=player_address,
            width=params.width,
            height=params.height,
            mine_count=params.mine_count,
        )
        return stored

    async def _load_owned_game(self, game_id: str, player_address: str) -> GameRecord | None:
        game = await self._repository.get_game(game_id)
        if game is None or game.player_address != player_address or self._is_expired(game):
            return None
        return game

    async def get_board(self, game_id: str, player_address: str) -> BoardView:
        """Return the board to its owner. Anyone else gets GameNotFoundError."""
        game = await self._load_owned_game(game_id, player_address)
        if game is None:
            raise GameNotFoundError(f"game {game_id} not found or unauthorized")
        return BoardView(board=game.board, difficulty=game.difficulty, contest_id=game.contest_id)

    async def verify(self, game_id: str, claim: CompletionClaim) -> VerifiedCompletion:
        """Verify a completion, record it once, and disclose the secret and proof."""
        async with self._game_locks.hold(game_id):
            outcome, game = await self._verify_locked(game_id, claim)

        logger.info(
            "completion verified",
            game_id=game_id,
            contest_id=game.contest_id,
            moves=claim.moves,
            elapsed_seconds=claim.elapsed_seconds,
        )
        return VerifiedCompletion(secret=outcome.secret, proof=outcome.proof)

    async def _verify_locked(self, game_id: str, claim: CompletionClaim) -> tuple[Accepted, GameRecord]:
        """Run the verifier and persist the completion. Caller holds the per-game lock."""
        game = await self._load_owned_game(game_id, claim.player_address)
        now = self._clock()
        outcome = verify_completion(game, claim, now=now)

        if not isinstance(outcome, Accepted):
            logger.info("completion rejected", game_id=game_id, reason=outcome.reason, detail=outcome.detail)
            if outcome.reason == RejectionReason.NOT_FOUND:
                raise GameNotFoundError(f"game {game_id} not found")
            if outcome.reason == RejectionReason.ALREADY_COMPLETED:
                raise AlreadyCompletedError(f"game {game_id} already completed")
            raise InvalidSolutionError(outcome.detail)

        if game is None:  # pragma: no cover - verify_completion rejects a missing game
            raise GameNotFoundError(f"game {game_id} not found")
        completion = CompletionRecord(
            game_id=game.game_id,
            player_address=game.player_address,
            contest_id=game.contest_id,
            moves=claim.moves,
            elapsed_seconds=claim.elapsed_seconds,
            completed_at=now,
            board_size=f"{game.board.width}x{game.board.height}",
            mine_count=game.board.mine_count,
        )
        if not await self._repository.complete_game(completion):
            raise AlreadyCompletedError(f"game {game_id} already completed")
        return outcome, game

    async def leaderboard(self, contest_id: int, limit: int) -> list[RankedEntry]:
        """Best completion per player for a contest, best first."""
        completions = await self._repository.get_completions(contest_id)
        ranked = rank_completions(
            RankedEntry(
                player=c.player_address,
                moves=c.moves,
                elapsed_seconds=c.elapsed_seconds,
                completed_at=c.completed_at,
            )
            for c in completions
        )
        return ranked[:limit]

    async def payouts(self, contest_id: int, pool: int) -> PrizeDistribution:
        """Replay the prize split for a contest from recorded completions."""
        ranked = await self.leaderboard(contest_id, len(self._prize_weights))
        return compute_prize_distribution(
            ranked,
            pool,
            fallback_recipient=self._fallback_recipient,
            platform_fee_bps=self._platform_fee_bps,
            weights=self._prize_weights,
        )

    async def purge_expired(self) -> int:
        """Delete open games past the retention window. Return the count removed."""
        removed = await self._repository.purge_expired(self._expiry_cutoff())
        if removed:
            logger.info("purged expired games", count=removed)
        return removed

    def start_cleanup(self) -> None:
        """Start the periodic expiry cleanup background task."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup(self) -> None:
        """Stop the periodic expiry cleanup background task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                await self.purge_expired()
            except Exception:
                logger.exception("expired game cleanup failed")
