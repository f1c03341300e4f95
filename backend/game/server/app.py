from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from game.logic.exceptions import (
    AlreadyCompletedError,
    CorruptedGameError,
    GameNotFoundError,
    InvalidSolutionError,
)
from game.logic.verifier import CompletionClaim
from game.server.rate_limit import RateLimitMiddleware
from game.server.settings import GameServerSettings
from game.server.types import BoardQuery, NewGameRequest, VerifyRequest
from game.session.manager import GameSessionManager
from shared.db import Database, SqliteGameRepository
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

DEFAULT_LEADERBOARD_LIMIT = 3
MAX_LEADERBOARD_LIMIT = 100

_M = TypeVar("_M", bound=BaseModel)


class _BodyTooLargeError(Exception):
    pass


async def _read_json(request: Request) -> object:
    settings: GameServerSettings = request.app.state.settings
    raw_body = await request.body()
    if len(raw_body) > settings.max_request_body_size:
        raise _BodyTooLargeError
    return json.loads(raw_body)


async def _parse_body(request: Request, model: type[_M]) -> _M | JSONResponse:
    """Parse and validate a JSON body, or return the 400/413 response to send."""
    try:
        body = await _read_json(request)
        return model.model_validate(body)
    except _BodyTooLargeError:
        return JSONResponse({"error": "Request body too large"}, status_code=413)
    except (ValueError, TypeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return JSONResponse({"error": "Invalid request body"}, status_code=400)


def _query_int(request: Request, name: str, *, default: int | None, low: int, high: int | None = None) -> int | None:
    """Parse an integer query parameter. Returns None when it is missing (without default) or invalid."""
    raw = request.query_params.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return None
    if value < low or (high is not None and value > high):
        return None
    return value


async def corrupted_game_handler(_request: Request, exc: Exception) -> JSONResponse:
    game_id = exc.game_id if isinstance(exc, CorruptedGameError) else None
    logger.error("request failed on corrupted game", game_id=game_id)
    return JSONResponse({"error": "Game data is corrupted"}, status_code=500)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def new_game(request: Request) -> JSONResponse:
    session_manager: GameSessionManager = request.app.state.session_manager

    parsed = await _parse_body(request, NewGameRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    result = await session_manager.new_game(parsed.player_address, parsed.contest_id)
    return JSONResponse({"gameId": result.game_id, "commitment": result.commitment})


async def get_game(request: Request) -> JSONResponse:
    session_manager: GameSessionManager = request.app.state.session_manager

    try:
        query = BoardQuery(
            gameId=request.path_params["game_id"],
            playerAddress=request.query_params.get("playerAddress", ""),
        )
    except ValidationError:
        return JSONResponse({"error": "Invalid game id or player address"}, status_code=400)

    try:
        view = await session_manager.get_board(query.game_id, query.player_address)
    except GameNotFoundError:
        return JSONResponse({"error": "Game not found or unauthorized"}, status_code=403)

    return JSONResponse(
        {
            "board": view.board.to_wire(),
            "difficulty": view.difficulty,
            "contestId": view.contest_id,
        },
    )


async def verify(request: Request) -> JSONResponse:
    session_manager: GameSessionManager = request.app.state.session_manager

    parsed = await _parse_body(request, VerifyRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    claim = CompletionClaim(
        player_address=parsed.player_address,
        moves=parsed.moves,
        elapsed_seconds=parsed.time_taken,
        solution=parsed.solution_state,
    )
    try:
        result = await session_manager.verify(parsed.game_id, claim)
    except GameNotFoundError:
        return JSONResponse({"error": "Game not found"}, status_code=404)
    except AlreadyCompletedError:
        return JSONResponse({"error": "Game already completed"}, status_code=409)
    except InvalidSolutionError as e:
        return JSONResponse({"error": "Invalid solution", "reason": e.reason}, status_code=422)

    return JSONResponse({"secret": result.secret, "proof": result.proof, "isValid": True})


async def leaderboard(request: Request) -> JSONResponse:
    session_manager: GameSessionManager = request.app.state.session_manager

    contest_id: int = request.path_params["contest_id"]
    limit = _query_int(request, "limit", default=DEFAULT_LEADERBOARD_LIMIT, low=1, high=MAX_LEADERBOARD_LIMIT)
    if limit is None:
        return JSONResponse({"error": f"limit must be between 1 and {MAX_LEADERBOARD_LIMIT}"}, status_code=400)

    entries = await session_manager.leaderboard(contest_id, limit)
    return JSONResponse(
        {
            "leaderboard": [
                {
                    "playerAddress": e.player,
                    "moves": e.moves,
                    "timeTaken": e.elapsed_seconds,
                    "completedAt": e.completed_at.isoformat() if e.completed_at else None,
                }
                for e in entries
            ],
        },
    )


async def payouts(request: Request) -> JSONResponse:
    session_manager: GameSessionManager = request.app.state.session_manager

    contest_id: int = request.path_params["contest_id"]
    pool = _query_int(request, "pool", default=None, low=0)
    if pool is None:
        return JSONResponse({"error": "pool must be a non-negative integer"}, status_code=400)

    distribution = await session_manager.payouts(contest_id, pool)
    return JSONResponse(
        {
            "platformFee": distribution.platform_fee,
            "distributable": distribution.distributable,
            "shares": [{"playerAddress": s.player, "amount": s.amount} for s in distribution.shares],
            "remainder": distribution.remainder,
            "fallbackRecipient": distribution.fallback_recipient,
        },
    )


def create_app(
    settings: GameServerSettings | None = None,
    session_manager: GameSessionManager | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GameServerSettings()

    # When the app creates its own GameSessionManager, it owns the DB lifecycle.
    owned_db: Database | None = None

    if session_manager is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        session_manager = GameSessionManager(
            SqliteGameRepository(db),
            game_ttl_seconds=settings.game_ttl_seconds,
            cleanup_interval_seconds=settings.cleanup_interval_seconds,
            platform_fee_bps=settings.platform_fee_bps,
            prize_weights=settings.prize_weights,
            fallback_recipient=settings.fallback_recipient,
        )

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/api/new-game", new_game, methods=["POST"]),
        Route("/api/game/{game_id}", get_game, methods=["GET"]),
        Route("/api/verify", verify, methods=["POST"]),
        Route("/api/leaderboard/{contest_id:int}", leaderboard, methods=["GET"]),
        Route("/api/leaderboard/{contest_id:int}/payouts", payouts, methods=["GET"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        session_manager.start_cleanup()
        yield
        await session_manager.stop_cleanup()
        if owned_db is not None:
            owned_db.close()

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={CorruptedGameError: corrupted_game_handler},
    )
    app.add_middleware(
        RateLimitMiddleware,  # type: ignore[arg-type]
        requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("challenge server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover  # deadcode: ignore
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = GameServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
