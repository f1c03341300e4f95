from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest
from starlette.testclient import TestClient

from game.server.app import create_app
from game.server.settings import GameServerSettings
from game.session.manager import GameSessionManager
from game.tests.helpers.games import FALLBACK, FrozenClock
from shared.db import Database, SqliteGameRepository

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    db = Database(tmp_path / "challenge.db")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def repository(database: Database) -> SqliteGameRepository:
    return SqliteGameRepository(database)


@pytest.fixture
def session_manager(repository: SqliteGameRepository, clock: FrozenClock) -> GameSessionManager:
    return GameSessionManager(
        repository,
        game_ttl_seconds=3600,
        cleanup_interval_seconds=60,
        fallback_recipient=FALLBACK,
        rng=random.Random(1234),
        clock=clock,
    )


@pytest.fixture
def settings(tmp_path: Path) -> GameServerSettings:
    return GameServerSettings(
        database_path=str(tmp_path / "app.db"),
        rate_limit_requests=1000,
        max_request_body_size=16384,
    )


@pytest.fixture
def app(settings: GameServerSettings, session_manager: GameSessionManager):
    return create_app(settings=settings, session_manager=session_manager)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
