"""Tests for the token bucket and the per-client API rate limit middleware."""

from unittest.mock import patch

from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from game.server.rate_limit import RateLimitMiddleware, TokenBucket


class TestTokenBucket:
    def test_burst_then_empty(self):
        bucket = TokenBucket(rate=1.0, burst=3)
        assert [bucket.consume() for _ in range(4)] == [True, True, True, False]

    def test_refill_after_time_passes(self):
        bucket = TokenBucket(rate=4.0, burst=2)
        bucket.consume()
        bucket.consume()
        assert bucket.consume() is False

        # 0.25s at 4 tokens/s refills exactly one token
        with patch("game.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = bucket._last_refill + 0.25
            assert bucket.consume() is True
            assert bucket.consume() is False

    def test_refill_capped_at_burst(self):
        bucket = TokenBucket(rate=100.0, burst=3)
        with patch("game.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = bucket._last_refill + 60.0
            assert [bucket.consume() for _ in range(4)] == [True, True, True, False]


async def _ok(_request):
    return JSONResponse({"ok": True})


def _client(requests: int, max_clients: int = 100) -> TestClient:
    app = Starlette(routes=[Route("/api/thing", _ok), Route("/health", _ok)])
    app.add_middleware(RateLimitMiddleware, requests=requests, window_seconds=3600, max_clients=max_clients)  # type: ignore[arg-type]
    return TestClient(app)


class TestRateLimitMiddleware:
    def test_throttles_after_budget(self):
        client = _client(requests=2)
        assert client.get("/api/thing").status_code == 200
        assert client.get("/api/thing").status_code == 200

        response = client.get("/api/thing")
        assert response.status_code == 429
        assert response.json() == {"error": "Too many requests"}

    def test_non_api_paths_are_not_limited(self):
        client = _client(requests=1)
        client.get("/api/thing")
        assert all(client.get("/health").status_code == 200 for _ in range(5))

    def test_buckets_are_per_client(self):
        middleware = RateLimitMiddleware(_ok, requests=1, window_seconds=60)
        assert middleware._bucket_for("10.0.0.1").consume() is True
        assert middleware._bucket_for("10.0.0.1").consume() is False
        assert middleware._bucket_for("10.0.0.2").consume() is True

    def test_least_recent_client_evicted(self):
        middleware = RateLimitMiddleware(_ok, requests=1, window_seconds=60, max_clients=2)
        middleware._bucket_for("a").consume()
        middleware._bucket_for("b")
        middleware._bucket_for("c")
        assert list(middleware._buckets) == ["b", "c"]
        # "a" was forgotten, so it starts with a full bucket again
        assert middleware._bucket_for("a").consume() is True
