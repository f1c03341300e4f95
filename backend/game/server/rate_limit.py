"""Token bucket rate limiting for the challenge API."""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

logger = structlog.get_logger()

MAX_TRACKED_CLIENTS = 10_000
_RATE_LIMITED_BODY = json.dumps({"error": "Too many requests"}).encode()


class TokenBucket:
    """Rate limiter using the token bucket algorithm.

    Tokens are added at a constant rate up to a maximum burst capacity.
    Each consume() call removes one token; returns False when the bucket
    is empty (caller should throttle).
    """

    def __init__(self, rate: float, burst: int) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()

    def consume(self) -> bool:
        """Try to consume one token. Returns True if allowed, False if rate-limited."""
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self._burst, self._tokens + elapsed * self._rate)
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False


class RateLimitMiddleware:
    """Throttle /api/ requests per client host.

    Each client gets `requests` tokens refilled over `window_seconds`.
    Buckets are kept in LRU order and the least recently seen client is
    dropped once MAX_TRACKED_CLIENTS is reached.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        requests: int,
        window_seconds: float,
        path_prefix: str = "/api/",
        max_clients: int = MAX_TRACKED_CLIENTS,
    ) -> None:
        self.app = app
        self._rate = requests / window_seconds
        self._burst = requests
        self._path_prefix = path_prefix
        self._max_clients = max_clients
        self._buckets: OrderedDict[str, TokenBucket] = OrderedDict()

    def _bucket_for(self, client: str) -> TokenBucket:
        bucket = self._buckets.get(client)
        if bucket is None:
            if len(self._buckets) >= self._max_clients:
                self._buckets.popitem(last=False)
            bucket = TokenBucket(rate=self._rate, burst=self._burst)
            self._buckets[client] = bucket
        else:
            self._buckets.move_to_end(client)
        return bucket

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(self._path_prefix):
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        host = client[0] if client else "unknown"
        if self._bucket_for(host).consume():
            await self.app(scope, receive, send)
            return

        logger.warning("rate limited", client=host, path=scope["path"])
        await send(
            {
                "type": "http.response.start",
                "status": 429,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(_RATE_LIMITED_BODY)).encode()),
                ],
            },
        )
        await send({"type": "http.response.body", "body": _RATE_LIMITED_BODY})
