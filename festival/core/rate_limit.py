from __future__ import annotations
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict

import redis.asyncio as redis
from fastapi import Request

from .config import Settings

SWEEP_THRESHOLD = 10_000


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at_ms: int
    retry_after_seconds: int = 0


@dataclass
class _Entry:
    count: int
    reset_at_ms: int


def _now_ms() -> int:
    return int(time.time() * 1000)


class FixedWindowRateLimiter:
    """Per-process fixed-window counter. Does not coordinate across processes."""

    def __init__(self, max_entries: int = SWEEP_THRESHOLD):
        self.max_entries = max_entries
        self._store: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    def hit(self, key: str, *, limit: int, window_ms: int, now_ms: int | None = None) -> RateLimitResult:
        now = _now_ms() if now_ms is None else now_ms
        with self._lock:
            if len(self._store) > self.max_entries:
                self._sweep(now)

            current = self._store.get(key)
            if current is None or current.reset_at_ms <= now:
                reset_at = now + window_ms
                self._store[key] = _Entry(count=1, reset_at_ms=reset_at)
                return RateLimitResult(True, max(limit - 1, 0), reset_at)

            if current.count >= limit:
                retry = max(1, math.ceil((current.reset_at_ms - now) / 1000))
                return RateLimitResult(False, 0, current.reset_at_ms, retry)

            current.count += 1
            return RateLimitResult(True, max(limit - current.count, 0), current.reset_at_ms)

    async def check(self, key: str, *, limit: int, window_ms: int) -> RateLimitResult:
        return self.hit(key, limit=limit, window_ms=window_ms)

    def _sweep(self, now: int) -> None:
        expired = [k for k, e in self._store.items() if e.reset_at_ms <= now]
        for k in expired:
            del self._store[k]


class RedisRateLimiter:
    """Same fixed window, shared through Redis for multi-process deployments."""

    def __init__(self, client: redis.Redis, prefix: str = "rl"):
        self.client = client
        self.prefix = prefix

    async def check(self, key: str, *, limit: int, window_ms: int) -> RateLimitResult:
        rkey = f"{self.prefix}:{key}"
        pipe = self.client.pipeline()
        pipe.incr(rkey)
        # only the first hit of a window sets the expiry
        pipe.pexpire(rkey, window_ms, nx=True)
        pipe.pttl(rkey)
        count, _, ttl_ms = await pipe.execute()
        ttl_ms = int(ttl_ms) if int(ttl_ms) > 0 else window_ms
        reset_at = _now_ms() + ttl_ms
        count = int(count)
        if count > limit:
            return RateLimitResult(False, 0, reset_at, max(1, math.ceil(ttl_ms / 1000)))
        return RateLimitResult(True, max(limit - count, 0), reset_at)


def build_rate_limiter(settings: Settings):
    if settings.rate_limit_backend == "redis":
        return RedisRateLimiter(redis.from_url(settings.redis_url, decode_responses=True))
    return FixedWindowRateLimiter()


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = (request.headers.get(header) or "").strip()
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
