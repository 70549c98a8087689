"""Sliding-window rate limiters for inbound webhooks."""

from collections import defaultdict, deque
from typing import Callable, Deque, Dict
import redis.asyncio as redis
import time
import uuid


class RateLimiter:
    """Rate limiter using Redis sorted sets, shared across processes."""

    def __init__(self, redis_url: str, prefix: str = "rate_limit"):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix

    async def check_rate_limit(
        self,
        key: str,
        limit: int = 60,
        window: int = 60,
    ) -> bool:
        """Record a hit and report whether it is within the limit."""
        if limit <= 0:
            return True

        full_key = f"{self.prefix}:{key}"
        now = time.time()

        await self.redis_client.zremrangebyscore(full_key, 0, now - window)
        count = await self.redis_client.zcard(full_key)
        if count >= limit:
            return False

        # Members must be unique or bursts within one second collapse
        await self.redis_client.zadd(full_key, {f"{now}:{uuid.uuid4().hex}": now})
        await self.redis_client.expire(full_key, window)
        return True

    async def reset_rate_limit(self, key: str) -> None:
        """Reset rate limit for a key."""
        await self.redis_client.delete(f"{self.prefix}:{key}")

    async def close(self) -> None:
        await self.redis_client.aclose()


class InMemoryRateLimiter:
    """Single-process sliding window limiter."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    async def check_rate_limit(
        self,
        key: str,
        limit: int = 60,
        window: int = 60,
    ) -> bool:
        """Record a hit and report whether it is within the limit."""
        if limit <= 0:
            return True

        now = self._clock()
        hits = self._hits[key]
        while hits and hits[0] <= now - window:
            hits.popleft()

        if len(hits) >= limit:
            return False

        hits.append(now)
        return True

    async def reset_rate_limit(self, key: str) -> None:
        self._hits.pop(key, None)

    async def close(self) -> None:
        self._hits.clear()
