import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass
from uuid import uuid4

import redis

from tutorhub.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0


class RateLimiter(ABC):
    @abstractmethod
    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    def __init__(self) -> None:
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = time.monotonic()
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()

            if len(hits) >= limit:
                return RateLimitDecision(False, max(1, int(hits[0] + window_seconds - now)))

            hits.append(now)
            return RateLimitDecision(True)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


class RedisRateLimiter(RateLimiter):
    """Sliding window kept in a sorted set per key, scored by hit time in ms."""

    def __init__(self, redis_url: str, prefix: str = "tutorhub:rl") -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
        )
        self._prefix = prefix

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        redis_key = f"{self._prefix}:{key}"
        now_ms = int(time.time() * 1000)
        window_ms = window_seconds * 1000

        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now_ms - window_ms)
        pipe.zcard(redis_key)
        pipe.zrange(redis_key, 0, 0, withscores=True)
        _, current, oldest = pipe.execute()

        if current >= limit:
            if not oldest:
                return RateLimitDecision(False, window_seconds)
            oldest_ms = int(oldest[0][1])
            return RateLimitDecision(False, max(1, (oldest_ms + window_ms - now_ms) // 1000))

        pipe = self._client.pipeline()
        pipe.zadd(redis_key, {f"{now_ms}:{uuid4().hex}": now_ms})
        pipe.expire(redis_key, window_seconds + 5)
        pipe.execute()
        return RateLimitDecision(True)

    def reset(self) -> None:
        for key in self._client.scan_iter(f"{self._prefix}:*"):
            self._client.delete(key)


class FallbackRateLimiter(RateLimiter):
    def __init__(self, primary: RateLimiter, fallback: RateLimiter) -> None:
        self._primary = primary
        self._fallback = fallback

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        try:
            return self._primary.hit(key=key, limit=limit, window_seconds=window_seconds)
        except redis.RedisError as exc:
            logger.warning("rate_limiter_fallback key=%s error=%s", key, exc)
            return self._fallback.hit(key=key, limit=limit, window_seconds=window_seconds)

    def reset(self) -> None:
        try:
            self._primary.reset()
        except redis.RedisError as exc:
            logger.warning("rate_limiter_reset_failed error=%s", exc)
        self._fallback.reset()


def _build_rate_limiter() -> RateLimiter:
    backend = settings.rate_limit_backend.strip().lower()
    memory = InMemoryRateLimiter()
    if backend == "redis":
        return FallbackRateLimiter(
            primary=RedisRateLimiter(redis_url=settings.rate_limit_redis_url),
            fallback=memory,
        )
    return memory


rate_limiter: RateLimiter = _build_rate_limiter()
