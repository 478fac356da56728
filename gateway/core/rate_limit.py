"""Request rate limiting keyed by client IP.

Buckets are keyed by IP only, so every route class a client calls shares one
counter; the per-class config decides the window and ceiling applied on each
hit.
"""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from redis import asyncio as aioredis

from gateway.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    window_seconds: float
    max: int
    message: str


@dataclass(slots=True)
class RateLimitBucket:
    count: int
    reset_time: float


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: float


RATE_LIMITS: dict[str, RateLimitConfig] = {
    "general": RateLimitConfig(15 * 60, 100, "Too many requests from this IP"),
    "ai": RateLimitConfig(15 * 60, 20, "Too many AI requests from this IP"),
    "auth": RateLimitConfig(15 * 60, 10, "Too many authentication attempts"),
    "upload": RateLimitConfig(60 * 60, 50, "Too many file uploads from this IP"),
}


def bucket_key(ip: str) -> str:
    return f"rate_limit:{ip}"


class RateLimiter(ABC):
    @abstractmethod
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        """Count one hit against ``key`` and report whether it is allowed."""

    async def close(self) -> None:
        return None


class InMemoryRateLimiter(RateLimiter):
    """Process-local limiter; counts are not shared between workers."""

    def __init__(
        self,
        sweep_probability: float = 0.01,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.buckets: dict[str, RateLimitBucket] = {}
        self.sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng

    def hit(self, ip: str, config: RateLimitConfig) -> RateLimitDecision:
        key = bucket_key(ip)
        now = self._clock()

        bucket = self.buckets.get(key)
        if bucket is None or now >= bucket.reset_time:
            bucket = RateLimitBucket(count=0, reset_time=now + config.window_seconds)

        bucket.count += 1
        self.buckets[key] = bucket

        if self._rng() < self.sweep_probability:
            self.sweep(now)

        return RateLimitDecision(
            allowed=bucket.count <= config.max,
            remaining=max(0, config.max - bucket.count),
            reset_time=bucket.reset_time,
        )

    def sweep(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        expired = [key for key, bucket in self.buckets.items() if now >= bucket.reset_time]
        for key in expired:
            del self.buckets[key]
        return len(expired)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        return self.hit(key, config)


class RedisRateLimiter(RateLimiter):
    """Fixed-window limiter backed by a shared Redis counter."""

    def __init__(self, client: aioredis.Redis, clock: Callable[[], float] = time.time) -> None:
        self.client = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> RedisRateLimiter:
        return cls(aioredis.from_url(url, decode_responses=True))

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        redis_key = bucket_key(key)
        window_ms = int(config.window_seconds * 1000)

        count = int(await self.client.incr(redis_key))
        if count == 1:
            await self.client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        else:
            ttl_ms = int(await self.client.pttl(redis_key))
            if ttl_ms < 0:
                # Key lost its expiry (crash between INCR and PEXPIRE); restart the window.
                await self.client.pexpire(redis_key, window_ms)
                ttl_ms = window_ms

        return RateLimitDecision(
            allowed=count <= config.max,
            remaining=max(0, config.max - count),
            reset_time=self._clock() + ttl_ms / 1000,
        )

    async def close(self) -> None:
        await self.client.aclose()


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        logger.info("Using Redis rate limiter at %s", settings.redis_url)
        return RedisRateLimiter.from_url(settings.redis_url)
    return InMemoryRateLimiter(sweep_probability=settings.rate_limit_sweep_probability)


_default_limiter = InMemoryRateLimiter()


def check_rate_limit(ip: str, config: RateLimitConfig) -> RateLimitDecision:
    return _default_limiter.hit(ip, config)
