import logging
import time
import uuid
from typing import Optional

from fastapi import Depends, Request
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from app.core.errors import RateLimited
from app.models.user import User
from app.services.auth import get_current_user

logger = logging.getLogger(__name__)

class RateLimiter:
    """Sliding-window limiter backed by a Redis sorted set per identifier.

    Fails open: with no Redis configured, or when Redis errors, requests are
    allowed through.
    """

    def __init__(self, redis: Optional[aioredis.Redis], limit: int = 10, window_seconds: int = 10, prefix: str = "ratelimit"):
        self.redis = redis
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix
        if redis is None:
            logger.warning("Rate limiting disabled: REDIS_URL is not set")

    @classmethod
    def from_url(cls, url: Optional[str], limit: int = 10, window_seconds: int = 10) -> "RateLimiter":
        redis = aioredis.from_url(url) if url else None
        return cls(redis, limit=limit, window_seconds=window_seconds)

    async def allow(self, identifier: str) -> bool:
        if self.redis is None:
            return True

        key = f"{self.prefix}:{identifier}"
        now = time.time()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now - self.window_seconds)
                pipe.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
                pipe.zcard(key)
                pipe.expire(key, self.window_seconds)
                results = await pipe.execute()
        except (RedisError, OSError) as e:
            logger.error(f"Rate limiter unavailable, allowing request: {str(e)}")
            return True

        return results[2] <= self.limit

    async def close(self):
        if self.redis is not None:
            await self.redis.aclose()

def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter

def client_ip(request: Request) -> str:
    ip = request.headers.get("x-forwarded-for")
    if ip:
        return ip.split(',')[0].strip()
    return request.client.host if request.client else "127.0.0.1"

def rate_limit_user(scope: str):
    """Dependency limiting an authenticated endpoint per user"""
    async def dependency(
        current_user: User = Depends(get_current_user),
        limiter: RateLimiter = Depends(get_rate_limiter)
    ):
        if not await limiter.allow(f"{scope}_{current_user.id}"):
            raise RateLimited()
    return dependency

def rate_limit_ip(scope: str):
    """Dependency limiting a public endpoint per client IP"""
    async def dependency(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)):
        if not await limiter.allow(f"{scope}_{client_ip(request)}"):
            raise RateLimited()
    return dependency
