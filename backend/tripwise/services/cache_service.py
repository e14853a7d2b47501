"""Redis cache service for sourced candidates and generated trip advice."""

import json
import logging
from datetime import date
from typing import Any

import redis.asyncio as redis

from tripwise.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-backed cache; every call degrades to a miss when Redis is down."""

    def __init__(self):
        self._redis: redis.Redis | None = None
        self._disabled = False

    async def _get_redis(self) -> redis.Redis | None:
        if self._disabled:
            return None
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, cache disabled: {e}")
                self._redis = None
                self._disabled = True
                return None
        return self._redis

    async def get(self, key: str) -> Any | None:
        """Get a value from cache. Returns None on miss or error."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            raw = await r.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception:
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Set a value in cache with TTL. Returns False on error."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.set(key, json.dumps(value, default=str), ex=ttl)
            return True
        except Exception:
            return False

    # Typed helpers

    def candidates_key(
        self, provider: str, category: str, origin: str, destination: str, start: date, end: date
    ) -> str:
        return (
            f"candidates:{provider}:{category}:{origin.lower()}:{destination.lower()}:"
            f"{start.isoformat()}:{end.isoformat()}"
        )

    def weather_key(self, destination: str, start: date, end: date) -> str:
        return f"weather:{destination.lower()}:{start.isoformat()}:{end.isoformat()}"

    async def get_candidates(self, key: str) -> list[dict] | None:
        return await self.get(key)

    async def set_candidates(self, key: str, data: list[dict]):
        await self.set(key, data, settings.sourcing_cache_ttl)

    async def get_weather(self, destination: str, start: date, end: date) -> dict | None:
        return await self.get(self.weather_key(destination, start, end))

    async def set_weather(self, destination: str, start: date, end: date, data: dict):
        await self.set(self.weather_key(destination, start, end), data, settings.advice_cache_ttl)

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


cache_service = CacheService()
