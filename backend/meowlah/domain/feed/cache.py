"""Feed page cache.

Two implementations are selected at startup: a Redis TTL cache and a null
cache. Neither raises to callers; a backend failure reads as a miss and a
failed write or invalidation is logged and dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from redis.exceptions import RedisError

from meowlah.infra.redis import RedisProxy, redis_client
from meowlah.obs import metrics as obs_metrics
from meowlah.settings import Settings

logger = logging.getLogger(__name__)

FEED_NAMESPACE = "feed:"
_DELETE_CHUNK = 500


def feed_key(viewer_id: Optional[str], page: int, limit: int) -> str:
    return f"{FEED_NAMESPACE}{viewer_id or 'anon'}:{page}:{limit}"


class FeedCache(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, *, ttl: Optional[int] = None) -> None:
        ...

    async def invalidate(self, pattern: str = FEED_NAMESPACE + "*") -> int:
        ...


class NullFeedCache:
    """Always misses; used when no cache backend is configured."""

    async def get(self, key: str) -> Optional[Any]:
        obs_metrics.inc_feed_cache("miss")
        return None

    async def set(self, key: str, value: Any, *, ttl: Optional[int] = None) -> None:
        return None

    async def invalidate(self, pattern: str = FEED_NAMESPACE + "*") -> int:
        return 0


class RedisFeedCache:
    """JSON pages in Redis with a short expiry."""

    def __init__(self, redis: RedisProxy | None = None, *, ttl_seconds: int = 60) -> None:
        self.redis = redis or redis_client
        self.ttl_seconds = max(1, int(ttl_seconds))

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(key)
        except (RedisError, OSError) as exc:
            obs_metrics.inc_feed_cache("error")
            logger.warning("feed.cache_get_failed", extra={"key": key, "error": str(exc)})
            return None
        if not raw:
            obs_metrics.inc_feed_cache("miss")
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            value = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            obs_metrics.inc_feed_cache("miss")
            return None
        obs_metrics.inc_feed_cache("hit")
        return value

    async def set(self, key: str, value: Any, *, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value, default=str)
        try:
            await self.redis.set(key, payload, ex=int(ttl or self.ttl_seconds))
        except (RedisError, OSError) as exc:
            obs_metrics.inc_feed_cache("error")
            logger.warning("feed.cache_set_failed", extra={"key": key, "error": str(exc)})

    async def invalidate(self, pattern: str = FEED_NAMESPACE + "*") -> int:
        """Delete every key matching ``pattern``; returns how many were removed."""
        removed = 0
        batch: list[str] = []
        try:
            async for key in self.redis.scan_iter(match=pattern, count=_DELETE_CHUNK):
                batch.append(key)
                if len(batch) >= _DELETE_CHUNK:
                    removed += await self.redis.delete(*batch)
                    batch = []
            if batch:
                removed += await self.redis.delete(*batch)
        except (RedisError, OSError) as exc:
            obs_metrics.inc_feed_cache("error")
            logger.warning("feed.cache_invalidate_failed", extra={"pattern": pattern, "error": str(exc)})
            return removed
        obs_metrics.inc_feed_cache("invalidate")
        return removed


def build_feed_cache(config: Settings, redis: RedisProxy | None = None) -> FeedCache:
    proxy = redis or redis_client
    if not config.feed_cache_enabled or not config.redis_url or not proxy.configured:
        logger.info("feed.cache_disabled")
        return NullFeedCache()
    return RedisFeedCache(proxy, ttl_seconds=config.feed_cache_ttl_seconds)


__all__ = [
    "FEED_NAMESPACE",
    "FeedCache",
    "NullFeedCache",
    "RedisFeedCache",
    "build_feed_cache",
    "feed_key",
]
