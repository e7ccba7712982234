"""Cached feed reads."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from meowlah.domain.feed.cache import FeedCache, NullFeedCache, feed_key
from meowlah.domain.feed.repo import FeedRepository


class FeedService:
    def __init__(
        self,
        *,
        cache: FeedCache | None = None,
        repository: FeedRepository | None = None,
        default_limit: int = 20,
        max_limit: int = 50,
        ttl_seconds: int = 60,
    ) -> None:
        self.cache = cache or NullFeedCache()
        self.repo = repository or FeedRepository()
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.ttl_seconds = ttl_seconds

    async def get_page(
        self,
        viewer_id: Optional[str],
        *,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        page = max(1, int(page))
        limit = max(1, min(int(limit or self.default_limit), self.max_limit))
        key = feed_key(viewer_id, page, limit)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        items, total = await self.repo.fetch_page(
            viewer_id,
            now=datetime.now(timezone.utc),
            limit=limit,
            offset=(page - 1) * limit,
        )
        response = {
            "data": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }
        await self.cache.set(key, response, ttl=self.ttl_seconds)
        return response


__all__ = ["FeedService"]
