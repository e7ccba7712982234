"""Feed page queries over posts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Tuple

from meowlah.infra.postgres import get_pool

_PROMOTED = "(p.is_boosted AND p.boost_expires_at > $1)"


def _row_to_item(row) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "author_id": str(row["author_id"]),
        "caption": row["caption"],
        "media_urls": list(row["media_urls"] or []),
        "is_boosted": bool(row["promoted"]),
        "created_at": row["created_at"].isoformat(),
    }


class FeedRepository:
    """Currently promoted posts first, then newest."""

    async def fetch_page(
        self,
        viewer_id: Optional[str],
        *,
        now: datetime,
        limit: int,
        offset: int,
    ) -> Tuple[list[dict[str, Any]], int]:
        if viewer_id:
            # Followed authors and the viewer's own posts, plus anything promoted.
            scope = f"""
                (p.author_id = $4::uuid
                 OR p.author_id IN (SELECT following_id FROM follows WHERE follower_id = $4::uuid)
                 OR {_PROMOTED})
            """
            args: tuple = (now, limit, offset, viewer_id)
        else:
            scope = "TRUE"
            args = (now, limit, offset)
        pool = await get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT p.id, p.author_id, p.caption, p.media_urls, p.created_at,
                    {_PROMOTED} AS promoted
                FROM posts p
                WHERE {scope}
                ORDER BY promoted DESC, p.created_at DESC, p.id DESC
                LIMIT $2 OFFSET $3
                """,
                *args,
            )
            if viewer_id:
                total = await conn.fetchval(
                    f"SELECT COUNT(*) FROM posts p WHERE {scope.replace('$4', '$2')}",
                    now,
                    viewer_id,
                )
            else:
                total = await conn.fetchval("SELECT COUNT(*) FROM posts")
        return [_row_to_item(row) for row in rows], int(total or 0)


__all__ = ["FeedRepository"]
