"""Per-user notification inbox reads and read-state updates."""

from __future__ import annotations

import math
from typing import Any

from meowlah.domain.alerts.repo import NotificationRepository
from meowlah.domain.exceptions import NotFoundError

_MAX_LIMIT = 50


class NotificationInbox:
	def __init__(self, *, repository: NotificationRepository | None = None) -> None:
		self.repo = repository or NotificationRepository()

	async def list(self, user_id: str, *, page: int = 1, limit: int = 20) -> dict[str, Any]:
		page = max(1, page)
		limit = max(1, min(limit, _MAX_LIMIT))
		items, total, unread = await self.repo.list_for_user(user_id, limit=limit, offset=(page - 1) * limit)
		return {
			"data": [item.model_dump(mode="json") for item in items],
			"unread_count": unread,
			"pagination": {
				"page": page,
				"limit": limit,
				"total": total,
				"total_pages": math.ceil(total / limit) if total else 0,
			},
		}

	async def mark_read(self, user_id: str, notification_id: str) -> None:
		if not await self.repo.mark_read(user_id, notification_id):
			raise NotFoundError("notification_not_found")

	async def mark_all_read(self, user_id: str) -> int:
		return await self.repo.mark_all_read(user_id)


__all__ = ["NotificationInbox"]
