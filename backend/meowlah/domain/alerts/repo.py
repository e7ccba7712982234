"""Postgres access for notification rows and subscriber lookups."""

from __future__ import annotations

import json
from typing import Optional, Sequence, Tuple

from meowlah.domain.alerts.models import NotificationDraft, NotificationRecord, PushEndpoint
from meowlah.infra.postgres import get_pool


def _decode_data(raw) -> dict:
	if raw is None:
		return {}
	if isinstance(raw, (str, bytes)):
		try:
			return json.loads(raw)
		except ValueError:
			return {}
	return dict(raw)


def _to_record(row) -> NotificationRecord:
	payload = dict(row)
	payload["data"] = _decode_data(payload.get("data"))
	return NotificationRecord.model_validate(payload)


class NotificationRepository:
	"""Append-only notification rows; only is_read changes after insert."""

	async def insert_many(self, drafts: Sequence[NotificationDraft]) -> int:
		if not drafts:
			return 0
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.executemany(
					"""
					INSERT INTO notifications (user_id, type, title, body, data, delivery_status)
					VALUES ($1::uuid, $2, $3, $4, $5::jsonb, $6)
					""",
					[
						(
							draft.user_id,
							draft.type,
							draft.title,
							draft.body,
							json.dumps(draft.data),
							draft.delivery_status.value,
						)
						for draft in drafts
					],
				)
		return len(drafts)

	async def list_for_user(
		self,
		user_id: str,
		*,
		limit: int,
		offset: int,
	) -> Tuple[list[NotificationRecord], int, int]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT id, user_id, type, title, body, data, delivery_status, is_read, created_at
				FROM notifications
				WHERE user_id = $1::uuid
				ORDER BY created_at DESC, id DESC
				LIMIT $2 OFFSET $3
				""",
				user_id,
				limit,
				offset,
			)
			counts = await conn.fetchrow(
				"""
				SELECT COUNT(*) AS total, COUNT(*) FILTER (WHERE NOT is_read) AS unread
				FROM notifications
				WHERE user_id = $1::uuid
				""",
				user_id,
			)
		return [_to_record(row) for row in rows], int(counts["total"]), int(counts["unread"])

	async def mark_read(self, user_id: str, notification_id: str) -> bool:
		pool = await get_pool()
		row = await pool.fetchrow(
			"""
			UPDATE notifications
			SET is_read = TRUE
			WHERE id = $1::uuid AND user_id = $2::uuid
			RETURNING id
			""",
			notification_id,
			user_id,
		)
		return row is not None

	async def mark_all_read(self, user_id: str) -> int:
		pool = await get_pool()
		result = await pool.execute(
			"UPDATE notifications SET is_read = TRUE WHERE user_id = $1::uuid AND is_read = FALSE",
			user_id,
		)
		# asyncpg returns the command tag, e.g. "UPDATE 3"
		return int(result.split()[-1]) if result else 0


class SubscriberRepository:
	"""Read-only view of the subscriber columns on the users table."""

	async def get_endpoint(self, user_id: str) -> Optional[PushEndpoint]:
		pool = await get_pool()
		raw = await pool.fetchval("SELECT push_subscription FROM users WHERE id = $1::uuid", user_id)
		return PushEndpoint.from_subscription(raw)

	async def get_lost_cat_owner(self, lost_cat_id: str) -> Optional[Tuple[str, str]]:
		pool = await get_pool()
		row = await pool.fetchrow("SELECT reporter_id, name FROM lost_cats WHERE id = $1::uuid", lost_cat_id)
		if row is None:
			return None
		return str(row["reporter_id"]), row["name"]


__all__ = ["NotificationRepository", "SubscriberRepository"]
