"""Postgres persistence for the boost ledger and the promoted flag pair.

Every state change is a single conditional statement so concurrent writers
are serialised by the database, never by the process.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from meowlah.domain.boosts import models
from meowlah.infra.postgres import get_pool

_COLUMNS = """
	id, target_type, target_id, purchaser_id, amount, currency, duration_hours,
	payment_state, payment_provider, payment_reference, starts_at, expires_at, created_at
"""


def _to_boost(row) -> models.Boost:
	return models.Boost.model_validate(dict(row))


class BoostRepository:
	async def insert(
		self,
		*,
		target_type: models.TargetType,
		target_id: str,
		purchaser_id: str,
		amount: Decimal,
		currency: str,
		duration_hours: int,
		payment_provider: str,
	) -> models.Boost:
		pool = await get_pool()
		row = await pool.fetchrow(
			f"""
			INSERT INTO boosts (target_type, target_id, purchaser_id, amount, currency,
				duration_hours, payment_state, payment_provider)
			VALUES ($1, $2::uuid, $3::uuid, $4, $5, $6, 'pending', $7)
			RETURNING {_COLUMNS}
			""",
			target_type.value,
			target_id,
			purchaser_id,
			amount,
			currency,
			duration_hours,
			payment_provider,
		)
		return _to_boost(row)

	async def get(self, boost_id: str) -> Optional[models.Boost]:
		pool = await get_pool()
		row = await pool.fetchrow(f"SELECT {_COLUMNS} FROM boosts WHERE id = $1::uuid", boost_id)
		return _to_boost(row) if row else None

	async def list_for_purchaser(self, purchaser_id: str) -> list[models.Boost]:
		pool = await get_pool()
		rows = await pool.fetch(
			f"SELECT {_COLUMNS} FROM boosts WHERE purchaser_id = $1::uuid ORDER BY created_at DESC",
			purchaser_id,
		)
		return [_to_boost(row) for row in rows]

	async def mark_paid(
		self,
		boost_id: str,
		*,
		payment_reference: str,
		starts_at: datetime,
		expires_at: datetime,
	) -> Optional[models.Boost]:
		"""Compare-and-set pending -> paid; None when the boost was not pending."""
		pool = await get_pool()
		row = await pool.fetchrow(
			f"""
			UPDATE boosts
			SET payment_state = 'paid', payment_reference = $2, starts_at = $3, expires_at = $4
			WHERE id = $1::uuid AND payment_state = 'pending'
			RETURNING {_COLUMNS}
			""",
			boost_id,
			payment_reference,
			starts_at,
			expires_at,
		)
		return _to_boost(row) if row else None

	async def mark_failed(self, boost_id: str) -> Optional[models.Boost]:
		pool = await get_pool()
		row = await pool.fetchrow(
			f"""
			UPDATE boosts SET payment_state = 'failed'
			WHERE id = $1::uuid AND payment_state = 'pending'
			RETURNING {_COLUMNS}
			""",
			boost_id,
		)
		return _to_boost(row) if row else None

	async def promote_target(
		self,
		target_type: models.TargetType,
		target_id: str,
		expires_at: datetime,
	) -> bool:
		"""Raise the promoted flag unless a later window is already recorded."""
		table = models.TARGET_TABLES[target_type]
		pool = await get_pool()
		row = await pool.fetchrow(
			f"""
			UPDATE {table}
			SET is_boosted = TRUE, boost_expires_at = $2
			WHERE id = $1::uuid AND (boost_expires_at IS NULL OR boost_expires_at <= $2)
			RETURNING id
			""",
			target_id,
			expires_at,
		)
		return row is not None

	async def list_expired_promotions(
		self,
		target_type: models.TargetType,
		*,
		now: datetime,
		limit: int,
	) -> list[models.ExpiredPromotion]:
		table = models.TARGET_TABLES[target_type]
		pool = await get_pool()
		rows = await pool.fetch(
			f"""
			SELECT id, boost_expires_at FROM {table}
			WHERE is_boosted AND boost_expires_at < $1
			ORDER BY boost_expires_at ASC
			LIMIT $2
			""",
			now,
			limit,
		)
		return [
			models.ExpiredPromotion(target_type=target_type, target_id=row["id"], boost_expires_at=row["boost_expires_at"])
			for row in rows
		]

	async def clear_promotion(
		self,
		target_type: models.TargetType,
		target_id: str,
		observed_expires_at: datetime,
	) -> bool:
		"""Lower the flag only if the window the sweeper saw is still the current one."""
		table = models.TARGET_TABLES[target_type]
		pool = await get_pool()
		row = await pool.fetchrow(
			f"""
			UPDATE {table}
			SET is_boosted = FALSE
			WHERE id = $1::uuid AND is_boosted AND boost_expires_at = $2
			RETURNING id
			""",
			target_id,
			observed_expires_at,
		)
		return row is not None


__all__ = ["BoostRepository"]
