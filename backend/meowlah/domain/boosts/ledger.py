"""Boost lifecycle: pending -> paid, or pending -> failed."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from meowlah.domain.boosts import models
from meowlah.domain.boosts.repo import BoostRepository
from meowlah.domain.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from meowlah.domain.feed.cache import FeedCache, NullFeedCache
from meowlah.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def parse_target_type(value: str) -> models.TargetType:
	try:
		return models.TargetType(value)
	except ValueError:
		raise ValidationError("invalid_target_type") from None


class BoostLedger:
	"""Creates, activates and fails boosts and keeps the promoted flag in step."""

	def __init__(
		self,
		*,
		repository: BoostRepository | None = None,
		cache: FeedCache | None = None,
		currency: str = "MYR",
	) -> None:
		self.repo = repository or BoostRepository()
		self.cache = cache or NullFeedCache()
		self.currency = currency

	async def create(
		self,
		*,
		target_type: str,
		target_id: str,
		purchaser_id: str,
		duration_hours: int,
		payment_provider: Optional[str] = None,
	) -> models.Boost:
		kind = parse_target_type(target_type)
		if isinstance(duration_hours, bool) or not isinstance(duration_hours, int) or duration_hours < 1:
			raise ValidationError("invalid_duration")
		boost = await self.repo.insert(
			target_type=kind,
			target_id=str(target_id),
			purchaser_id=str(purchaser_id),
			amount=models.quote(kind, duration_hours),
			currency=self.currency,
			duration_hours=duration_hours,
			payment_provider=payment_provider or "stripe",
		)
		obs_metrics.inc_boost_created(kind.value)
		logger.info(
			"boosts.created",
			extra={"boost_id": str(boost.id), "target_type": kind.value, "amount": str(boost.amount)},
		)
		return boost

	async def get(self, boost_id: str, *, actor_id: str) -> models.Boost:
		boost = await self.repo.get(str(boost_id))
		if boost is None:
			raise NotFoundError("boost_not_found")
		if str(boost.purchaser_id) != str(actor_id):
			raise ForbiddenError("not_boost_owner")
		return boost

	async def list_for_purchaser(self, purchaser_id: str) -> list[models.Boost]:
		return await self.repo.list_for_purchaser(str(purchaser_id))

	async def activate(
		self,
		boost_id: str,
		*,
		payment_reference: str,
		actor_id: str,
		now: Optional[datetime] = None,
	) -> Tuple[models.Boost, bool]:
		"""Mark the boost paid and open its window.

		Returns the boost and whether this call performed the transition. A
		repeat on an already-paid boost returns the stored window unchanged.
		"""
		boost = await self.get(boost_id, actor_id=actor_id)
		if boost.payment_state is models.PaymentState.PAID:
			obs_metrics.inc_boost_activation("noop")
			return boost, False
		if boost.payment_state is models.PaymentState.FAILED:
			raise ConflictError("boost_not_pending")

		started = now or datetime.now(timezone.utc)
		expires_at = started + timedelta(hours=boost.duration_hours)
		updated = await self.repo.mark_paid(
			str(boost.id),
			payment_reference=payment_reference,
			starts_at=started,
			expires_at=expires_at,
		)
		if updated is None:
			# Lost the compare-and-set to a concurrent activation or failure.
			current = await self.repo.get(str(boost.id))
			if current is not None and current.payment_state is models.PaymentState.PAID:
				obs_metrics.inc_boost_activation("noop")
				return current, False
			raise ConflictError("boost_not_pending")

		promoted = await self.repo.promote_target(updated.target_type, str(updated.target_id), expires_at)
		if not promoted:
			logger.warning(
				"boosts.promote_skipped",
				extra={"boost_id": str(updated.id), "target_type": updated.target_type.value},
			)
		await self.cache.invalidate()
		obs_metrics.inc_boost_activation("activated")
		logger.info(
			"boosts.activated",
			extra={
				"boost_id": str(updated.id),
				"target_type": updated.target_type.value,
				"expires_at": expires_at.isoformat(),
			},
		)
		return updated, True

	async def fail(self, boost_id: str) -> Optional[models.Boost]:
		"""Mark a pending boost failed; anything else is left untouched."""
		failed = await self.repo.mark_failed(str(boost_id))
		if failed is None:
			logger.info("boosts.fail_ignored", extra={"boost_id": str(boost_id)})
			return None
		obs_metrics.inc_boost_failed()
		logger.info("boosts.failed", extra={"boost_id": str(boost_id)})
		return failed


__all__ = ["BoostLedger", "parse_target_type"]
