"""Background job that lowers promoted flags once their window has passed."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from meowlah.domain.boosts import models
from meowlah.domain.boosts.repo import BoostRepository
from meowlah.domain.feed.cache import FeedCache, NullFeedCache
from meowlah.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_JOB_NAME = "boost-expiry-sweeper"


class BoostExpirySweeper:
	"""Clears ``is_boosted`` on entities whose ``boost_expires_at`` is in the past.

	Each clear is conditional on the expiry the sweeper observed, so an
	activation that extended the window in the meantime is left alone. Runs
	never overlap within a process and each run is bounded by ``timeout_seconds``.
	"""

	def __init__(
		self,
		*,
		repository: BoostRepository | None = None,
		cache: FeedCache | None = None,
		batch_size: int = 500,
		timeout_seconds: float = 60.0,
	) -> None:
		self.repo = repository or BoostRepository()
		self.cache = cache or NullFeedCache()
		self.batch_size = max(1, int(batch_size))
		self.timeout_seconds = float(timeout_seconds)
		self._lock = asyncio.Lock()
		self._cleared = 0

	async def run_once(self, now: Optional[datetime] = None) -> int:
		"""Sweep every target kind once and return the number of flags cleared."""
		if self._lock.locked():
			obs_metrics.job_run(_JOB_NAME, "skipped", 0.0)
			logger.warning("boosts.sweep_overlap_skipped")
			return 0
		async with self._lock:
			self._cleared = 0
			cutoff = now or datetime.now(timezone.utc)
			started = time.perf_counter()
			result = "success"
			try:
				await asyncio.wait_for(self._sweep(cutoff), timeout=self.timeout_seconds)
			except asyncio.TimeoutError:
				result = "timeout"
				logger.warning(
					"boosts.sweep_timeout",
					extra={"timeout_seconds": self.timeout_seconds, "cleared": self._cleared},
				)
			except Exception:
				result = "error"
				raise
			finally:
				if self._cleared:
					await self.cache.invalidate()
				obs_metrics.job_run(_JOB_NAME, result, time.perf_counter() - started)
			logger.info("boosts.sweep_complete", extra={"cleared": self._cleared})
			return self._cleared

	async def _sweep(self, now: datetime) -> None:
		for target_type in models.TargetType:
			while True:
				expired = await self.repo.list_expired_promotions(target_type, now=now, limit=self.batch_size)
				cleared = 0
				for item in expired:
					if await self._clear_one(item):
						# Counted per row so a timed-out run still invalidates.
						cleared += 1
						self._cleared += 1
						obs_metrics.inc_boosts_expired(target_type.value, 1)
				if len(expired) < self.batch_size or cleared == 0:
					break

	async def _clear_one(self, item: models.ExpiredPromotion) -> bool:
		try:
			return await self.repo.clear_promotion(item.target_type, str(item.target_id), item.boost_expires_at)
		except Exception:
			logger.warning(
				"boosts.sweep_item_failed",
				extra={"target_type": item.target_type.value, "target_id": str(item.target_id)},
				exc_info=True,
			)
			return False


__all__ = ["BoostExpirySweeper"]
