"""Best-effort push fanout with one durable notification record per recipient."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from meowlah.domain.alerts.models import AlertEvent, Candidate, DeliveryStatus, NotificationDraft, PushMessage
from meowlah.domain.alerts.push import PushDeliveryError, PushSender
from meowlah.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class NotificationStore(Protocol):
	async def insert_many(self, drafts: Sequence[NotificationDraft]) -> int:
		...


class NotificationDispatcher:
	"""Sends concurrently under a cap, then commits the records before returning."""

	def __init__(
		self,
		*,
		sender: PushSender,
		store: NotificationStore,
		concurrency: int = 20,
		send_timeout: float = 5.0,
	) -> None:
		self.sender = sender
		self.store = store
		self.concurrency = max(1, int(concurrency))
		self.send_timeout = float(send_timeout)

	async def fanout(
		self,
		candidates: Sequence[Candidate],
		message: PushMessage,
		*,
		event: Optional[AlertEvent] = None,
	) -> int:
		"""Deliver ``message`` to every candidate and return the number of accepted sends."""
		recipients = _unique(candidates)
		obs_metrics.observe_fanout(message.kind, len(recipients))
		if not recipients:
			return 0

		payload = message.payload()
		semaphore = asyncio.Semaphore(self.concurrency)

		async def _deliver(candidate: Candidate) -> DeliveryStatus:
			async with semaphore:
				return await self._send_one(candidate, payload)

		statuses = await asyncio.gather(*(_deliver(candidate) for candidate in recipients))
		drafts = [
			NotificationDraft(
				user_id=candidate.subscriber_id,
				type=message.kind,
				title=message.title,
				body=message.body,
				data=dict(message.data),
				delivery_status=status,
			)
			for candidate, status in zip(recipients, statuses)
		]
		await self.store.insert_many(drafts)
		obs_metrics.inc_notifications_created(message.kind, len(drafts))

		delivered = sum(1 for status in statuses if status is DeliveryStatus.DELIVERED)
		logger.info(
			"alerts.fanout_complete",
			extra={
				"kind": message.kind,
				"subject_id": event.subject_id if event else None,
				"recipients": len(recipients),
				"delivered": delivered,
			},
		)
		return delivered

	async def _send_one(self, candidate: Candidate, payload: dict) -> DeliveryStatus:
		if candidate.endpoint is None:
			return DeliveryStatus.ATTEMPTED
		try:
			await asyncio.wait_for(self.sender.send(candidate.endpoint, payload), timeout=self.send_timeout)
		except asyncio.TimeoutError:
			obs_metrics.inc_push_send("timeout")
			logger.warning("alerts.push_timeout", extra={"recipient": candidate.subscriber_id})
			return DeliveryStatus.FAILED
		except PushDeliveryError as exc:
			# A gone subscription stays on the user row until the browser re-subscribes.
			obs_metrics.inc_push_send("gone" if exc.subscription_gone else "failed")
			logger.warning(
				"alerts.push_failed",
				extra={
					"recipient": candidate.subscriber_id,
					"reason": exc.reason,
					"provider_status": exc.status_code,
					"subscription_gone": exc.subscription_gone,
				},
			)
			return DeliveryStatus.FAILED
		except Exception:
			# Provider client bugs must not take down sibling sends.
			obs_metrics.inc_push_send("failed")
			logger.warning("alerts.push_error", extra={"recipient": candidate.subscriber_id}, exc_info=True)
			return DeliveryStatus.FAILED
		obs_metrics.inc_push_send("delivered")
		return DeliveryStatus.DELIVERED


def _unique(candidates: Sequence[Candidate]) -> list[Candidate]:
	seen: set[str] = set()
	unique: list[Candidate] = []
	for candidate in candidates:
		if candidate.subscriber_id in seen:
			continue
		seen.add(candidate.subscriber_id)
		unique.append(candidate)
	return unique


__all__ = ["NotificationDispatcher"]
