"""Orchestrator wiring the proximity alert and boost lifecycle components."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from meowlah.domain.alerts import messages
from meowlah.domain.alerts.dispatcher import NotificationDispatcher
from meowlah.domain.alerts.geo import PostgresProximityIndex, ProximityIndex
from meowlah.domain.alerts.inbox import NotificationInbox
from meowlah.domain.alerts.models import AlertEvent, Candidate, GeoPoint, NearbyReport, PushMessage
from meowlah.domain.alerts.push import PushSender, build_push_sender
from meowlah.domain.alerts.repo import NotificationRepository, SubscriberRepository
from meowlah.domain.boosts.ledger import BoostLedger
from meowlah.domain.boosts.models import Boost
from meowlah.domain.boosts.repo import BoostRepository
from meowlah.domain.boosts.schemas import WebhookEvent
from meowlah.domain.boosts.sweeper import BoostExpirySweeper
from meowlah.domain.exceptions import NotFoundError, ValidationError
from meowlah.domain.feed.cache import FeedCache, build_feed_cache
from meowlah.domain.feed.service import FeedService
from meowlah.settings import Settings

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"


@dataclass(slots=True)
class Orchestrator:
	"""Entry points the HTTP layer and the scheduler call into."""

	index: ProximityIndex
	dispatcher: NotificationDispatcher
	subscribers: SubscriberRepository
	ledger: BoostLedger
	sweeper: BoostExpirySweeper
	cache: FeedCache
	feed: FeedService
	inbox: NotificationInbox
	max_radius_km: float = 50.0
	default_radius_km: float = 10.0

	async def report_lost_cat(
		self,
		*,
		lost_cat_id: str,
		name: str,
		lat: float,
		lng: float,
		reporter_id: str,
	) -> int:
		"""Fan a new lost-cat report out to nearby subscribers; returns the delivered count."""
		origin = GeoPoint(lat=float(lat), lng=float(lng)).validate()
		event = AlertEvent(
			subject_id=str(lost_cat_id),
			origin=origin,
			label=name,
			excluded_subscriber_id=str(reporter_id),
		)
		candidates = await self.index.find_within_radius(
			origin,
			self.default_radius_km,
			excluding=event.excluded_subscriber_id,
		)
		delivered = await self.dispatcher.fanout(candidates, messages.lost_cat_nearby(event), event=event)
		logger.info(
			"alerts.lost_cat_reported",
			extra={"lost_cat_id": event.subject_id, "candidates": len(candidates), "delivered": delivered},
		)
		return delivered

	async def notify_user(
		self,
		recipient_id: str,
		message: PushMessage,
		*,
		actor_id: Optional[str] = None,
	) -> int:
		if actor_id is not None and str(actor_id) == str(recipient_id):
			return 0
		endpoint = await self.subscribers.get_endpoint(str(recipient_id))
		return await self.dispatcher.fanout([Candidate(subscriber_id=str(recipient_id), endpoint=endpoint)], message)

	async def report_sighting(self, *, lost_cat_id: str, reporter_id: str, note: Optional[str] = None) -> int:
		owner = await self.subscribers.get_lost_cat_owner(str(lost_cat_id))
		if owner is None:
			raise NotFoundError("lost_cat_not_found")
		owner_id, cat_name = owner
		return await self.notify_user(
			owner_id,
			messages.sighting(str(lost_cat_id), cat_name, note),
			actor_id=reporter_id,
		)

	async def nearby_reports(
		self,
		*,
		lat: float,
		lng: float,
		radius_km: float = 10.0,
		limit: int = 50,
	) -> list[NearbyReport]:
		origin = GeoPoint(lat=float(lat), lng=float(lng)).validate()
		radius = min(float(radius_km), self.max_radius_km)
		if radius <= 0:
			raise ValidationError("invalid_radius")
		return await self.index.find_reports_near(origin, radius, limit=limit)

	async def create_boost(
		self,
		*,
		target_type: str,
		target_id: str,
		purchaser_id: str,
		duration_hours: int,
		payment_provider: Optional[str] = None,
	) -> Boost:
		return await self.ledger.create(
			target_type=target_type,
			target_id=target_id,
			purchaser_id=purchaser_id,
			duration_hours=duration_hours,
			payment_provider=payment_provider,
		)

	async def confirm_payment(
		self,
		*,
		boost_id: str,
		payment_reference: str,
		actor_id: str,
		now: Optional[datetime] = None,
	) -> Boost:
		"""Activate a boost after payment; repeats return the original window."""
		boost, activated = await self.ledger.activate(
			boost_id,
			payment_reference=payment_reference,
			actor_id=actor_id,
			now=now,
		)
		if activated and boost.expires_at is not None:
			message = messages.boost_activated(
				str(boost.id),
				boost.target_type.value,
				str(boost.target_id),
				boost.duration_hours,
				boost.expires_at,
			)
			try:
				await self.notify_user(str(boost.purchaser_id), message)
			except Exception:
				# The boost is already paid and promoted; the receipt is secondary.
				logger.warning("boosts.receipt_failed", extra={"boost_id": str(boost.id)}, exc_info=True)
		return boost

	async def fail_payment(self, boost_id: str) -> Optional[Boost]:
		return await self.ledger.fail(boost_id)

	async def handle_payment_event(self, event: WebhookEvent) -> bool:
		"""Apply a checkout event; returns False for events this service ignores."""
		metadata = event.metadata()
		if metadata.get("type") != "boost" or not metadata.get("boost_id"):
			logger.info("payments.event_ignored", extra={"event_type": event.type})
			return False
		try:
			boost_id = str(UUID(str(metadata["boost_id"])))
		except ValueError:
			raise ValidationError("invalid_boost_id") from None
		if event.type == CHECKOUT_COMPLETED:
			session = event.session()
			await self.confirm_payment(
				boost_id=boost_id,
				payment_reference=str(session.get("id") or boost_id),
				actor_id=str(metadata.get("user_id") or ""),
			)
			return True
		if event.type == CHECKOUT_EXPIRED:
			await self.fail_payment(boost_id)
			return True
		logger.info("payments.event_ignored", extra={"event_type": event.type})
		return False

	async def post_published(self, post_id: str) -> None:
		"""A new post can change every viewer's feed."""
		removed = await self.cache.invalidate()
		logger.info("feed.invalidated", extra={"post_id": str(post_id), "removed": removed})

	async def sweep(self, now: Optional[datetime] = None) -> int:
		return await self.sweeper.run_once(now)

	async def feed_page(self, viewer_id: Optional[str], *, page: int, limit: Optional[int]) -> dict[str, Any]:
		return await self.feed.get_page(viewer_id, page=page, limit=limit)


def build_engine(
	config: Settings,
	*,
	cache: FeedCache | None = None,
	sender: PushSender | None = None,
	index: ProximityIndex | None = None,
) -> Orchestrator:
	feed_cache = cache or build_feed_cache(config)
	boosts = BoostRepository()
	notifications = NotificationRepository()
	return Orchestrator(
		index=index or PostgresProximityIndex(),
		dispatcher=NotificationDispatcher(
			sender=sender or build_push_sender(config),
			store=notifications,
			concurrency=config.push_fanout_concurrency,
			send_timeout=config.push_send_timeout_seconds,
		),
		subscribers=SubscriberRepository(),
		ledger=BoostLedger(repository=boosts, cache=feed_cache, currency=config.boost_currency),
		sweeper=BoostExpirySweeper(
			repository=boosts,
			cache=feed_cache,
			batch_size=config.boost_sweep_batch_size,
			timeout_seconds=config.boost_sweep_timeout_seconds,
		),
		cache=feed_cache,
		feed=FeedService(
			cache=feed_cache,
			default_limit=config.feed_page_size,
			max_limit=config.feed_max_page_size,
			ttl_seconds=config.feed_cache_ttl_seconds,
		),
		inbox=NotificationInbox(repository=notifications),
		max_radius_km=config.max_notification_radius_km,
		default_radius_km=config.default_notification_radius_km,
	)


__all__ = ["Orchestrator", "build_engine"]
