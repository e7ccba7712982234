import asyncio
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from meowlah.domain.alerts.dispatcher import NotificationDispatcher
from meowlah.domain.alerts.geo import haversine_km
from meowlah.domain.alerts.inbox import NotificationInbox
from meowlah.domain.alerts.models import (
	Candidate,
	GeoPoint,
	NearbyReport,
	NotificationRecord,
	PushEndpoint,
)
from meowlah.domain.alerts.push import PushDeliveryError
from meowlah.domain.boosts import models as boost_models
from meowlah.domain.boosts.ledger import BoostLedger
from meowlah.domain.boosts.sweeper import BoostExpirySweeper
from meowlah.domain.feed.cache import RedisFeedCache
from meowlah.domain.feed.service import FeedService
from meowlah.engine import Orchestrator
from meowlah.infra import postgres
from meowlah.infra.redis import redis_client, set_redis_client
from meowlah.main import app
from meowlah.settings import settings


def make_endpoint(name: str) -> PushEndpoint:
	return PushEndpoint(endpoint=f"https://push.example/{name}", p256dh=f"p256-{name}", auth=f"auth-{name}")


@dataclass
class StoredSubscriber:
	id: str
	lat: Optional[float]
	lng: Optional[float]
	radius_km: Optional[float] = 10.0
	endpoint: Optional[PushEndpoint] = None


class InMemoryProximityIndex:
	"""Evaluates the same per-row predicate as the SQL query."""

	def __init__(self) -> None:
		self.subscribers: list[StoredSubscriber] = []
		self.reports: list[tuple[str, str, float, float]] = []
		self.calls: list[tuple[GeoPoint, float, str]] = []

	def add(self, subscriber_id: str, lat: Optional[float], lng: Optional[float], *, radius_km: Optional[float] = 10.0, endpoint=True):
		stored = StoredSubscriber(
			id=subscriber_id,
			lat=lat,
			lng=lng,
			radius_km=radius_km,
			endpoint=make_endpoint(subscriber_id) if endpoint is True else endpoint or None,
		)
		self.subscribers.append(stored)
		return stored

	async def find_within_radius(self, origin: GeoPoint, radius_km: float, *, excluding: str) -> list[Candidate]:
		origin.validate()
		self.calls.append((origin, radius_km, excluding))
		found = []
		for sub in self.subscribers:
			if sub.id == excluding or sub.endpoint is None or sub.lat is None or sub.lng is None:
				continue
			distance = haversine_km(origin, GeoPoint(sub.lat, sub.lng))
			listen_km = radius_km if sub.radius_km is None else sub.radius_km
			if distance <= listen_km:
				found.append(Candidate(subscriber_id=sub.id, endpoint=sub.endpoint))
		return found

	async def find_reports_near(self, origin: GeoPoint, radius_km: float, *, limit: int = 50) -> list[NearbyReport]:
		origin.validate()
		hits = []
		for report_id, name, lat, lng in self.reports:
			distance = haversine_km(origin, GeoPoint(lat, lng))
			if distance <= radius_km:
				hits.append(NearbyReport(report_id, name, lat, lng, round(distance, 3)))
		hits.sort(key=lambda item: item.distance_km)
		return hits[:limit]


class RecordingPushSender:
	def __init__(self) -> None:
		self.sent: list[tuple[str, dict[str, Any]]] = []
		self.reject: set[str] = set()
		self.crash: set[str] = set()
		self.hang: set[str] = set()
		self.in_flight = 0
		self.max_in_flight = 0

	async def send(self, endpoint: PushEndpoint, payload: dict[str, Any]) -> None:
		self.in_flight += 1
		self.max_in_flight = max(self.max_in_flight, self.in_flight)
		try:
			await asyncio.sleep(0)
			if endpoint.endpoint in self.hang:
				await asyncio.sleep(60)
			if endpoint.endpoint in self.reject:
				raise PushDeliveryError("push_rejected", status_code=410)
			if endpoint.endpoint in self.crash:
				raise RuntimeError("provider client bug")
			self.sent.append((endpoint.endpoint, payload))
		finally:
			self.in_flight -= 1


class InMemoryNotificationRepository:
	def __init__(self) -> None:
		self.rows: list[NotificationRecord] = []

	async def insert_many(self, drafts) -> int:
		for draft in drafts:
			self.rows.append(
				NotificationRecord(
					id=uuid4(),
					user_id=UUID(str(draft.user_id)),
					type=draft.type,
					title=draft.title,
					body=draft.body,
					data=dict(draft.data),
					delivery_status=draft.delivery_status,
					is_read=False,
					created_at=datetime.now(timezone.utc) + timedelta(microseconds=len(self.rows)),
				)
			)
		return len(drafts)

	def for_user(self, user_id: str) -> list[NotificationRecord]:
		return [row for row in self.rows if str(row.user_id) == str(user_id)]

	async def list_for_user(self, user_id: str, *, limit: int, offset: int):
		mine = sorted(self.for_user(user_id), key=lambda row: row.created_at, reverse=True)
		unread = sum(1 for row in mine if not row.is_read)
		return mine[offset : offset + limit], len(mine), unread

	async def mark_read(self, user_id: str, notification_id: str) -> bool:
		for index, row in enumerate(self.rows):
			if str(row.id) == str(notification_id) and str(row.user_id) == str(user_id):
				self.rows[index] = row.model_copy(update={"is_read": True})
				return True
		return False

	async def mark_all_read(self, user_id: str) -> int:
		updated = 0
		for index, row in enumerate(self.rows):
			if str(row.user_id) == str(user_id) and not row.is_read:
				self.rows[index] = row.model_copy(update={"is_read": True})
				updated += 1
		return updated


class InMemorySubscriberRepository:
	def __init__(self) -> None:
		self.endpoints: dict[str, PushEndpoint] = {}
		self.lost_cats: dict[str, tuple[str, str]] = {}

	async def get_endpoint(self, user_id: str) -> Optional[PushEndpoint]:
		return self.endpoints.get(str(user_id))

	async def get_lost_cat_owner(self, lost_cat_id: str):
		return self.lost_cats.get(str(lost_cat_id))


@dataclass
class PromotedRow:
	is_boosted: bool = False
	boost_expires_at: Optional[datetime] = None


@dataclass
class InMemoryBoostRepository:
	"""Mirrors the guards of the conditional UPDATE statements."""

	boosts: dict[str, boost_models.Boost] = field(default_factory=dict)
	targets: dict[tuple[boost_models.TargetType, str], PromotedRow] = field(default_factory=dict)
	before_clear: Optional[Callable[[boost_models.ExpiredPromotion], Any]] = None
	fail_clear_for: set[str] = field(default_factory=set)

	def add_target(self, target_type: boost_models.TargetType, target_id: str, **state) -> PromotedRow:
		row = PromotedRow(**state)
		self.targets[(target_type, str(target_id))] = row
		return row

	def target(self, target_type: boost_models.TargetType, target_id) -> PromotedRow:
		return self.targets[(target_type, str(target_id))]

	async def insert(self, *, target_type, target_id, purchaser_id, amount: Decimal, currency, duration_hours, payment_provider):
		boost = boost_models.Boost(
			id=uuid4(),
			target_type=target_type,
			target_id=UUID(str(target_id)),
			purchaser_id=UUID(str(purchaser_id)),
			amount=amount,
			currency=currency,
			duration_hours=duration_hours,
			payment_state=boost_models.PaymentState.PENDING,
			payment_provider=payment_provider,
			created_at=datetime.now(timezone.utc) + timedelta(microseconds=len(self.boosts)),
		)
		self.boosts[str(boost.id)] = boost
		return boost

	async def get(self, boost_id: str):
		return self.boosts.get(str(boost_id))

	async def list_for_purchaser(self, purchaser_id: str):
		mine = [b for b in self.boosts.values() if str(b.purchaser_id) == str(purchaser_id)]
		return sorted(mine, key=lambda b: b.created_at, reverse=True)

	async def mark_paid(self, boost_id: str, *, payment_reference, starts_at, expires_at):
		boost = self.boosts.get(str(boost_id))
		if boost is None or boost.payment_state is not boost_models.PaymentState.PENDING:
			return None
		updated = boost.model_copy(
			update={
				"payment_state": boost_models.PaymentState.PAID,
				"payment_reference": payment_reference,
				"starts_at": starts_at,
				"expires_at": expires_at,
			}
		)
		self.boosts[str(boost_id)] = updated
		return updated

	async def mark_failed(self, boost_id: str):
		boost = self.boosts.get(str(boost_id))
		if boost is None or boost.payment_state is not boost_models.PaymentState.PENDING:
			return None
		updated = boost.model_copy(update={"payment_state": boost_models.PaymentState.FAILED})
		self.boosts[str(boost_id)] = updated
		return updated

	async def promote_target(self, target_type, target_id: str, expires_at: datetime) -> bool:
		row = self.targets.get((target_type, str(target_id)))
		if row is None:
			return False
		if row.boost_expires_at is not None and row.boost_expires_at > expires_at:
			return False
		row.is_boosted = True
		row.boost_expires_at = expires_at
		return True

	async def list_expired_promotions(self, target_type, *, now: datetime, limit: int):
		expired = [
			boost_models.ExpiredPromotion(target_type=kind, target_id=UUID(target_id), boost_expires_at=row.boost_expires_at)
			for (kind, target_id), row in self.targets.items()
			if kind is target_type and row.is_boosted and row.boost_expires_at is not None and row.boost_expires_at < now
		]
		expired.sort(key=lambda item: item.boost_expires_at)
		return expired[:limit]

	async def clear_promotion(self, target_type, target_id: str, observed_expires_at: datetime) -> bool:
		if str(target_id) in self.fail_clear_for:
			raise ConnectionError("connection reset")
		if self.before_clear is not None:
			result = self.before_clear(
				boost_models.ExpiredPromotion(target_type=target_type, target_id=UUID(str(target_id)), boost_expires_at=observed_expires_at)
			)
			if asyncio.iscoroutine(result):
				await result
		row = self.targets.get((target_type, str(target_id)))
		if row is None or not row.is_boosted or row.boost_expires_at != observed_expires_at:
			return False
		row.is_boosted = False
		return True


class InMemoryFeedRepository:
	def __init__(self) -> None:
		self.posts: list[dict[str, Any]] = []
		self.calls = 0

	async def fetch_page(self, viewer_id, *, now, limit, offset):
		self.calls += 1
		ordered = sorted(self.posts, key=lambda post: (not post["is_boosted"], post["rank"]))
		return ordered[offset : offset + limit], len(ordered)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture
def proximity_index() -> InMemoryProximityIndex:
	return InMemoryProximityIndex()


@pytest.fixture
def push_sender() -> RecordingPushSender:
	return RecordingPushSender()


@pytest.fixture
def notification_repo() -> InMemoryNotificationRepository:
	return InMemoryNotificationRepository()


@pytest.fixture
def subscriber_repo() -> InMemorySubscriberRepository:
	return InMemorySubscriberRepository()


@pytest.fixture
def boost_repo() -> InMemoryBoostRepository:
	return InMemoryBoostRepository()


@pytest.fixture
def feed_repo() -> InMemoryFeedRepository:
	return InMemoryFeedRepository()


@pytest.fixture
def feed_cache(fake_redis) -> RedisFeedCache:
	return RedisFeedCache(redis_client, ttl_seconds=60)


@pytest.fixture
def dispatcher(push_sender, notification_repo) -> NotificationDispatcher:
	return NotificationDispatcher(sender=push_sender, store=notification_repo, concurrency=4, send_timeout=0.2)


@pytest.fixture
def engine(
	proximity_index,
	dispatcher,
	subscriber_repo,
	boost_repo,
	notification_repo,
	feed_repo,
	feed_cache,
) -> Orchestrator:
	return Orchestrator(
		index=proximity_index,
		dispatcher=dispatcher,
		subscribers=subscriber_repo,  # type: ignore[arg-type]
		ledger=BoostLedger(repository=boost_repo, cache=feed_cache),  # type: ignore[arg-type]
		sweeper=BoostExpirySweeper(repository=boost_repo, cache=feed_cache, batch_size=2),  # type: ignore[arg-type]
		cache=feed_cache,
		feed=FeedService(cache=feed_cache, repository=feed_repo, ttl_seconds=60),  # type: ignore[arg-type]
		inbox=NotificationInbox(repository=notification_repo),  # type: ignore[arg-type]
		max_radius_km=50.0,
	)


@pytest_asyncio.fixture
async def api_client(engine):
	app.state.engine = engine
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.state.engine = None


@pytest.fixture
def webhook_secret(monkeypatch) -> str:
	secret = "whsec_test"
	monkeypatch.setattr(settings, "payment_webhook_secret", secret)
	return secret
