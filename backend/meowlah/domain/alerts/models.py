"""Domain models used by the proximity alert pipeline."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from meowlah.domain.exceptions import ValidationError


@dataclass(slots=True, frozen=True)
class GeoPoint:
	lat: float
	lng: float

	def validate(self) -> "GeoPoint":
		if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
			raise ValidationError("invalid_coordinates")
		if not (-90.0 <= self.lat <= 90.0) or not (-180.0 <= self.lng <= 180.0):
			raise ValidationError("invalid_coordinates")
		return self


@dataclass(slots=True, frozen=True)
class PushEndpoint:
	"""Web Push subscription descriptor stored on the user row."""

	endpoint: str
	p256dh: str
	auth: str

	@classmethod
	def from_subscription(cls, raw: Any) -> Optional["PushEndpoint"]:
		"""Parse the browser's PushSubscription JSON; malformed rows are treated as absent."""
		if raw is None:
			return None
		if isinstance(raw, (str, bytes)):
			try:
				raw = json.loads(raw)
			except ValueError:
				return None
		if not isinstance(raw, dict):
			return None
		keys = raw.get("keys") or {}
		endpoint = raw.get("endpoint")
		if not endpoint or not keys.get("p256dh") or not keys.get("auth"):
			return None
		return cls(endpoint=str(endpoint), p256dh=str(keys["p256dh"]), auth=str(keys["auth"]))

	def to_subscription_info(self) -> dict[str, Any]:
		return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


@dataclass(slots=True, frozen=True)
class Candidate:
	"""A fanout recipient; endpoint is None for in-app only delivery."""

	subscriber_id: str
	endpoint: Optional[PushEndpoint] = None


@dataclass(slots=True, frozen=True)
class AlertEvent:
	subject_id: str
	origin: GeoPoint
	label: str
	excluded_subscriber_id: str
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True, frozen=True)
class NearbyReport:
	lost_cat_id: str
	name: str
	lat: float
	lng: float
	distance_km: float


class DeliveryStatus(str, Enum):
	ATTEMPTED = "attempted"
	DELIVERED = "delivered"
	FAILED = "failed"


@dataclass(slots=True)
class PushMessage:
	"""Rendered notification: the push payload plus the in-app copy."""

	kind: str
	title: str
	body: str
	url: Optional[str] = None
	tag: Optional[str] = None
	push_body: Optional[str] = None
	data: dict[str, Any] = field(default_factory=dict)

	def payload(self) -> dict[str, Any]:
		payload: dict[str, Any] = {
			"title": self.title,
			"body": self.push_body or self.body,
			"type": self.kind,
		}
		if self.url:
			payload["url"] = self.url
		if self.tag:
			payload["tag"] = self.tag
		return payload


@dataclass(slots=True)
class NotificationDraft:
	user_id: str
	type: str
	title: str
	body: str
	data: dict[str, Any]
	delivery_status: DeliveryStatus


class NotificationRecord(BaseModel):
	"""Persisted notification row."""

	id: UUID
	user_id: UUID
	type: str
	title: str
	body: str
	data: dict[str, Any] = {}
	delivery_status: DeliveryStatus
	is_read: bool = False
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)
