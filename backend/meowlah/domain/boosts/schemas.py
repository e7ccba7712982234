"""Request/response schemas for boost and payment endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from meowlah.domain.boosts.models import Boost, PaymentState


class CreateBoostRequest(BaseModel):
	target_type: str
	target_id: UUID
	duration_hours: int = Field(..., ge=1, le=24 * 30)
	payment_provider: Optional[str] = Field(default=None, max_length=32)


class CreateBoostResponse(BaseModel):
	id: UUID
	amount: Decimal
	currency: str
	payment_status: PaymentState

	@classmethod
	def from_boost(cls, boost: Boost) -> "CreateBoostResponse":
		return cls(id=boost.id, amount=boost.amount, currency=boost.currency, payment_status=boost.payment_state)


class ActivateBoostRequest(BaseModel):
	boost_id: UUID
	payment_reference: str = Field(..., min_length=1, max_length=255)


class ActivateBoostResponse(BaseModel):
	success: bool = True
	expires_at: Optional[datetime] = None


class BoostSummary(BaseModel):
	id: UUID
	target_type: str
	target_id: UUID
	amount: Decimal
	currency: str
	duration_hours: int
	payment_status: PaymentState
	payment_provider: str
	starts_at: Optional[datetime] = None
	expires_at: Optional[datetime] = None
	created_at: datetime

	@classmethod
	def from_boost(cls, boost: Boost) -> "BoostSummary":
		return cls(
			id=boost.id,
			target_type=boost.target_type.value,
			target_id=boost.target_id,
			amount=boost.amount,
			currency=boost.currency,
			duration_hours=boost.duration_hours,
			payment_status=boost.payment_state,
			payment_provider=boost.payment_provider,
			starts_at=boost.starts_at,
			expires_at=boost.expires_at,
			created_at=boost.created_at,
		)


class BoostListResponse(BaseModel):
	data: list[BoostSummary]


class WebhookEvent(BaseModel):
	"""Checkout provider event; only the fields the boost flow reads."""

	type: str
	data: dict[str, Any] = Field(default_factory=dict)

	def session(self) -> dict[str, Any]:
		obj = self.data.get("object")
		return obj if isinstance(obj, dict) else {}

	def metadata(self) -> dict[str, Any]:
		meta = self.session().get("metadata")
		return meta if isinstance(meta, dict) else {}
