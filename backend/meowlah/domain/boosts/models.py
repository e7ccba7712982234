"""Boost ledger models and the fixed hourly rate table."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TargetType(str, Enum):
	POST = "post"
	LOST_CAT = "lost_cat"
	MEMORIAL = "memorial"


class PaymentState(str, Enum):
	PENDING = "pending"
	PAID = "paid"
	FAILED = "failed"


# Ringgit per hour. Lost cats are discounted.
PRICE_PER_HOUR: dict[TargetType, Decimal] = {
	TargetType.POST: Decimal("2.0"),
	TargetType.LOST_CAT: Decimal("1.5"),
	TargetType.MEMORIAL: Decimal("3.0"),
}

# Every target kind carries the promoted flag pair (is_boosted, boost_expires_at).
TARGET_TABLES: dict[TargetType, str] = {
	TargetType.POST: "posts",
	TargetType.LOST_CAT: "lost_cats",
	TargetType.MEMORIAL: "memorials",
}


def quote(target_type: TargetType, duration_hours: int) -> Decimal:
	return PRICE_PER_HOUR[target_type] * duration_hours


class Boost(BaseModel):
	"""A row in the append-only boost ledger."""

	id: UUID
	target_type: TargetType
	target_id: UUID
	purchaser_id: UUID
	amount: Decimal
	currency: str
	duration_hours: int
	payment_state: PaymentState
	payment_provider: str = "stripe"
	payment_reference: Optional[str] = None
	starts_at: Optional[datetime] = None
	expires_at: Optional[datetime] = None
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def is_paid(self) -> bool:
		return self.payment_state is PaymentState.PAID

	def is_active(self, now: datetime) -> bool:
		return self.is_paid and self.expires_at is not None and self.expires_at > now


class ExpiredPromotion(BaseModel):
	"""A promoted entity observed past its window by the sweeper."""

	target_type: TargetType
	target_id: UUID
	boost_expires_at: datetime
