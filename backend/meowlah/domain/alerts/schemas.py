"""Pydantic schemas for the alert and notification endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class LostCatAlertRequest(BaseModel):
	"""Emitted by the reports service once a lost-cat report has been stored."""

	lost_cat_id: UUID
	name: str = Field(..., min_length=1, max_length=100)
	last_seen_lat: float
	last_seen_lng: float


class LostCatAlertResponse(BaseModel):
	lost_cat_id: UUID
	notifications_sent: int


class SightingRequest(BaseModel):
	note: Optional[str] = Field(default=None, max_length=500)


class SightingResponse(BaseModel):
	notified: int


class NearbyQuery(BaseModel):
	lat: float
	lng: float
	radius: float = Field(default=10.0, gt=0.0)
	limit: int = Field(default=50, ge=1, le=100)


class NearbyLostCat(BaseModel):
	lost_cat_id: UUID
	name: str
	lat: float
	lng: float
	distance_km: float


class NearbyLostCatsResponse(BaseModel):
	items: list[NearbyLostCat]


class MarkAllReadResponse(BaseModel):
	updated: int
