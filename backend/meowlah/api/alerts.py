"""Lost-cat alert routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from meowlah.api.deps import get_engine
from meowlah.api.errors import to_http_error
from meowlah.domain.alerts import schemas
from meowlah.domain.exceptions import EngineError
from meowlah.engine import Orchestrator
from meowlah.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["alerts"])


@router.post(
	"/alerts/lost-cats",
	response_model=schemas.LostCatAlertResponse,
	status_code=status.HTTP_201_CREATED,
)
async def report_lost_cat_endpoint(
	payload: schemas.LostCatAlertRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> schemas.LostCatAlertResponse:
	try:
		sent = await engine.report_lost_cat(
			lost_cat_id=str(payload.lost_cat_id),
			name=payload.name,
			lat=payload.last_seen_lat,
			lng=payload.last_seen_lng,
			reporter_id=auth_user.id,
		)
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return schemas.LostCatAlertResponse(lost_cat_id=payload.lost_cat_id, notifications_sent=sent)


@router.post(
	"/alerts/lost-cats/{lost_cat_id}/sightings",
	response_model=schemas.SightingResponse,
	status_code=status.HTTP_201_CREATED,
)
async def report_sighting_endpoint(
	lost_cat_id: UUID,
	payload: schemas.SightingRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> schemas.SightingResponse:
	try:
		notified = await engine.report_sighting(
			lost_cat_id=str(lost_cat_id),
			reporter_id=auth_user.id,
			note=payload.note,
		)
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return schemas.SightingResponse(notified=notified)


@router.get("/lost-cats/nearby", response_model=schemas.NearbyLostCatsResponse)
async def nearby_lost_cats_endpoint(
	lat: float = Query(...),
	lng: float = Query(...),
	radius: float = Query(default=10.0, gt=0.0),
	limit: int = Query(default=50, ge=1, le=100),
	engine: Orchestrator = Depends(get_engine),
) -> schemas.NearbyLostCatsResponse:
	try:
		reports = await engine.nearby_reports(lat=lat, lng=lng, radius_km=radius, limit=limit)
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return schemas.NearbyLostCatsResponse(
		items=[
			schemas.NearbyLostCat(
				lost_cat_id=report.lost_cat_id,
				name=report.name,
				lat=report.lat,
				lng=report.lng,
				distance_km=report.distance_km,
			)
			for report in reports
		]
	)
