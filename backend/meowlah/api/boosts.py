"""Boost purchase and activation routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from meowlah.api.deps import get_engine
from meowlah.api.errors import to_http_error
from meowlah.domain.boosts import schemas
from meowlah.domain.exceptions import EngineError
from meowlah.engine import Orchestrator
from meowlah.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/boosts", tags=["boosts"])


@router.post("", response_model=schemas.CreateBoostResponse, status_code=status.HTTP_201_CREATED)
async def create_boost_endpoint(
	payload: schemas.CreateBoostRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> schemas.CreateBoostResponse:
	try:
		boost = await engine.create_boost(
			target_type=payload.target_type,
			target_id=str(payload.target_id),
			purchaser_id=auth_user.id,
			duration_hours=payload.duration_hours,
			payment_provider=payload.payment_provider,
		)
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return schemas.CreateBoostResponse.from_boost(boost)


@router.post("/activate", response_model=schemas.ActivateBoostResponse)
async def activate_boost_endpoint(
	payload: schemas.ActivateBoostRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> schemas.ActivateBoostResponse:
	try:
		boost = await engine.confirm_payment(
			boost_id=str(payload.boost_id),
			payment_reference=payload.payment_reference,
			actor_id=auth_user.id,
		)
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return schemas.ActivateBoostResponse(success=True, expires_at=boost.expires_at)


@router.get("/me", response_model=schemas.BoostListResponse)
async def my_boosts_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> schemas.BoostListResponse:
	boosts = await engine.ledger.list_for_purchaser(auth_user.id)
	return schemas.BoostListResponse(data=[schemas.BoostSummary.from_boost(boost) for boost in boosts])
