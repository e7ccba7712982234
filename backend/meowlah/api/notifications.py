"""Notification inbox routes."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from meowlah.api.deps import get_engine
from meowlah.api.errors import to_http_error
from meowlah.domain.alerts.schemas import MarkAllReadResponse
from meowlah.domain.exceptions import EngineError
from meowlah.engine import Orchestrator
from meowlah.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications_endpoint(
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> dict[str, Any]:
	return await engine.inbox.list(auth_user.id, page=page, limit=limit)


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> MarkAllReadResponse:
	return MarkAllReadResponse(updated=await engine.inbox.mark_all_read(auth_user.id))


@router.put("/{notification_id}/read")
async def mark_read_endpoint(
	notification_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: Orchestrator = Depends(get_engine),
) -> dict[str, bool]:
	try:
		await engine.inbox.mark_read(auth_user.id, str(notification_id))
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return {"success": True}
