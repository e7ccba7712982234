"""Feed read route."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from meowlah.api.deps import get_engine
from meowlah.engine import Orchestrator
from meowlah.infra.auth import AuthenticatedUser, get_optional_user

router = APIRouter(tags=["feed"])


@router.get("/feed")
async def feed_endpoint(
	page: int = Query(default=1, ge=1),
	limit: Optional[int] = Query(default=None, ge=1),
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
	engine: Orchestrator = Depends(get_engine),
) -> dict[str, Any]:
	viewer_id = auth_user.id if auth_user else None
	return await engine.feed_page(viewer_id, page=page, limit=limit)
