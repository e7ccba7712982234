"""Operations endpoints: liveness and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from meowlah.settings import settings

router = APIRouter(prefix="", tags=["ops"])


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
	scheduler = getattr(request.app.state, "scheduler", None)
	return {
		"status": "ok",
		"service": settings.service_name,
		"commit": settings.git_commit,
		"sweeper": bool(scheduler is not None and scheduler.running),
	}


@router.get("/metrics")
async def prometheus_metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
