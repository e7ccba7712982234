"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meowlah import __version__
from meowlah.api import alerts, boosts, feed, notifications, ops, payments
from meowlah.api.errors import install_error_handlers
from meowlah.engine import build_engine
from meowlah.infra import postgres
from meowlah.infra.redis import close_client
from meowlah.infra.scheduler import JobScheduler
from meowlah.obs import init as obs_init
from meowlah.settings import settings

SWEEPER_JOB_ID = "boost-expiry-sweeper"


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	engine = build_engine(settings)
	app.state.engine = engine
	scheduler: JobScheduler | None = None
	if settings.boost_sweeper_enabled:
		scheduler = JobScheduler()
		scheduler.start()
		scheduler.schedule_every(SWEEPER_JOB_ID, engine.sweep, seconds=settings.boost_sweep_interval_seconds)
	app.state.scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await close_client()
		await postgres.close_pool()


app = FastAPI(title="MeowLah Alerts & Boosts", version=__version__, lifespan=lifespan)
install_error_handlers(app)

allow_origins = [settings.frontend_url]
if settings.is_dev():
	allow_origins.extend(["http://localhost:3000", "http://127.0.0.1:3000"])

app.add_middleware(
	CORSMiddleware,
	allow_origins=sorted(set(allow_origins)),
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(alerts.router)
app.include_router(boosts.router)
app.include_router(payments.router)
app.include_router(notifications.router)
app.include_router(feed.router)
app.include_router(ops.router)
