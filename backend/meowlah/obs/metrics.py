"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram, Summary


REQUEST_COUNTER = Counter(
	"meowlah_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"meowlah_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

ALERT_FANOUTS = Counter(
	"meowlah_alert_fanouts_total",
	"Fanouts started per notification kind",
	["kind"],
)

ALERT_CANDIDATES = Summary(
	"meowlah_alert_candidates",
	"Recipients per fanout",
)

PUSH_SENDS = Counter(
	"meowlah_push_sends_total",
	"Push sends by outcome",
	["result"],
)

NOTIFICATIONS_CREATED = Counter(
	"meowlah_notifications_created_total",
	"Notification records persisted",
	["type"],
)

BOOSTS_CREATED = Counter(
	"meowlah_boosts_created_total",
	"Pending boosts created",
	["target_type"],
)

BOOST_ACTIVATIONS = Counter(
	"meowlah_boost_activations_total",
	"Boost activation attempts",
	["result"],
)

BOOST_FAILURES = Counter(
	"meowlah_boost_failures_total",
	"Boosts moved to the failed payment state",
)

BOOSTS_EXPIRED = Counter(
	"meowlah_boosts_expired_total",
	"Promoted flags cleared by the expiry sweeper",
	["target_type"],
)

FEED_CACHE = Counter(
	"meowlah_feed_cache_total",
	"Feed cache operations",
	["result"],
)

BACKGROUND_RUNS = Counter(
	"meowlah_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"meowlah_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def observe_fanout(kind: str, candidates: int) -> None:
	ALERT_FANOUTS.labels(kind=kind).inc()
	ALERT_CANDIDATES.observe(candidates)


def inc_push_send(result: str) -> None:
	PUSH_SENDS.labels(result=result).inc()


def inc_notifications_created(kind: str, count: int = 1) -> None:
	if count > 0:
		NOTIFICATIONS_CREATED.labels(type=kind).inc(count)


def inc_boost_created(target_type: str) -> None:
	BOOSTS_CREATED.labels(target_type=target_type).inc()


def inc_boost_activation(result: str) -> None:
	BOOST_ACTIVATIONS.labels(result=result).inc()


def inc_boost_failed() -> None:
	BOOST_FAILURES.inc()


def inc_boosts_expired(target_type: str, count: int) -> None:
	if count > 0:
		BOOSTS_EXPIRED.labels(target_type=target_type).inc(count)


def inc_feed_cache(result: str) -> None:
	FEED_CACHE.labels(result=result).inc()


def job_run(name: str, result: str, duration_seconds: float) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
