"""JSON logs with request context bound per task.

Log ``extra`` fields pass through ``sanitize_field``: push credentials and
secrets are redacted, and coordinates are coarsened to about a kilometre so
subscriber locations never land in log storage.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from meowlah.settings import settings

_LOGGER_NAME = "meowlah"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("meowlah_log_context", default={})

_SECRET_KEYS = frozenset(
	{"authorization", "token", "secret", "password", "push_subscription", "subscription", "endpoint", "p256dh", "auth"}
)
_SECRET_SUFFIXES = ("_token", "_secret", "_key")
_COORDINATE_KEYS = frozenset({"lat", "lng", "latitude", "longitude", "location_lat", "location_lng", "last_seen_lat", "last_seen_lng"})
_COORDINATE_DECIMALS = 2

_MAX_STRING_LENGTH = 256

# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Add fields (request_id, route, user_id, ...) to every log line of the current task."""
	merged = dict(_CONTEXT.get())
	merged.update({key: str(value) for key, value in fields.items() if value is not None})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _is_secret(key: str) -> bool:
	return key in _SECRET_KEYS or key.endswith(_SECRET_SUFFIXES)


def sanitize_field(key: str, value: Any) -> Any:
	lowered = key.lower()
	if _is_secret(lowered):
		return "[redacted]"
	if lowered in _COORDINATE_KEYS:
		if isinstance(value, (int, float)) and not isinstance(value, bool):
			return round(float(value), _COORDINATE_DECIMALS)
		return "[redacted]"
	if isinstance(value, dict):
		return {str(k): sanitize_field(str(k), v) for k, v in value.items()}
	if isinstance(value, str) and len(value) > _MAX_STRING_LENGTH:
		return value[:_MAX_STRING_LENGTH] + "..."
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and key not in payload:
				payload[key] = sanitize_field(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of INFO lines; every other level passes."""

	def __init__(self, rate: float) -> None:
		super().__init__()
		self.rate = max(0.0, min(1.0, rate))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self.rate >= 1.0:
			return True
		return random.random() < self.rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter(settings.obs_log_sampling_rate_info))
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	# apscheduler logs every job execution at INFO
	logging.getLogger("apscheduler").setLevel(logging.WARNING)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
