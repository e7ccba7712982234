"""Push delivery over the Web Push protocol (VAPID)."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

from pywebpush import WebPushException, webpush

from meowlah.domain.alerts.models import PushEndpoint
from meowlah.settings import Settings

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
	"""A single send was rejected or could not reach the provider."""

	def __init__(self, reason: str, *, status_code: Optional[int] = None) -> None:
		super().__init__(reason)
		self.reason = reason
		self.status_code = status_code

	@property
	def subscription_gone(self) -> bool:
		return self.status_code in (404, 410)


class PushSender(Protocol):
	async def send(self, endpoint: PushEndpoint, payload: dict[str, Any]) -> None:
		"""Hand one payload to the provider; raise PushDeliveryError on rejection."""
		...


class WebPushSender:
	"""pywebpush is blocking, so each send runs in a worker thread."""

	def __init__(
		self,
		*,
		vapid_private_key: str,
		vapid_subject: str,
		ttl_seconds: int = 86400,
		request_timeout: float = 10.0,
	) -> None:
		self._private_key = vapid_private_key
		self._subject = vapid_subject
		self._ttl = ttl_seconds
		self._timeout = request_timeout

	async def send(self, endpoint: PushEndpoint, payload: dict[str, Any]) -> None:
		await asyncio.to_thread(self._send_blocking, endpoint, json.dumps(payload))

	def _send_blocking(self, endpoint: PushEndpoint, data: str) -> None:
		try:
			webpush(
				subscription_info=endpoint.to_subscription_info(),
				data=data,
				vapid_private_key=self._private_key,
				# pywebpush adds aud/exp to the claims dict in place
				vapid_claims={"sub": self._subject},
				ttl=self._ttl,
				timeout=self._timeout,
			)
		except WebPushException as exc:
			status_code = getattr(exc.response, "status_code", None) if exc.response is not None else None
			raise PushDeliveryError("push_rejected", status_code=status_code) from exc
		except OSError as exc:
			raise PushDeliveryError("push_unreachable") from exc


class DisabledPushSender:
	"""Selected when VAPID keys are missing; every send fails fast."""

	async def send(self, endpoint: PushEndpoint, payload: dict[str, Any]) -> None:
		raise PushDeliveryError("push_disabled")


def build_push_sender(config: Settings) -> PushSender:
	if not config.push_enabled():
		logger.warning("push.disabled", extra={"reason": "vapid_keys_missing"})
		return DisabledPushSender()
	return WebPushSender(
		vapid_private_key=config.vapid_private_key,
		vapid_subject=config.vapid_subject,
		request_timeout=max(1.0, config.push_send_timeout_seconds),
	)


__all__ = [
	"PushSender",
	"PushDeliveryError",
	"WebPushSender",
	"DisabledPushSender",
	"build_push_sender",
]
