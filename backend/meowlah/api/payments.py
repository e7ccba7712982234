"""Checkout provider webhook.

The provider signs the raw body with HMAC-SHA256 using the shared webhook
secret and sends the hex digest in ``X-Signature``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from meowlah.api.deps import get_engine
from meowlah.api.errors import to_http_error
from meowlah.domain.boosts.schemas import WebhookEvent
from meowlah.domain.exceptions import EngineError
from meowlah.engine import Orchestrator
from meowlah.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def sign_payload(secret: str, body: bytes) -> str:
	return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
	if not signature:
		return False
	return hmac.compare_digest(sign_payload(secret, body), signature.strip().lower())


@router.post("/webhook")
async def payment_webhook_endpoint(
	request: Request,
	x_signature: Optional[str] = Header(default=None, alias="X-Signature"),
	engine: Orchestrator = Depends(get_engine),
) -> dict[str, bool]:
	secret = settings.payment_webhook_secret
	if not secret:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="payments_not_configured")
	body = await request.body()
	if not verify_signature(secret, body, x_signature):
		logger.warning("payments.signature_rejected")
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_signature")
	try:
		event = WebhookEvent.model_validate_json(body)
	except PydanticValidationError as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_event") from exc
	try:
		handled = await engine.handle_payment_event(event)
	except EngineError as exc:
		raise to_http_error(exc) from exc
	return {"received": True, "handled": handled}
