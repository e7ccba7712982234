"""Domain exceptions shared by the alerts, boosts and feed services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class EngineError(Exception):
	"""Base class for errors surfaced to callers of the engine."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "engine_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ValidationError(EngineError):
	"""Raised for input the schema layer cannot reject on its own."""

	status_code = _HTTP_422
	detail = "validation_error"


class ForbiddenError(EngineError):
	"""Raised when the caller does not own the resource."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class NotFoundError(EngineError):
	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ConflictError(EngineError):
	"""Raised when a state transition is not allowed from the current state."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class ServiceUnavailableError(EngineError):
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "unavailable"
