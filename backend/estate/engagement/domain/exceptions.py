"""Custom exceptions for estate engagement services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - fallback for older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class EstateError(Exception):
	"""Base class for estate domain errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "estate_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(EstateError):
	"""Entity or ledger record is absent (or fails its existence predicate)."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ConflictError(EstateError):
	"""Raised for conflicting ledger writes (e.g., concurrent duplicate like)."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class NoDataError(EstateError):
	"""A search matched nothing."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "no_data_found"


class ValidationError(EstateError):
	"""Raised for malformed filters, counters or payloads not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class ForbiddenError(EstateError):
	"""Raised when the caller may not act on the resource."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class OperationTimeoutError(EstateError):
	"""An engagement operation exceeded its deadline; safe to retry."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "operation_timeout"
	retryable = True


class IdempotencyConflict(ConflictError):
	"""Raised when an idempotency key is reused with a mismatched payload."""

	detail = "idempotency_conflict"


class IdempotencyInProgress(ConflictError):
	"""The same idempotency key is still being processed by another request."""

	detail = "idempotency_in_progress"
	retryable = True
