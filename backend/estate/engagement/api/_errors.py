"""Error translation helpers for the estate API."""

from __future__ import annotations

from fastapi import HTTPException

from estate.engagement.domain import exceptions


def to_http_error(exc: exceptions.EstateError) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	headers = {"Retry-After": "1"} if getattr(exc, "retryable", False) else None
	return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=headers)
