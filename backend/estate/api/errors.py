"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from estate.engagement.domain.exceptions import EstateError, _HTTP_422
from estate.obs import logging as obs_logging

_LOG = logging.getLogger(__name__)


def _request_id() -> str:
	return obs_logging.current_request_id() or "unknown"


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": _request_id()}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"detail": "validation_error",
			"errors": jsonable_encoder(exc.errors()),
			"request_id": _request_id(),
		}
		return JSONResponse(status_code=_HTTP_422, content=payload)

	@app.exception_handler(EstateError)
	async def estate_exc_handler(request: Request, exc: EstateError):  # type: ignore[override]
		# Domain errors that escaped an endpoint's own translation.
		_LOG.warning("unhandled_domain_error", extra={"detail": exc.detail, "status": exc.status_code})
		payload = {"detail": exc.detail, "request_id": _request_id()}
		return JSONResponse(status_code=exc.status_code, content=payload)
