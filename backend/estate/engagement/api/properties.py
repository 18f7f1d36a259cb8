"""Property listing endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header

from estate.engagement.api._errors import to_http_error
from estate.engagement.domain.exceptions import EstateError
from estate.engagement.domain.services import PropertyService
from estate.engagement.schemas import dto
from estate.infra.auth import AuthenticatedUser, get_current_user, get_optional_user, require_roles

router = APIRouter(tags=["estate:properties"])
_service = PropertyService()

_require_agent = require_roles("agent")


@router.post("/properties", response_model=dto.PropertyResponse, status_code=201)
async def create_property_endpoint(
	payload: dto.PropertyCreateRequest,
	auth_user: AuthenticatedUser = Depends(_require_agent),
) -> dto.PropertyResponse:
	try:
		return await _service.create_property(auth_user, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/properties/search", response_model=dto.PropertyListResponse)
async def get_properties_endpoint(
	inquiry: dto.PropertiesInquiry,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.PropertyListResponse:
	try:
		return await _service.get_properties(auth_user, inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/properties/agent/search", response_model=dto.PropertyListResponse)
async def get_agent_properties_endpoint(
	inquiry: dto.AgentPropertiesInquiry,
	auth_user: AuthenticatedUser = Depends(_require_agent),
) -> dto.PropertyListResponse:
	try:
		return await _service.get_agent_properties(auth_user, inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/properties/favorites", response_model=dto.PropertyListResponse)
async def get_favorites_endpoint(
	inquiry: dto.OrdinaryInquiry,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PropertyListResponse:
	try:
		return await _service.get_favorites(auth_user, inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/properties/visited", response_model=dto.PropertyListResponse)
async def get_visited_endpoint(
	inquiry: dto.OrdinaryInquiry,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PropertyListResponse:
	try:
		return await _service.get_visited(auth_user, inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.get("/properties/{property_id}", response_model=dto.PropertyResponse)
async def get_property_endpoint(
	property_id: UUID,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.PropertyResponse:
	try:
		return await _service.get_property(auth_user, property_id)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.patch("/properties/{property_id}", response_model=dto.PropertyResponse)
async def update_property_endpoint(
	property_id: UUID,
	payload: dto.PropertyUpdateRequest,
	auth_user: AuthenticatedUser = Depends(_require_agent),
) -> dto.PropertyResponse:
	try:
		return await _service.update_property(auth_user, property_id, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/properties/{property_id}/like", response_model=dto.LikeResponse)
async def like_property_endpoint(
	property_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> dto.LikeResponse:
	try:
		return await _service.like_target_property(auth_user, property_id, idempotency_key=idempotency_key)
	except EstateError as exc:
		raise to_http_error(exc) from exc
