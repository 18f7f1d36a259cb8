"""Member endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header

from estate.engagement.api._errors import to_http_error
from estate.engagement.domain.exceptions import EstateError
from estate.engagement.domain.services import MemberService
from estate.engagement.schemas import dto
from estate.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter(tags=["estate:members"])
_service = MemberService()


@router.post("/members", response_model=dto.MemberResponse, status_code=201)
async def create_member_endpoint(
	payload: dto.MemberCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MemberResponse:
	try:
		return await _service.create_member(auth_user, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.patch("/members", response_model=dto.MemberResponse)
async def update_member_endpoint(
	payload: dto.MemberUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MemberResponse:
	try:
		return await _service.update_member(auth_user, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.get("/members/{member_id}", response_model=dto.MemberResponse)
async def get_member_endpoint(
	member_id: UUID,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.MemberResponse:
	try:
		return await _service.get_member(auth_user, member_id)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/agents/search", response_model=dto.MemberListResponse)
async def get_agents_endpoint(
	inquiry: dto.AgentsInquiry,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.MemberListResponse:
	try:
		return await _service.get_agents(auth_user, inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/members/{member_id}/like", response_model=dto.LikeResponse)
async def like_member_endpoint(
	member_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> dto.LikeResponse:
	try:
		return await _service.like_target_member(auth_user, member_id, idempotency_key=idempotency_key)
	except EstateError as exc:
		raise to_http_error(exc) from exc
