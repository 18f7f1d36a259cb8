"""Comment endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header

from estate.engagement.api._errors import to_http_error
from estate.engagement.domain.exceptions import EstateError
from estate.engagement.domain.services import CommentService
from estate.engagement.schemas import dto
from estate.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter(tags=["estate:comments"])
_service = CommentService()


@router.post("/comments", response_model=dto.CommentResponse, status_code=201)
async def create_comment_endpoint(
	payload: dto.CommentCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommentResponse:
	try:
		return await _service.create_comment(auth_user, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/comments/search", response_model=dto.CommentListResponse)
async def get_comments_endpoint(
	inquiry: dto.CommentsInquiry,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.CommentListResponse:
	try:
		return await _service.get_comments(auth_user, inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.patch("/comments/{comment_id}", response_model=dto.CommentResponse)
async def update_comment_endpoint(
	comment_id: UUID,
	payload: dto.CommentUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommentResponse:
	try:
		return await _service.update_comment(auth_user, comment_id, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/comments/{comment_id}/like", response_model=dto.LikeResponse)
async def like_comment_endpoint(
	comment_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> dto.LikeResponse:
	try:
		return await _service.like_target_comment(auth_user, comment_id, idempotency_key=idempotency_key)
	except EstateError as exc:
		raise to_http_error(exc) from exc
