"""Admin endpoints: unrestricted listings and updates, hard removal and counter reconciliation."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from estate.engagement.api._errors import to_http_error
from estate.engagement.domain.exceptions import EstateError
from estate.engagement.domain.services import MemberService, PropertyService
from estate.engagement.jobs.counter_reconciler import CounterReconciliationJob
from estate.engagement.schemas import dto
from estate.infra.auth import AuthenticatedUser, require_roles

router = APIRouter(prefix="/admin", tags=["estate:admin"])
_members = MemberService()
_properties = PropertyService()
_reconciler = CounterReconciliationJob()

_require_admin = require_roles("admin")


@router.post("/members/search", response_model=dto.MemberListResponse)
async def get_all_members_endpoint(
	inquiry: dto.MembersInquiry,
	_: AuthenticatedUser = Depends(_require_admin),
) -> dto.MemberListResponse:
	try:
		return await _members.get_all_members_by_admin(inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.patch("/members/{member_id}", response_model=dto.MemberResponse)
async def update_member_by_admin_endpoint(
	member_id: UUID,
	payload: dto.MemberAdminUpdateRequest,
	_: AuthenticatedUser = Depends(_require_admin),
) -> dto.MemberResponse:
	try:
		return await _members.update_member_by_admin(member_id, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/properties/search", response_model=dto.PropertyListResponse)
async def get_all_properties_endpoint(
	inquiry: dto.AllPropertiesInquiry,
	_: AuthenticatedUser = Depends(_require_admin),
) -> dto.PropertyListResponse:
	try:
		return await _properties.get_all_properties_by_admin(inquiry)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.patch("/properties/{property_id}", response_model=dto.PropertyResponse)
async def update_property_by_admin_endpoint(
	property_id: UUID,
	payload: dto.PropertyUpdateRequest,
	_: AuthenticatedUser = Depends(_require_admin),
) -> dto.PropertyResponse:
	try:
		return await _properties.update_property_by_admin(property_id, payload)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.delete("/properties/{property_id}", response_model=dto.PropertyResponse)
async def remove_property_endpoint(
	property_id: UUID,
	_: AuthenticatedUser = Depends(_require_admin),
) -> dto.PropertyResponse:
	try:
		return await _properties.remove_property_by_admin(property_id)
	except EstateError as exc:
		raise to_http_error(exc) from exc


@router.post("/counters/reconcile", response_model=dto.ReconcileResponse)
async def reconcile_counters_endpoint(
	payload: dto.ReconcileRequest,
	_: AuthenticatedUser = Depends(_require_admin),
) -> dto.ReconcileResponse:
	reports = await _reconciler.run_once(apply=payload.apply)
	return dto.ReconcileResponse(
		reports=[
			dto.CounterDriftReport(entity=r.entity, field=r.field, drifted=r.drifted, fixed=r.fixed)
			for r in reports
		]
	)
