"""Pydantic schemas for the estate API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from estate.engagement.domain import models
from estate.engagement.domain.filters import (
	AnyTrue,
	Between,
	Constraint,
	Contains,
	Direction,
	Equals,
	FilterSpec,
	OneOf,
)
from estate.settings import settings


def _default_limit() -> int:
	return settings.search_default_limit


class PaginationInquiry(BaseModel):
	page: int = Field(default=1, ge=1)
	limit: int = Field(default_factory=_default_limit, ge=1)
	sort: Optional[str] = Field(default=None, max_length=64)
	direction: Optional[Direction] = None

	def to_filter_spec(self, constraints: List[Optional[Constraint]] | None = None) -> FilterSpec:
		return FilterSpec.build(
			constraints or (),
			sort=self.sort,
			direction=self.direction,
			page=self.page,
			limit=self.limit,
		)


class OrdinaryInquiry(PaginationInquiry):
	pass


class NumberRange(BaseModel):
	start: float
	end: float


class PeriodRange(BaseModel):
	start: datetime
	end: datetime


# ---------------------------------------------------------------------------
# Members


class MemberCreateRequest(BaseModel):
	member_type: models.MemberType = models.MemberType.USER
	member_nick: str = Field(..., min_length=3, max_length=12)
	member_full_name: Optional[str] = Field(default=None, min_length=3, max_length=100)
	member_image: Optional[str] = None
	member_address: Optional[str] = None
	member_desc: Optional[str] = Field(default=None, max_length=500)


class MemberUpdateRequest(BaseModel):
	member_nick: Optional[str] = Field(default=None, min_length=3, max_length=12)
	member_full_name: Optional[str] = Field(default=None, min_length=3, max_length=100)
	member_image: Optional[str] = None
	member_address: Optional[str] = None
	member_desc: Optional[str] = Field(default=None, max_length=500)


class MemberAdminUpdateRequest(MemberUpdateRequest):
	member_type: Optional[models.MemberType] = None
	member_status: Optional[models.MemberStatus] = None


class MemberResponse(models.Member):
	me_liked: bool = False


class MemberListResponse(BaseModel):
	items: List[MemberResponse]
	total_count: int


class AgentsSearch(BaseModel):
	text: Optional[str] = Field(default=None, max_length=100)


class AgentsInquiry(PaginationInquiry):
	search: AgentsSearch = Field(default_factory=AgentsSearch)

	def to_filter_spec(self, constraints=None) -> FilterSpec:
		text = self.search.text
		return super().to_filter_spec([Contains("member_nick", text) if text else None])


class MembersSearch(BaseModel):
	member_status: Optional[models.MemberStatus] = None
	member_type: Optional[models.MemberType] = None
	text: Optional[str] = Field(default=None, max_length=100)


class MembersInquiry(PaginationInquiry):
	search: MembersSearch = Field(default_factory=MembersSearch)

	def to_filter_spec(self, constraints=None) -> FilterSpec:
		search = self.search
		return super().to_filter_spec(
			[
				Equals("member_status", search.member_status) if search.member_status else None,
				Equals("member_type", search.member_type) if search.member_type else None,
				Contains("member_nick", search.text) if search.text else None,
			]
		)


# ---------------------------------------------------------------------------
# Properties


class PropertyOption(str, Enum):
	BARTER = "property_barter"
	RENT = "property_rent"


class PropertyCreateRequest(BaseModel):
	property_type: models.PropertyType
	property_location: models.PropertyLocation
	property_address: str = Field(..., min_length=3, max_length=200)
	property_title: str = Field(..., min_length=3, max_length=100)
	property_price: float = Field(..., ge=0)
	property_square: float = Field(..., gt=0)
	property_beds: int = Field(..., ge=0)
	property_rooms: int = Field(..., ge=0)
	property_images: List[str] = Field(default_factory=list, max_length=20)
	property_desc: Optional[str] = Field(default=None, max_length=500)
	property_barter: bool = False
	property_rent: bool = False
	constructed_at: Optional[datetime] = None


class PropertyUpdateRequest(BaseModel):
	property_type: Optional[models.PropertyType] = None
	property_status: Optional[models.PropertyStatus] = None
	property_location: Optional[models.PropertyLocation] = None
	property_address: Optional[str] = Field(default=None, min_length=3, max_length=200)
	property_title: Optional[str] = Field(default=None, min_length=3, max_length=100)
	property_price: Optional[float] = Field(default=None, ge=0)
	property_square: Optional[float] = Field(default=None, gt=0)
	property_beds: Optional[int] = Field(default=None, ge=0)
	property_rooms: Optional[int] = Field(default=None, ge=0)
	property_images: Optional[List[str]] = Field(default=None, max_length=20)
	property_desc: Optional[str] = Field(default=None, max_length=500)
	property_barter: Optional[bool] = None
	property_rent: Optional[bool] = None
	constructed_at: Optional[datetime] = None


class PropertyResponse(models.Property):
	me_liked: bool = False
	member_data: Optional[MemberResponse] = None


class PropertyListResponse(BaseModel):
	items: List[PropertyResponse]
	total_count: int


class PropertiesSearch(BaseModel):
	member_id: Optional[UUID] = None
	location_list: Optional[List[models.PropertyLocation]] = None
	type_list: Optional[List[models.PropertyType]] = None
	rooms_list: Optional[List[int]] = None
	beds_list: Optional[List[int]] = None
	options: Optional[List[PropertyOption]] = None
	prices_range: Optional[NumberRange] = None
	periods_range: Optional[PeriodRange] = None
	squares_range: Optional[NumberRange] = None
	text: Optional[str] = Field(default=None, max_length=100)

	def constraints(self) -> List[Optional[Constraint]]:
		return [
			Equals("member_id", self.member_id) if self.member_id else None,
			OneOf("property_location", self.location_list) if self.location_list else None,
			OneOf("property_type", self.type_list) if self.type_list else None,
			OneOf("property_rooms", self.rooms_list) if self.rooms_list else None,
			OneOf("property_beds", self.beds_list) if self.beds_list else None,
			_between("property_price", self.prices_range),
			_between("created_at", self.periods_range),
			_between("property_square", self.squares_range),
			Contains("property_title", self.text) if self.text else None,
			AnyTrue(tuple(option.value for option in self.options)) if self.options else None,
		]


def _between(column: str, bounds: NumberRange | PeriodRange | None) -> Optional[Between]:
	if bounds is None:
		return None
	return Between(column, bounds.start, bounds.end)


class PropertiesInquiry(PaginationInquiry):
	search: PropertiesSearch = Field(default_factory=PropertiesSearch)

	def to_filter_spec(self, constraints=None) -> FilterSpec:
		return super().to_filter_spec(self.search.constraints())


class AgentPropertiesSearch(BaseModel):
	property_status: Optional[models.PropertyStatus] = None


class AgentPropertiesInquiry(PaginationInquiry):
	search: AgentPropertiesSearch = Field(default_factory=AgentPropertiesSearch)


class AllPropertiesSearch(BaseModel):
	property_status: Optional[models.PropertyStatus] = None
	property_location_list: Optional[List[models.PropertyLocation]] = None


class AllPropertiesInquiry(PaginationInquiry):
	search: AllPropertiesSearch = Field(default_factory=AllPropertiesSearch)

	def to_filter_spec(self, constraints=None) -> FilterSpec:
		search = self.search
		return super().to_filter_spec(
			[
				Equals("property_status", search.property_status) if search.property_status else None,
				OneOf("property_location", search.property_location_list) if search.property_location_list else None,
			]
		)


# ---------------------------------------------------------------------------
# Comments


class CommentCreateRequest(BaseModel):
	comment_group: models.CommentGroup
	comment_content: str = Field(..., min_length=1, max_length=100)
	comment_ref_id: UUID


class CommentUpdateRequest(BaseModel):
	comment_status: Optional[models.CommentStatus] = None
	comment_content: Optional[str] = Field(default=None, min_length=1, max_length=100)


class CommentResponse(models.Comment):
	me_liked: bool = False


class CommentListResponse(BaseModel):
	items: List[CommentResponse]
	total_count: int


class CommentsSearch(BaseModel):
	comment_ref_id: UUID


class CommentsInquiry(PaginationInquiry):
	search: CommentsSearch

	def to_filter_spec(self, constraints=None) -> FilterSpec:
		return super().to_filter_spec([Equals("comment_ref_id", self.search.comment_ref_id)])


# ---------------------------------------------------------------------------
# Engagement


class LikeResponse(BaseModel):
	"""Toggle result: ``modifier`` is +1 for a new like and -1 for an unlike."""

	target_id: UUID
	modifier: int
	liked: bool
	likes: int


class CounterDriftReport(BaseModel):
	entity: str
	field: str
	drifted: int
	fixed: bool


class ReconcileRequest(BaseModel):
	apply: bool = True


class ReconcileResponse(BaseModel):
	reports: List[CounterDriftReport]
