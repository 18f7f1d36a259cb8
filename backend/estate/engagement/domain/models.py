"""Domain models for listings, members and the engagement ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class EngagementKind(str, Enum):
	LIKE = "like"
	VIEW = "view"


class EngagementGroup(str, Enum):
	"""Kind of target an engagement record points at."""

	MEMBER = "MEMBER"
	PROPERTY = "PROPERTY"
	ARTICLE = "ARTICLE"
	COMMENT = "COMMENT"


class MemberType(str, Enum):
	USER = "USER"
	AGENT = "AGENT"
	ADMIN = "ADMIN"


class MemberStatus(str, Enum):
	ACTIVE = "ACTIVE"
	BLOCK = "BLOCK"
	DELETE = "DELETE"


class PropertyType(str, Enum):
	APARTMENT = "APARTMENT"
	VILLA = "VILLA"
	HOUSE = "HOUSE"


class PropertyStatus(str, Enum):
	ACTIVE = "ACTIVE"
	SOLD = "SOLD"
	DELETE = "DELETE"


class PropertyLocation(str, Enum):
	SEOUL = "SEOUL"
	BUSAN = "BUSAN"
	INCHEON = "INCHEON"
	DAEGU = "DAEGU"
	GYEONGJU = "GYEONGJU"
	GWANGJU = "GWANGJU"
	CHONJU = "CHONJU"
	DAEJON = "DAEJON"
	JEJU = "JEJU"


class CommentStatus(str, Enum):
	ACTIVE = "ACTIVE"
	DELETE = "DELETE"


class CommentGroup(str, Enum):
	MEMBER = "MEMBER"
	ARTICLE = "ARTICLE"
	PROPERTY = "PROPERTY"


class EngagementRecord(BaseModel):
	"""One ledger row: an actor liked or viewed a target."""

	id: UUID
	kind: EngagementKind
	actor_id: UUID
	target_id: UUID
	target_group: EngagementGroup
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Member(BaseModel):
	"""Represents a member account with its denormalised counters."""

	id: UUID
	member_type: MemberType
	member_status: MemberStatus
	member_nick: str
	member_full_name: Optional[str] = None
	member_image: Optional[str] = None
	member_address: Optional[str] = None
	member_desc: Optional[str] = None
	member_properties: int = 0
	member_articles: int = 0
	member_likes: int = 0
	member_views: int = 0
	member_comments: int = 0
	created_at: datetime
	updated_at: datetime
	deleted_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class Property(BaseModel):
	"""Represents a property listing."""

	id: UUID
	member_id: UUID
	property_type: PropertyType
	property_status: PropertyStatus
	property_location: PropertyLocation
	property_address: str
	property_title: str
	property_price: float
	property_square: float
	property_beds: int
	property_rooms: int
	property_views: int = 0
	property_likes: int = 0
	property_comments: int = 0
	property_images: list[str] = []
	property_desc: Optional[str] = None
	property_barter: bool = False
	property_rent: bool = False
	sold_at: Optional[datetime] = None
	deleted_at: Optional[datetime] = None
	constructed_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Comment(BaseModel):
	"""Represents a comment left on a member, article or property."""

	id: UUID
	comment_status: CommentStatus
	comment_group: CommentGroup
	comment_content: str
	comment_ref_id: UUID
	member_id: UUID
	comment_likes: int = 0
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


T = TypeVar("T")


@dataclass(slots=True)
class ResultPage(Generic[T]):
	"""One window of a search plus the size of the whole match set."""

	items: list[T] = field(default_factory=list)
	total_count: int = 0
