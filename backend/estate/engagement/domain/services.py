"""Service layer orchestrating member, property and comment operations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence, TypeVar
from uuid import UUID

from estate.engagement.domain import models, query
from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.counters import (
	CommentCounter,
	CounterField,
	MemberCounter,
	PropertyCounter,
)
from estate.engagement.domain.engagement import EngagementCoordinator
from estate.engagement.domain.exceptions import ForbiddenError, NotFoundError, ValidationError
from estate.engagement.domain.filters import Constraint, Equals, OneOf
from estate.engagement.domain.paginator import Paginator
from estate.engagement.infra import idempotency
from estate.engagement.schemas import dto
from estate.infra.auth import AuthenticatedUser
from estate.obs.engagement import EngagementObserver, default_observer

R = TypeVar("R")

_ACTIVE_MEMBER = (Equals("member_status", models.MemberStatus.ACTIVE),)
_VISIBLE_MEMBER = (OneOf("member_status", (models.MemberStatus.ACTIVE, models.MemberStatus.BLOCK)),)
_ACTIVE_PROPERTY = (Equals("property_status", models.PropertyStatus.ACTIVE),)
_ACTIVE_COMMENT = (Equals("comment_status", models.CommentStatus.ACTIVE),)

_MEMBER_WRITABLE = frozenset(
	{"member_type", "member_nick", "member_full_name", "member_image", "member_address", "member_desc"}
)
_MEMBER_ADMIN_WRITABLE = _MEMBER_WRITABLE | {"member_status", "deleted_at"}
_PROPERTY_WRITABLE = frozenset(
	{
		"member_id",
		"property_type",
		"property_status",
		"property_location",
		"property_address",
		"property_title",
		"property_price",
		"property_square",
		"property_beds",
		"property_rooms",
		"property_images",
		"property_desc",
		"property_barter",
		"property_rent",
		"sold_at",
		"deleted_at",
		"constructed_at",
	}
)
_COMMENT_WRITABLE = frozenset(
	{"comment_status", "comment_group", "comment_content", "comment_ref_id", "member_id"}
)


def _now() -> datetime:
	return datetime.now(timezone.utc)


def _actor(user: AuthenticatedUser | None) -> UUID | None:
	return UUID(user.id) if user is not None else None


class _EngagementService:
	"""Shared wiring for the entity services."""

	def __init__(
		self,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
		*,
		coordinator: EngagementCoordinator | None = None,
		paginator: Paginator | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer
		self.engagement = coordinator or EngagementCoordinator(self.repo, self.observer)
		self.paginator = paginator or Paginator(self.repo, self.observer)

	async def _like(
		self,
		user: AuthenticatedUser,
		target_id: UUID,
		group: models.EngagementGroup,
		field: CounterField,
		predicate: Sequence[Constraint],
		*,
		idempotency_key: str | None,
	) -> dto.LikeResponse:
		async def _producer() -> dto.LikeResponse:
			outcome = await self.engagement.like(UUID(user.id), target_id, group, field, predicate=predicate)
			return dto.LikeResponse(
				target_id=target_id,
				modifier=outcome.modifier,
				liked=outcome.modifier > 0,
				likes=getattr(outcome.entity, field.value),
			)

		return await idempotency.resolve(
			key=idempotency_key,
			actor_id=user.id,
			body_hash=idempotency.compute_hash(scope=f"like:{group.value}:{target_id}"),
			producer=_producer,
			serializer=lambda response: response.model_dump(mode="json"),
			deserializer=dto.LikeResponse.model_validate,
		)

	async def _mark_liked(
		self,
		user: AuthenticatedUser | None,
		items: Iterable[Any],
		group: models.EngagementGroup,
		to_response: Callable[..., R],
	) -> list[R]:
		items = list(items)
		liked = await self.engagement.likes.liked_among(_actor(user), [item.id for item in items], group)
		return [to_response(**item.model_dump(), me_liked=item.id in liked) for item in items]


class MemberService(_EngagementService):
	"""Member profiles, agent listings and member likes/views."""

	async def create_member(self, user: AuthenticatedUser, payload: dto.MemberCreateRequest) -> dto.MemberResponse:
		if payload.member_type == models.MemberType.ADMIN and not user.has_role("admin"):
			raise ForbiddenError("admin_required")
		record = await self.repo.insert_entity(
			query.MEMBER_SCHEMA,
			{"id": UUID(user.id), **payload.model_dump(exclude_none=True)},
			allowed=_MEMBER_WRITABLE,
		)
		return dto.MemberResponse.model_validate(dict(record))

	async def get_member(self, user: AuthenticatedUser | None, member_id: UUID) -> dto.MemberResponse:
		"""Fetch an ACTIVE or BLOCK member; an authenticated first visit counts as a view."""
		record = await self.repo.fetch_entity(query.MEMBER_SCHEMA, member_id, _VISIBLE_MEMBER)
		if record is None:
			raise NotFoundError("member_not_found")
		member = models.Member.model_validate(dict(record))
		actor = _actor(user)
		outcome = await self.engagement.view(
			actor, member_id, models.EngagementGroup.MEMBER, MemberCounter.VIEWS, predicate=_VISIBLE_MEMBER
		)
		if outcome.entity is not None:
			member = outcome.entity
		me_liked = await self.engagement.likes.is_liked(actor, member_id, models.EngagementGroup.MEMBER)
		return dto.MemberResponse(**member.model_dump(), me_liked=me_liked)

	async def update_member(self, user: AuthenticatedUser, payload: dto.MemberUpdateRequest) -> dto.MemberResponse:
		"""Profile edit by the member themself; blocked or deleted members cannot edit."""
		record = await self.repo.update_entity(
			query.MEMBER_SCHEMA,
			UUID(user.id),
			payload.model_dump(exclude_none=True),
			_ACTIVE_MEMBER,
			allowed=_MEMBER_WRITABLE,
		)
		if record is None:
			raise NotFoundError("member_not_found")
		return dto.MemberResponse.model_validate(dict(record))

	async def update_member_by_admin(
		self, member_id: UUID, payload: dto.MemberAdminUpdateRequest
	) -> dto.MemberResponse:
		changes: dict[str, Any] = payload.model_dump(exclude_none=True)
		if payload.member_status == models.MemberStatus.DELETE:
			changes["deleted_at"] = _now()
		record = await self.repo.update_entity(
			query.MEMBER_SCHEMA, member_id, changes, allowed=_MEMBER_ADMIN_WRITABLE
		)
		if record is None:
			raise NotFoundError("member_not_found")
		return dto.MemberResponse.model_validate(dict(record))

	async def get_agents(self, user: AuthenticatedUser | None, inquiry: dto.AgentsInquiry) -> dto.MemberListResponse:
		base = (
			Equals("member_type", models.MemberType.AGENT),
			*_ACTIVE_MEMBER,
		)
		page = await self.paginator.search(
			base, inquiry.to_filter_spec(), schema=query.MEMBER_SCHEMA, model=models.Member
		)
		items = await self._mark_liked(user, page.items, models.EngagementGroup.MEMBER, dto.MemberResponse)
		return dto.MemberListResponse(items=items, total_count=page.total_count)

	async def get_all_members_by_admin(self, inquiry: dto.MembersInquiry) -> dto.MemberListResponse:
		page = await self.paginator.search(
			(), inquiry.to_filter_spec(), schema=query.MEMBER_SCHEMA, model=models.Member
		)
		return dto.MemberListResponse(
			items=[dto.MemberResponse(**item.model_dump()) for item in page.items],
			total_count=page.total_count,
		)

	async def like_target_member(
		self,
		user: AuthenticatedUser,
		member_id: UUID,
		*,
		idempotency_key: str | None = None,
	) -> dto.LikeResponse:
		return await self._like(
			user,
			member_id,
			models.EngagementGroup.MEMBER,
			MemberCounter.LIKES,
			_ACTIVE_MEMBER,
			idempotency_key=idempotency_key,
		)


class PropertyService(_EngagementService):
	"""Property listings and their engagement."""

	async def create_property(
		self, user: AuthenticatedUser, payload: dto.PropertyCreateRequest
	) -> dto.PropertyResponse:
		owner_id = UUID(user.id)

		async def _work(conn) -> models.Property:
			await self.engagement.counters.adjust(
				owner_id, MemberCounter.PROPERTIES, 1, predicate=_ACTIVE_MEMBER, conn=conn
			)
			record = await self.repo.insert_entity(
				query.PROPERTY_SCHEMA,
				{"member_id": owner_id, **payload.model_dump(exclude_none=True)},
				allowed=_PROPERTY_WRITABLE,
				conn=conn,
			)
			return models.Property.model_validate(dict(record))

		created = await self.engagement.run("create_property", _work)
		return dto.PropertyResponse(**created.model_dump())

	async def get_property(self, user: AuthenticatedUser | None, property_id: UUID) -> dto.PropertyResponse:
		record = await self.repo.fetch_entity(query.PROPERTY_SCHEMA, property_id, _ACTIVE_PROPERTY)
		if record is None:
			raise NotFoundError("property_not_found")
		listing = models.Property.model_validate(dict(record))
		actor = _actor(user)
		outcome = await self.engagement.view(
			actor, property_id, models.EngagementGroup.PROPERTY, PropertyCounter.VIEWS, predicate=_ACTIVE_PROPERTY
		)
		if outcome.entity is not None:
			listing = outcome.entity
		me_liked = await self.engagement.likes.is_liked(actor, property_id, models.EngagementGroup.PROPERTY)
		owner = await self.repo.fetch_entity(query.MEMBER_SCHEMA, listing.member_id, _VISIBLE_MEMBER)
		return dto.PropertyResponse(
			**listing.model_dump(),
			me_liked=me_liked,
			member_data=dto.MemberResponse.model_validate(dict(owner)) if owner is not None else None,
		)

	async def update_property(
		self,
		user: AuthenticatedUser,
		property_id: UUID,
		payload: dto.PropertyUpdateRequest,
	) -> dto.PropertyResponse:
		"""Owner update of an ACTIVE listing; SOLD or DELETE closes it and releases the owner's slot."""
		predicate = (Equals("member_id", UUID(user.id)), *_ACTIVE_PROPERTY)
		return await self._update_listing("update_property", property_id, payload, predicate)

	async def update_property_by_admin(
		self, property_id: UUID, payload: dto.PropertyUpdateRequest
	) -> dto.PropertyResponse:
		return await self._update_listing("update_property_by_admin", property_id, payload, _ACTIVE_PROPERTY)

	async def _update_listing(
		self,
		operation: str,
		property_id: UUID,
		payload: dto.PropertyUpdateRequest,
		predicate: Sequence[Constraint],
	) -> dto.PropertyResponse:
		changes: dict[str, Any] = payload.model_dump(exclude_none=True)
		status = payload.property_status
		closing = status in (models.PropertyStatus.SOLD, models.PropertyStatus.DELETE)
		if status == models.PropertyStatus.SOLD:
			changes["sold_at"] = _now()
		elif status == models.PropertyStatus.DELETE:
			changes["deleted_at"] = _now()

		async def _work(conn) -> models.Property:
			record = await self.repo.update_entity(
				query.PROPERTY_SCHEMA, property_id, changes, predicate, allowed=_PROPERTY_WRITABLE, conn=conn
			)
			if record is None:
				raise NotFoundError("property_not_found")
			listing = models.Property.model_validate(dict(record))
			if closing:
				await self.engagement.counters.adjust(listing.member_id, MemberCounter.PROPERTIES, -1, conn=conn)
			return listing

		updated = await self.engagement.run(operation, _work)
		return dto.PropertyResponse(**updated.model_dump())

	async def get_properties(
		self, user: AuthenticatedUser | None, inquiry: dto.PropertiesInquiry
	) -> dto.PropertyListResponse:
		page = await self.paginator.search(
			_ACTIVE_PROPERTY, inquiry.to_filter_spec(), schema=query.PROPERTY_SCHEMA, model=models.Property
		)
		items = await self._mark_liked(user, page.items, models.EngagementGroup.PROPERTY, dto.PropertyResponse)
		return dto.PropertyListResponse(items=items, total_count=page.total_count)

	async def get_agent_properties(
		self, user: AuthenticatedUser, inquiry: dto.AgentPropertiesInquiry
	) -> dto.PropertyListResponse:
		status = inquiry.search.property_status
		if status == models.PropertyStatus.DELETE:
			raise ValidationError("not_allowed_request")
		status_filter: Constraint = (
			Equals("property_status", status)
			if status
			else OneOf("property_status", (models.PropertyStatus.ACTIVE, models.PropertyStatus.SOLD))
		)
		base = (Equals("member_id", UUID(user.id)), status_filter)
		page = await self.paginator.search(
			base, inquiry.to_filter_spec(), schema=query.PROPERTY_SCHEMA, model=models.Property
		)
		return dto.PropertyListResponse(
			items=[dto.PropertyResponse(**item.model_dump()) for item in page.items],
			total_count=page.total_count,
		)

	async def get_all_properties_by_admin(self, inquiry: dto.AllPropertiesInquiry) -> dto.PropertyListResponse:
		page = await self.paginator.search(
			(), inquiry.to_filter_spec(), schema=query.PROPERTY_SCHEMA, model=models.Property
		)
		return dto.PropertyListResponse(
			items=[dto.PropertyResponse(**item.model_dump()) for item in page.items],
			total_count=page.total_count,
		)

	async def remove_property_by_admin(self, property_id: UUID) -> dto.PropertyResponse:
		"""Hard-delete a listing that is already in DELETE status."""
		record = await self.repo.delete_entity(
			query.PROPERTY_SCHEMA,
			property_id,
			(Equals("property_status", models.PropertyStatus.DELETE),),
		)
		if record is None:
			raise NotFoundError("property_not_found")
		return dto.PropertyResponse.model_validate(dict(record))

	async def like_target_property(
		self,
		user: AuthenticatedUser,
		property_id: UUID,
		*,
		idempotency_key: str | None = None,
	) -> dto.LikeResponse:
		return await self._like(
			user,
			property_id,
			models.EngagementGroup.PROPERTY,
			PropertyCounter.LIKES,
			_ACTIVE_PROPERTY,
			idempotency_key=idempotency_key,
		)

	async def get_favorites(self, user: AuthenticatedUser, inquiry: dto.OrdinaryInquiry) -> dto.PropertyListResponse:
		page = await self.paginator.engaged(
			models.EngagementKind.LIKE,
			UUID(user.id),
			models.EngagementGroup.PROPERTY,
			inquiry.to_filter_spec(),
			schema=query.PROPERTY_SCHEMA,
			model=models.Property,
			base_criteria=_ACTIVE_PROPERTY,
		)
		return dto.PropertyListResponse(
			items=[dto.PropertyResponse(**item.model_dump(), me_liked=True) for item in page.items],
			total_count=page.total_count,
		)

	async def get_visited(self, user: AuthenticatedUser, inquiry: dto.OrdinaryInquiry) -> dto.PropertyListResponse:
		page = await self.paginator.engaged(
			models.EngagementKind.VIEW,
			UUID(user.id),
			models.EngagementGroup.PROPERTY,
			inquiry.to_filter_spec(),
			schema=query.PROPERTY_SCHEMA,
			model=models.Property,
			base_criteria=_ACTIVE_PROPERTY,
		)
		items = await self._mark_liked(user, page.items, models.EngagementGroup.PROPERTY, dto.PropertyResponse)
		return dto.PropertyListResponse(items=items, total_count=page.total_count)


def _comment_target(group: models.CommentGroup) -> tuple[CounterField, tuple[Constraint, ...]]:
	if group == models.CommentGroup.PROPERTY:
		return PropertyCounter.COMMENTS, _ACTIVE_PROPERTY
	if group == models.CommentGroup.MEMBER:
		return MemberCounter.COMMENTS, _ACTIVE_MEMBER
	raise ValidationError(f"unsupported_comment_group:{group.value}")


class CommentService(_EngagementService):
	"""Comments on members and properties, with the target's comment counter kept in step."""

	async def create_comment(self, user: AuthenticatedUser, payload: dto.CommentCreateRequest) -> dto.CommentResponse:
		field, predicate = _comment_target(payload.comment_group)

		async def _work(conn) -> models.Comment:
			# Counter first: a missing or inactive target aborts before the insert.
			await self.engagement.counters.adjust(payload.comment_ref_id, field, 1, predicate=predicate, conn=conn)
			record = await self.repo.insert_entity(
				query.COMMENT_SCHEMA,
				{"member_id": UUID(user.id), **payload.model_dump()},
				allowed=_COMMENT_WRITABLE,
				conn=conn,
			)
			return models.Comment.model_validate(dict(record))

		created = await self.engagement.run("create_comment", _work)
		return dto.CommentResponse(**created.model_dump())

	async def get_comments(
		self, user: AuthenticatedUser | None, inquiry: dto.CommentsInquiry
	) -> dto.CommentListResponse:
		page = await self.paginator.search(
			_ACTIVE_COMMENT, inquiry.to_filter_spec(), schema=query.COMMENT_SCHEMA, model=models.Comment
		)
		items = await self._mark_liked(user, page.items, models.EngagementGroup.COMMENT, dto.CommentResponse)
		return dto.CommentListResponse(items=items, total_count=page.total_count)

	async def update_comment(
		self,
		user: AuthenticatedUser,
		comment_id: UUID,
		payload: dto.CommentUpdateRequest,
	) -> dto.CommentResponse:
		"""Author edit of an ACTIVE comment; DELETE releases the target's comment count."""
		changes = payload.model_dump(exclude_none=True)
		predicate = (Equals("member_id", UUID(user.id)), *_ACTIVE_COMMENT)

		async def _work(conn) -> models.Comment:
			record = await self.repo.update_entity(
				query.COMMENT_SCHEMA, comment_id, changes, predicate, allowed=_COMMENT_WRITABLE, conn=conn
			)
			if record is None:
				raise NotFoundError("comment_not_found")
			comment = models.Comment.model_validate(dict(record))
			if comment.comment_status == models.CommentStatus.DELETE:
				field, _ = _comment_target(comment.comment_group)
				try:
					await self.engagement.counters.adjust(comment.comment_ref_id, field, -1, conn=conn)
				except NotFoundError:
					# Target was removed by an admin; there is no counter left to release.
					pass
			return comment

		updated = await self.engagement.run("update_comment", _work)
		return dto.CommentResponse(**updated.model_dump())

	async def like_target_comment(
		self,
		user: AuthenticatedUser,
		comment_id: UUID,
		*,
		idempotency_key: str | None = None,
	) -> dto.LikeResponse:
		return await self._like(
			user,
			comment_id,
			models.EngagementGroup.COMMENT,
			CommentCounter.LIKES,
			_ACTIVE_COMMENT,
			idempotency_key=idempotency_key,
		)
