"""Counter store: atomic adjustments of denormalised integer fields.

Counter columns are addressed through per-entity enums, and the table a
counter lives on is derived from the enum type.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Type, Union
from uuid import UUID

from pydantic import BaseModel

from estate.engagement.domain import models, query
from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.exceptions import NotFoundError, ValidationError
from estate.engagement.domain.filters import Constraint, SearchSchema
from estate.obs.engagement import EngagementObserver, default_observer


class MemberCounter(str, Enum):
	VIEWS = "member_views"
	LIKES = "member_likes"
	PROPERTIES = "member_properties"
	ARTICLES = "member_articles"
	COMMENTS = "member_comments"


class PropertyCounter(str, Enum):
	VIEWS = "property_views"
	LIKES = "property_likes"
	COMMENTS = "property_comments"


class CommentCounter(str, Enum):
	LIKES = "comment_likes"


CounterField = Union[MemberCounter, PropertyCounter, CommentCounter]


@dataclass(frozen=True, slots=True)
class CountedTable:
	schema: SearchSchema
	model: Type[BaseModel]


_COUNTED_TABLES: dict[type, CountedTable] = {
	MemberCounter: CountedTable(query.MEMBER_SCHEMA, models.Member),
	PropertyCounter: CountedTable(query.PROPERTY_SCHEMA, models.Property),
	CommentCounter: CountedTable(query.COMMENT_SCHEMA, models.Comment),
}


def counted_table(field: CounterField) -> CountedTable:
	try:
		return _COUNTED_TABLES[type(field)]
	except KeyError as exc:
		raise ValidationError("unknown_counter_field") from exc


class CounterStore:
	"""Applies signed deltas to counter fields, one atomic statement per call."""

	def __init__(
		self,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer

	async def adjust(
		self,
		entity_id: UUID,
		field: CounterField,
		delta: int,
		*,
		predicate: Sequence[Constraint] = (),
		conn=None,
	) -> BaseModel:
		"""Add ``delta`` to ``field`` on the entity and return the updated snapshot.

		``predicate`` narrows which rows count as existing (e.g. status ACTIVE);
		a missing row or a failed predicate raises :class:`NotFoundError`.
		"""
		if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
			raise ValidationError("invalid_counter_delta")
		table = counted_table(field)
		record = await self.repo.increment_counter(
			schema=table.schema,
			column=field.value,
			entity_id=entity_id,
			delta=delta,
			predicate=predicate,
			conn=conn,
		)
		if record is None:
			self.observer.counter_adjusted(
				entity=table.schema.table, field=field.value, entity_id=entity_id, delta=delta, result="not_found"
			)
			raise NotFoundError(f"{table.schema.table}_not_found")
		self.observer.counter_adjusted(
			entity=table.schema.table, field=field.value, entity_id=entity_id, delta=delta, result="ok"
		)
		return table.model.model_validate(dict(record))
