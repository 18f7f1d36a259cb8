"""In-memory stand-ins for the estate repository and observer."""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID, uuid4

import pytest

from estate.engagement.domain import models
from estate.engagement.domain.exceptions import ConflictError, NotFoundError, ValidationError
from estate.engagement.domain.filters import (
	AnyTrue,
	Between,
	Constraint,
	Contains,
	Direction,
	Equals,
	FilterSpec,
	OneOf,
	SearchSchema,
)
from estate.engagement.domain.query import build_search_query, compile_constraints
from estate.obs.engagement import EngagementObserver


def _bind(value: Any) -> Any:
	return value.value if isinstance(value, Enum) else value


def _matches(row: Mapping[str, Any], constraint: Constraint) -> bool:
	if isinstance(constraint, Equals):
		return row[constraint.column] == _bind(constraint.value)
	if isinstance(constraint, OneOf):
		return row[constraint.column] in [_bind(v) for v in constraint.values]
	if isinstance(constraint, Between):
		return _bind(constraint.start) <= row[constraint.column] <= _bind(constraint.end)
	if isinstance(constraint, Contains):
		return constraint.text.lower() in (row[constraint.column] or "").lower()
	if isinstance(constraint, AnyTrue):
		return any(row[column] is True for column in constraint.columns)
	raise AssertionError(f"unexpected constraint {constraint!r}")


def _defaults(table: str) -> dict[str, Any]:
	if table == "member":
		return {
			"member_type": "USER",
			"member_status": "ACTIVE",
			"member_full_name": None,
			"member_image": None,
			"member_address": None,
			"member_desc": None,
			"member_properties": 0,
			"member_articles": 0,
			"member_likes": 0,
			"member_views": 0,
			"member_comments": 0,
			"deleted_at": None,
		}
	if table == "property":
		return {
			"property_status": "ACTIVE",
			"property_views": 0,
			"property_likes": 0,
			"property_comments": 0,
			"property_images": [],
			"property_desc": None,
			"property_barter": False,
			"property_rent": False,
			"sold_at": None,
			"deleted_at": None,
			"constructed_at": None,
		}
	return {"comment_status": "ACTIVE", "comment_likes": 0}


class InMemoryEstateRepo:
	"""Mirrors EstateRepository on dicts, including unique and non-negative constraints.

	``insert_conflicts`` makes the next N ledger inserts lose a race: a rival
	row for the same tuple appears and the insert raises ConflictError.
	``vanishing_deletes`` makes the next N ledger deletes find nothing.
	"""

	def __init__(self) -> None:
		self.tables: dict[str, dict[UUID, dict[str, Any]]] = {"member": {}, "property": {}, "comment": {}}
		self.ledger: dict[tuple[str, UUID, UUID, str], models.EngagementRecord] = {}
		self.insert_conflicts = 0
		self.vanishing_deletes = 0
		self.commit_delay: float = 0.0
		self.fetch_page_calls = 0
		self.list_engaged_calls = 0
		self._tick = 0

	def _now(self) -> datetime:
		self._tick += 1
		return datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=self._tick)

	@asynccontextmanager
	async def transaction(self):
		snapshot = copy.deepcopy((self.tables, self.ledger))
		try:
			yield self
			if self.commit_delay:
				await asyncio.sleep(self.commit_delay)
		except BaseException:
			self.tables, self.ledger = snapshot
			raise

	# --- seeding helpers ---------------------------------------------------

	def add_member(self, **overrides: Any) -> models.Member:
		member_id = overrides.pop("id", uuid4())
		now = self._now()
		row = {
			**_defaults("member"),
			"id": member_id,
			"member_nick": f"nick{len(self.tables['member'])}",
			"created_at": now,
			"updated_at": now,
			**{key: _bind(value) for key, value in overrides.items()},
		}
		self.tables["member"][member_id] = row
		return models.Member.model_validate(row)

	def add_property(self, owner_id: UUID, **overrides: Any) -> models.Property:
		property_id = overrides.pop("id", uuid4())
		now = overrides.pop("created_at", self._now())
		row = {
			**_defaults("property"),
			"id": property_id,
			"member_id": owner_id,
			"property_type": "APARTMENT",
			"property_location": "SEOUL",
			"property_address": "1 Main St",
			"property_title": f"Listing {len(self.tables['property'])}",
			"property_price": 100.0,
			"property_square": 50.0,
			"property_beds": 2,
			"property_rooms": 3,
			"created_at": now,
			"updated_at": now,
			**{key: _bind(value) for key, value in overrides.items()},
		}
		self.tables["property"][property_id] = row
		return models.Property.model_validate(row)

	def row(self, table: str, entity_id: UUID) -> dict[str, Any]:
		return self.tables[table][entity_id]

	def count_ledger(self, kind: models.EngagementKind, target_id: UUID, group: models.EngagementGroup) -> int:
		return sum(
			1 for (k, _, t, g) in self.ledger if k == kind.value and t == target_id and g == group.value
		)

	# --- ledger ------------------------------------------------------------

	@staticmethod
	def _key(kind, actor_id, target_id, group) -> tuple[str, UUID, UUID, str]:
		return (kind.value, actor_id, target_id, group.value)

	def _record(self, kind, actor_id, target_id, group) -> models.EngagementRecord:
		return models.EngagementRecord(
			id=uuid4(),
			kind=kind,
			actor_id=actor_id,
			target_id=target_id,
			target_group=group,
			created_at=self._now(),
		)

	async def find_engagement(self, kind, actor_id, target_id, group, *, conn=None):
		return self.ledger.get(self._key(kind, actor_id, target_id, group))

	async def insert_engagement(self, kind, actor_id, target_id, group, *, conn=None):
		key = self._key(kind, actor_id, target_id, group)
		if self.insert_conflicts > 0:
			self.insert_conflicts -= 1
			self.ledger[key] = self._record(kind, actor_id, target_id, group)
			raise ConflictError(f"{kind.value}_exists")
		if key in self.ledger:
			raise ConflictError(f"{kind.value}_exists")
		record = self._record(kind, actor_id, target_id, group)
		self.ledger[key] = record
		return record

	async def insert_engagement_if_absent(self, kind, actor_id, target_id, group, *, conn=None):
		key = self._key(kind, actor_id, target_id, group)
		if key in self.ledger:
			return None
		record = self._record(kind, actor_id, target_id, group)
		self.ledger[key] = record
		return record

	async def delete_engagement(self, kind, actor_id, target_id, group, *, conn=None) -> bool:
		key = self._key(kind, actor_id, target_id, group)
		if self.vanishing_deletes > 0:
			self.vanishing_deletes -= 1
			self.ledger.pop(key, None)
			return False
		return self.ledger.pop(key, None) is not None

	async def engaged_target_ids(self, kind, actor_id, target_ids, group, *, conn=None) -> set[UUID]:
		return {
			target_id
			for target_id in target_ids
			if self._key(kind, actor_id, target_id, group) in self.ledger
		}

	async def list_engaged(self, kind, actor_id, group, *, schema, base_criteria, limit, offset):
		self.list_engaged_calls += 1
		compile_constraints(base_criteria, schema)
		records = sorted(
			(
				record
				for (k, a, _, g), record in self.ledger.items()
				if k == kind.value and a == actor_id and g == group.value
			),
			key=lambda record: record.created_at,
			reverse=True,
		)
		rows = []
		for record in records:
			row = self.tables[schema.table].get(record.target_id)
			if row is not None and all(_matches(row, c) for c in base_criteria):
				rows.append(dict(row))
		return rows[offset : offset + limit], len(rows)

	# --- counters ----------------------------------------------------------

	async def increment_counter(self, *, schema, column, entity_id, delta, predicate=(), conn=None):
		schema.require_column(column)
		compile_constraints(predicate, schema)
		row = self.tables[schema.table].get(entity_id)
		if row is None or not all(_matches(row, c) for c in predicate):
			return None
		if row[column] + delta < 0:
			raise ConflictError(f"{column}_underflow")
		row[column] += delta
		row["updated_at"] = self._now()
		return dict(row)

	async def reconcile_counter(self, *, schema, column, kind, group, apply):
		drifted = []
		for entity_id, row in self.tables[schema.table].items():
			truth = self.count_ledger(kind, entity_id, group)
			if row[column] != truth:
				drifted.append(entity_id)
				if apply:
					row[column] = truth
		return drifted

	# --- search ------------------------------------------------------------

	async def fetch_page(self, schema: SearchSchema, base_criteria: Sequence[Constraint], spec: FilterSpec):
		self.fetch_page_calls += 1
		build_search_query(schema, base_criteria, spec)
		constraints = [*base_criteria, *spec.constraints]
		matched = [dict(row) for row in self.tables[schema.table].values() if all(_matches(row, c) for c in constraints)]
		reverse = spec.sort.direction == Direction.DESC
		matched.sort(key=lambda row: (row[spec.sort.column], row["id"]), reverse=reverse)
		return matched[spec.offset : spec.offset + spec.limit], len(matched)

	# --- entities ----------------------------------------------------------

	async def insert_entity(self, schema, values, *, allowed: Iterable[str], conn=None):
		allowed_set = set(allowed)
		fields = {key: _bind(value) for key, value in values.items() if key != "id"}
		for column in fields:
			if column not in allowed_set:
				raise ValidationError(f"unknown_field:{schema.table}.{column}")
		table = self.tables[schema.table]
		entity_id = values.get("id") or uuid4()
		if entity_id in table:
			raise ConflictError(f"{schema.table}_exists")
		if schema.table == "member" and any(r["member_nick"] == fields.get("member_nick") for r in table.values()):
			raise ConflictError("member_exists")
		if "member_id" in fields and fields["member_id"] not in self.tables["member"]:
			raise NotFoundError(f"{schema.table}_reference_not_found")
		now = self._now()
		row = {**_defaults(schema.table), **fields, "id": entity_id, "created_at": now, "updated_at": now}
		table[entity_id] = row
		return dict(row)

	async def fetch_entity(self, schema, entity_id, predicate=(), *, conn=None):
		compile_constraints(predicate, schema)
		row = self.tables[schema.table].get(entity_id)
		if row is None or not all(_matches(row, c) for c in predicate):
			return None
		return dict(row)

	async def update_entity(self, schema, entity_id, changes, predicate=(), *, allowed, conn=None):
		allowed_set = set(allowed)
		for column in changes:
			if column not in allowed_set:
				raise ValidationError(f"unknown_field:{schema.table}.{column}")
		if not changes:
			raise ValidationError("no_updates_requested")
		row = await self.fetch_entity(schema, entity_id, predicate)
		if row is None:
			return None
		nick = changes.get("member_nick")
		if schema.table == "member" and any(
			r["member_nick"] == nick and r["id"] != entity_id for r in self.tables["member"].values()
		):
			raise ConflictError("member_exists")
		stored = self.tables[schema.table][entity_id]
		stored.update({key: _bind(value) for key, value in changes.items()})
		stored["updated_at"] = self._now()
		return dict(stored)

	async def delete_entity(self, schema, entity_id, predicate=(), *, conn=None):
		row = await self.fetch_entity(schema, entity_id, predicate)
		if row is None:
			return None
		del self.tables[schema.table][entity_id]
		return row


class RecordingObserver(EngagementObserver):
	"""Keeps every notification as ``(event, kwargs)`` on top of the default logging/metrics."""

	def __init__(self) -> None:
		super().__init__()
		self.events: list[tuple[str, dict[str, Any]]] = []

	def named(self, event: str) -> list[dict[str, Any]]:
		return [payload for name, payload in self.events if name == event]

	def like_toggled(self, **kwargs: Any) -> None:
		self.events.append(("like_toggled", kwargs))
		super().like_toggled(**kwargs)

	def view_recorded(self, **kwargs: Any) -> None:
		self.events.append(("view_recorded", kwargs))
		super().view_recorded(**kwargs)

	def counter_adjusted(self, **kwargs: Any) -> None:
		self.events.append(("counter_adjusted", kwargs))
		super().counter_adjusted(**kwargs)

	def ledger_conflict(self, **kwargs: Any) -> None:
		self.events.append(("ledger_conflict", kwargs))
		super().ledger_conflict(**kwargs)

	def operation_timed_out(self, **kwargs: Any) -> None:
		self.events.append(("operation_timed_out", kwargs))
		super().operation_timed_out(**kwargs)

	def search_completed(self, **kwargs: Any) -> None:
		self.events.append(("search_completed", kwargs))
		super().search_completed(**kwargs)

	def counter_drift(self, **kwargs: Any) -> None:
		self.events.append(("counter_drift", kwargs))
		super().counter_drift(**kwargs)


@pytest.fixture()
def repo() -> InMemoryEstateRepo:
	return InMemoryEstateRepo()


@pytest.fixture()
def observer() -> RecordingObserver:
	return RecordingObserver()
