"""Engagement coordinator.

Runs a ledger change and the counter adjustment it implies on one
connection inside one transaction, bounded by a deadline. A failure at any
step rolls the whole unit back, so a like or view is never recorded
without its counter change (or the reverse).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar
from uuid import UUID

import asyncpg
from pydantic import BaseModel

from estate.engagement.domain import models
from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.counters import CounterField, CounterStore
from estate.engagement.domain.exceptions import OperationTimeoutError
from estate.engagement.domain.filters import Constraint
from estate.engagement.domain.likes import LikeToggleEngine
from estate.engagement.domain.views import ViewDedupEngine
from estate.obs.engagement import EngagementObserver, default_observer
from estate.settings import settings

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class LikeOutcome:
	modifier: int
	entity: BaseModel


@dataclass(frozen=True, slots=True)
class ViewOutcome:
	is_new: bool
	entity: Optional[BaseModel] = None


class EngagementCoordinator:
	def __init__(
		self,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
		*,
		likes: LikeToggleEngine | None = None,
		views: ViewDedupEngine | None = None,
		counters: CounterStore | None = None,
		timeout_seconds: float | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer
		self.likes = likes or LikeToggleEngine(self.repo, self.observer)
		self.views = views or ViewDedupEngine(self.repo, self.observer)
		self.counters = counters or CounterStore(self.repo, self.observer)
		self.timeout_seconds = (
			settings.engagement_op_timeout_seconds if timeout_seconds is None else timeout_seconds
		)

	async def run(self, operation: str, work: Callable[[asyncpg.Connection], Awaitable[T]]) -> T:
		"""Execute ``work`` in a fresh transaction under the operation deadline."""

		async def _transactional() -> T:
			async with self.repo.transaction() as conn:
				return await work(conn)

		try:
			return await asyncio.wait_for(_transactional(), timeout=self.timeout_seconds)
		except asyncio.TimeoutError as exc:
			self.observer.operation_timed_out(operation=operation, timeout_seconds=self.timeout_seconds)
			raise OperationTimeoutError() from exc

	async def like(
		self,
		actor_id: UUID,
		target_id: UUID,
		group: models.EngagementGroup,
		field: CounterField,
		*,
		predicate: Sequence[Constraint] = (),
	) -> LikeOutcome:
		"""Toggle the like and move ``field`` on the target by the same amount."""

		async def _work(conn: Any) -> LikeOutcome:
			modifier = await self.likes.toggle(actor_id, target_id, group, conn=conn)
			entity = await self.counters.adjust(target_id, field, modifier, predicate=predicate, conn=conn)
			return LikeOutcome(modifier=modifier, entity=entity)

		return await self.run("like", _work)

	async def view(
		self,
		actor_id: UUID | None,
		target_id: UUID,
		group: models.EngagementGroup,
		field: CounterField,
		*,
		predicate: Sequence[Constraint] = (),
	) -> ViewOutcome:
		"""Record a first view and bump ``field``; repeat or anonymous views change nothing."""
		if actor_id is None:
			return ViewOutcome(is_new=False)

		async def _work(conn: Any) -> ViewOutcome:
			is_new = await self.views.record(actor_id, target_id, group, conn=conn)
			if not is_new:
				return ViewOutcome(is_new=False)
			entity = await self.counters.adjust(target_id, field, 1, predicate=predicate, conn=conn)
			return ViewOutcome(is_new=True, entity=entity)

		return await self.run("view", _work)

	async def adjust(
		self,
		entity_id: UUID,
		field: CounterField,
		delta: int,
		*,
		predicate: Sequence[Constraint] = (),
	) -> BaseModel:
		async def _work(conn: Any) -> BaseModel:
			return await self.counters.adjust(entity_id, field, delta, predicate=predicate, conn=conn)

		return await self.run("adjust", _work)
