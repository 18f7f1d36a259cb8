"""Paginated searches returning one page plus the total match count."""

from __future__ import annotations

import time
from typing import Any, Mapping, Sequence, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel

from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.exceptions import NoDataError, ValidationError
from estate.engagement.domain.filters import Constraint, FilterSpec, SearchSchema
from estate.engagement.domain.models import EngagementGroup, EngagementKind, ResultPage
from estate.obs.engagement import EngagementObserver, default_observer
from estate.settings import settings

M = TypeVar("M", bound=BaseModel)


class Paginator:
	def __init__(
		self,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
		*,
		empty_is_error: bool | None = None,
		max_limit: int | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer
		self.empty_is_error = settings.search_empty_is_error if empty_is_error is None else empty_is_error
		self.max_limit = settings.search_max_limit if max_limit is None else max_limit

	async def search(
		self,
		base_criteria: Sequence[Constraint],
		spec: FilterSpec,
		*,
		schema: SearchSchema,
		model: Type[M],
	) -> ResultPage[M]:
		"""Run ``base_criteria AND spec.constraints`` and return the requested window.

		Items and total come from one read-only snapshot. An empty match set
		raises :class:`NoDataError` unless the paginator was built with
		``empty_is_error=False``; a page past the end of a non-empty set is
		returned empty.
		"""
		if spec.limit > self.max_limit:
			raise ValidationError("limit_too_large")
		started = time.perf_counter()
		rows, total = await self.repo.fetch_page(schema, base_criteria, spec)
		return self._page(schema, model, rows, total, time.perf_counter() - started)

	def _page(
		self,
		schema: SearchSchema,
		model: Type[M],
		rows: Sequence[Mapping[str, Any]],
		total: int,
		elapsed: float,
	) -> ResultPage[M]:
		if total == 0 and self.empty_is_error:
			self.observer.search_completed(
				entity=schema.table, total=0, returned=0, latency_seconds=elapsed, result="no_data"
			)
			raise NoDataError()
		items = [model.model_validate(dict(row)) for row in rows]
		self.observer.search_completed(
			entity=schema.table,
			total=total,
			returned=len(items),
			latency_seconds=elapsed,
			result="ok" if items else "empty_page",
		)
		return ResultPage(items=items, total_count=total)

	async def engaged(
		self,
		kind: EngagementKind,
		actor_id: UUID,
		group: EngagementGroup,
		spec: FilterSpec,
		*,
		schema: SearchSchema,
		model: Type[M],
		base_criteria: Sequence[Constraint] = (),
	) -> ResultPage[M]:
		"""Targets ``actor_id`` liked or viewed, most recent engagement first.

		The sort field is validated against ``schema`` but rows always come back
		in engagement order.
		"""
		if spec.limit > self.max_limit:
			raise ValidationError("limit_too_large")
		schema.require_sortable(spec.sort.column)
		started = time.perf_counter()
		rows, total = await self.repo.list_engaged(
			kind,
			actor_id,
			group,
			schema=schema,
			base_criteria=[*base_criteria, *spec.constraints],
			limit=spec.limit,
			offset=spec.offset,
		)
		return self._page(schema, model, rows, total, time.perf_counter() - started)
