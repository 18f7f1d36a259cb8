"""View dedup engine: a view counts once per (actor, target, group)."""

from __future__ import annotations

from uuid import UUID

from estate.engagement.domain import models
from estate.engagement.domain import repo as repo_module
from estate.obs.engagement import EngagementObserver, default_observer

_KIND = models.EngagementKind.VIEW


class ViewDedupEngine:
	def __init__(
		self,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer

	async def record(
		self,
		actor_id: UUID | None,
		target_id: UUID,
		group: models.EngagementGroup,
		*,
		conn=None,
	) -> bool:
		"""Return True only when this is the actor's first view of the target.

		Anonymous views are never recorded. View records are permanent.
		"""
		if actor_id is None:
			return False
		record = await self.repo.insert_engagement_if_absent(_KIND, actor_id, target_id, group, conn=conn)
		is_new = record is not None
		self.observer.view_recorded(actor_id=actor_id, target_id=target_id, group=group.value, is_new=is_new)
		return is_new
