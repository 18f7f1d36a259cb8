"""Like toggle engine.

Turns a like action into an insert or delete on the ledger and reports the
signed change for the caller to apply to the matching counter. The engine
never touches counters itself.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from estate.engagement.domain import models
from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.exceptions import ConflictError
from estate.obs.engagement import EngagementObserver, default_observer
from estate.settings import settings

_KIND = models.EngagementKind.LIKE


class LikeToggleEngine:
	def __init__(
		self,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
		*,
		max_retries: int | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer
		self.max_retries = settings.like_conflict_retries if max_retries is None else max_retries

	async def toggle(
		self,
		actor_id: UUID,
		target_id: UUID,
		group: models.EngagementGroup,
		*,
		conn=None,
	) -> int:
		"""Like when absent (+1), unlike when present (-1).

		A concurrent toggle on the same tuple shows up as a uniqueness
		violation on insert or a vanished row on delete; existence is then
		re-checked and the toggle retried before the conflict is surfaced.
		"""
		attempt = 0
		while True:
			try:
				modifier = await self._toggle_once(actor_id, target_id, group, conn=conn)
			except ConflictError:
				if attempt >= self.max_retries:
					self.observer.ledger_conflict(
						kind=_KIND.value, outcome="surfaced", actor_id=actor_id, target_id=target_id
					)
					raise
				attempt += 1
				self.observer.ledger_conflict(
					kind=_KIND.value, outcome="retried", actor_id=actor_id, target_id=target_id
				)
				continue
			self.observer.like_toggled(actor_id=actor_id, target_id=target_id, group=group.value, modifier=modifier)
			return modifier

	async def _toggle_once(self, actor_id: UUID, target_id: UUID, group: models.EngagementGroup, *, conn=None) -> int:
		existing = await self.repo.find_engagement(_KIND, actor_id, target_id, group, conn=conn)
		if existing is not None:
			removed = await self.repo.delete_engagement(_KIND, actor_id, target_id, group, conn=conn)
			if not removed:
				raise ConflictError("like_vanished")
			return -1
		await self.repo.insert_engagement(_KIND, actor_id, target_id, group, conn=conn)
		return 1

	async def is_liked(self, actor_id: UUID | None, target_id: UUID, group: models.EngagementGroup) -> bool:
		if actor_id is None:
			return False
		return await self.repo.find_engagement(_KIND, actor_id, target_id, group) is not None

	async def liked_among(
		self,
		actor_id: UUID | None,
		target_ids: Sequence[UUID],
		group: models.EngagementGroup,
	) -> set[UUID]:
		if actor_id is None or not target_ids:
			return set()
		return await self.repo.engaged_target_ids(_KIND, actor_id, target_ids, group)
