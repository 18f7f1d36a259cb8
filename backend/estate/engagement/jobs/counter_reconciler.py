"""Counter reconciliation recomputes ledger-backed counters from the engagement table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from estate.engagement.domain import models
from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.counters import (
	CommentCounter,
	CounterField,
	MemberCounter,
	PropertyCounter,
	counted_table,
)
from estate.obs import metrics as obs_metrics
from estate.obs.engagement import EngagementObserver, default_observer

_JOB_NAME = "estate-counter-reconciler"

# Counters whose truth is a count of ledger rows. Property and comment
# counts on members are owned by the entity services, not the ledger.
LEDGER_COUNTERS: tuple[tuple[CounterField, models.EngagementKind, models.EngagementGroup], ...] = (
	(MemberCounter.LIKES, models.EngagementKind.LIKE, models.EngagementGroup.MEMBER),
	(MemberCounter.VIEWS, models.EngagementKind.VIEW, models.EngagementGroup.MEMBER),
	(PropertyCounter.LIKES, models.EngagementKind.LIKE, models.EngagementGroup.PROPERTY),
	(PropertyCounter.VIEWS, models.EngagementKind.VIEW, models.EngagementGroup.PROPERTY),
	(CommentCounter.LIKES, models.EngagementKind.LIKE, models.EngagementGroup.COMMENT),
)


@dataclass(slots=True)
class DriftReport:
	entity: str
	field: str
	drifted: int
	fixed: bool


class CounterReconciliationJob:
	"""Reports (and optionally repairs) counters that disagree with the ledger."""

	def __init__(
		self,
		*,
		repository: repo_module.EstateRepository | None = None,
		observer: EngagementObserver | None = None,
	) -> None:
		self.repo = repository or repo_module.EstateRepository()
		self.observer = observer or default_observer

	async def run_once(self, *, apply: bool = True) -> list[DriftReport]:
		started = datetime.now(timezone.utc)
		try:
			reports = []
			for field, kind, group in LEDGER_COUNTERS:
				table = counted_table(field)
				drifted = await self.repo.reconcile_counter(
					schema=table.schema, column=field.value, kind=kind, group=group, apply=apply
				)
				self.observer.counter_drift(
					entity=table.schema.table, field=field.value, rows=len(drifted), fixed=apply
				)
				reports.append(
					DriftReport(entity=table.schema.table, field=field.value, drifted=len(drifted), fixed=apply)
				)
			obs_metrics.record_job_run(_JOB_NAME, result="success")
			return reports
		except Exception:
			obs_metrics.record_job_run(_JOB_NAME, result="error")
			raise
		finally:
			duration = (datetime.now(timezone.utc) - started).total_seconds()
			obs_metrics.BACKGROUND_DURATION.labels(name=_JOB_NAME).observe(duration)
