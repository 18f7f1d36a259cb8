"""Observer injected into engagement components.

Engines, the counter store and the paginator report what happened here
instead of logging inline. The default implementation writes structured
logs and Prometheus metrics; tests pass a recording subclass.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from estate.obs import logging as obs_logging
from estate.obs import metrics as obs_metrics


class EngagementObserver:
	def __init__(self, logger: logging.Logger | None = None) -> None:
		self._log = logger or obs_logging.get_logger("estate.engagement")

	def like_toggled(self, *, actor_id: UUID, target_id: UUID, group: str, modifier: int) -> None:
		obs_metrics.inc_like_toggle(group, modifier)
		self._log.info(
			"like_toggled",
			extra={"actor_id": str(actor_id), "target_id": str(target_id), "group": group, "modifier": modifier},
		)

	def view_recorded(self, *, actor_id: UUID, target_id: UUID, group: str, is_new: bool) -> None:
		obs_metrics.inc_view(group, is_new=is_new)
		if is_new:
			self._log.info(
				"view_recorded",
				extra={"actor_id": str(actor_id), "target_id": str(target_id), "group": group},
			)

	def counter_adjusted(self, *, entity: str, field: str, entity_id: UUID, delta: int, result: str) -> None:
		obs_metrics.inc_counter_adjustment(entity, field, result=result)
		level = logging.INFO if result == "ok" else logging.WARNING
		self._log.log(
			level,
			"counter_adjusted",
			extra={"entity": entity, "field": field, "entity_id": str(entity_id), "delta": delta, "result": result},
		)

	def ledger_conflict(self, *, kind: str, outcome: str, **context: Any) -> None:
		obs_metrics.inc_ledger_conflict(kind, outcome=outcome)
		self._log.warning("ledger_conflict", extra={"kind": kind, "outcome": outcome, **_stringify(context)})

	def operation_timed_out(self, *, operation: str, timeout_seconds: float) -> None:
		obs_metrics.inc_engagement_timeout(operation)
		self._log.warning("engagement_timeout", extra={"operation": operation, "timeout_seconds": timeout_seconds})

	def search_completed(
		self,
		*,
		entity: str,
		total: int,
		returned: int,
		latency_seconds: float,
		result: str,
	) -> None:
		obs_metrics.observe_search(entity, total=total, latency_seconds=latency_seconds, result=result)
		self._log.info(
			"search_completed",
			extra={
				"entity": entity,
				"total": total,
				"returned": returned,
				"latency_ms": round(latency_seconds * 1000, 3),
				"result": result,
			},
		)

	def counter_drift(self, *, entity: str, field: str, rows: int, fixed: bool) -> None:
		if fixed:
			obs_metrics.inc_counter_drift(entity, field, rows)
		if rows:
			self._log.warning(
				"counter_drift",
				extra={"entity": entity, "field": field, "rows": rows, "fixed": fixed},
			)


def _stringify(context: dict[str, Any]) -> dict[str, Any]:
	return {key: str(value) if isinstance(value, UUID) else value for key, value in context.items()}


default_observer = EngagementObserver()
