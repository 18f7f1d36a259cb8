"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"estate_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"estate_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

LIKE_TOGGLES = Counter(
	"estate_like_toggles_total",
	"Like toggles applied to the ledger",
	["group", "direction"],
)

VIEWS_RECORDED = Counter(
	"estate_views_total",
	"View events seen by the dedup engine",
	["group", "result"],
)

COUNTER_ADJUSTMENTS = Counter(
	"estate_counter_adjustments_total",
	"Atomic counter adjustments",
	["entity", "field", "result"],
)

LEDGER_CONFLICTS = Counter(
	"estate_ledger_conflicts_total",
	"Uniqueness conflicts hit by concurrent ledger writes",
	["kind", "outcome"],
)

ENGAGEMENT_TIMEOUTS = Counter(
	"estate_engagement_timeouts_total",
	"Engagement operations that exceeded their deadline",
	["operation"],
)

SEARCH_QUERIES = Counter(
	"estate_search_queries_total",
	"Paginated search queries",
	["entity", "result"],
)

SEARCH_LATENCY = Histogram(
	"estate_search_latency_seconds",
	"Latency of paginated search queries",
	["entity"],
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)

SEARCH_TOTAL_MATCHES = Gauge(
	"estate_search_last_total_matches",
	"Total matches reported by the most recent search per entity",
	["entity"],
)

COUNTER_DRIFT = Counter(
	"estate_counter_drift_rows_total",
	"Counter rows corrected by reconciliation",
	["entity", "field"],
)

BACKGROUND_RUNS = Counter(
	"estate_background_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"estate_background_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

IDEMPOTENCY_EVENTS = Counter(
	"estate_idempotency_events_total",
	"Idempotency cache outcomes",
	["result"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_like_toggle(group: str, modifier: int) -> None:
	LIKE_TOGGLES.labels(group=group, direction="like" if modifier > 0 else "unlike").inc()


def inc_view(group: str, *, is_new: bool) -> None:
	VIEWS_RECORDED.labels(group=group, result="new" if is_new else "duplicate").inc()


def inc_counter_adjustment(entity: str, field: str, *, result: str) -> None:
	COUNTER_ADJUSTMENTS.labels(entity=entity, field=field, result=result).inc()


def inc_ledger_conflict(kind: str, *, outcome: str) -> None:
	LEDGER_CONFLICTS.labels(kind=kind, outcome=outcome).inc()


def inc_engagement_timeout(operation: str) -> None:
	ENGAGEMENT_TIMEOUTS.labels(operation=operation).inc()


def observe_search(entity: str, *, total: int, latency_seconds: float, result: str) -> None:
	SEARCH_QUERIES.labels(entity=entity, result=result).inc()
	SEARCH_LATENCY.labels(entity=entity).observe(latency_seconds)
	SEARCH_TOTAL_MATCHES.labels(entity=entity).set(total)


def inc_counter_drift(entity: str, field: str, rows: int) -> None:
	if rows > 0:
		COUNTER_DRIFT.labels(entity=entity, field=field).inc(rows)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)


def inc_idempotency(result: str) -> None:
	IDEMPOTENCY_EVENTS.labels(result=result).inc()
