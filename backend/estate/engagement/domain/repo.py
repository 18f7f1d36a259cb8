"""Async repository helpers for the estate domain."""

from __future__ import annotations

from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Mapping, Sequence
from uuid import UUID, uuid4

import asyncpg

from estate.engagement.domain import models
from estate.engagement.domain.exceptions import ConflictError, NotFoundError, ValidationError
from estate.engagement.domain.filters import Constraint, FilterSpec, SearchSchema
from estate.engagement.domain.query import build_search_query, compile_constraints, where_clause
from estate.infra.postgres import get_pool

_LEDGER_COLUMNS = "kind, actor_id, target_id, target_group"


def _columns_sql(schema: SearchSchema, values: Mapping[str, Any], allowed: Iterable[str]) -> list[str]:
	allowed_set = set(allowed)
	columns = []
	for column in values:
		if column not in allowed_set:
			raise ValidationError(f"unknown_field:{schema.table}.{column}")
		columns.append(column)
	return columns


def _bind_value(value: Any) -> Any:
	return value.value if isinstance(value, Enum) else value


class EstateRepository:
	"""Thin data-access layer around asyncpg."""

	@asynccontextmanager
	async def _connection(self, conn: asyncpg.Connection | None = None) -> AsyncIterator[asyncpg.Connection]:
		if conn is not None:
			yield conn
			return
		pool = await get_pool()
		async with pool.acquire() as acquired:
			yield acquired

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
		"""Yield a connection inside a transaction; commit on exit, roll back on error."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				yield conn

	# --- Engagement ledger --------------------------------------------------

	async def find_engagement(
		self,
		kind: models.EngagementKind,
		actor_id: UUID,
		target_id: UUID,
		group: models.EngagementGroup,
		*,
		conn: asyncpg.Connection | None = None,
	) -> models.EngagementRecord | None:
		async with self._connection(conn) as c:
			record = await c.fetchrow(
				f"""
				SELECT * FROM engagement
				WHERE ({_LEDGER_COLUMNS}) = ($1, $2, $3, $4)
				""",
				kind.value,
				actor_id,
				target_id,
				group.value,
			)
		return models.EngagementRecord.model_validate(dict(record)) if record else None

	async def insert_engagement(
		self,
		kind: models.EngagementKind,
		actor_id: UUID,
		target_id: UUID,
		group: models.EngagementGroup,
		*,
		conn: asyncpg.Connection | None = None,
	) -> models.EngagementRecord:
		async with self._connection(conn) as c:
			# Savepoint when nested so a violation leaves the caller's transaction usable.
			async with c.transaction():
				try:
					record = await c.fetchrow(
						f"""
						INSERT INTO engagement (id, {_LEDGER_COLUMNS})
						VALUES ($1, $2, $3, $4, $5)
						RETURNING *
						""",
						uuid4(),
						kind.value,
						actor_id,
						target_id,
						group.value,
					)
				except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
					raise ConflictError(f"{kind.value}_exists") from exc
		return models.EngagementRecord.model_validate(dict(record))

	async def insert_engagement_if_absent(
		self,
		kind: models.EngagementKind,
		actor_id: UUID,
		target_id: UUID,
		group: models.EngagementGroup,
		*,
		conn: asyncpg.Connection | None = None,
	) -> models.EngagementRecord | None:
		async with self._connection(conn) as c:
			record = await c.fetchrow(
				f"""
				INSERT INTO engagement (id, {_LEDGER_COLUMNS})
				VALUES ($1, $2, $3, $4, $5)
				ON CONFLICT ({_LEDGER_COLUMNS}) DO NOTHING
				RETURNING *
				""",
				uuid4(),
				kind.value,
				actor_id,
				target_id,
				group.value,
			)
		return models.EngagementRecord.model_validate(dict(record)) if record else None

	async def delete_engagement(
		self,
		kind: models.EngagementKind,
		actor_id: UUID,
		target_id: UUID,
		group: models.EngagementGroup,
		*,
		conn: asyncpg.Connection | None = None,
	) -> bool:
		async with self._connection(conn) as c:
			deleted = await c.execute(
				f"""
				DELETE FROM engagement
				WHERE ({_LEDGER_COLUMNS}) = ($1, $2, $3, $4)
				""",
				kind.value,
				actor_id,
				target_id,
				group.value,
			)
		return deleted.split()[-1] != "0"

	async def engaged_target_ids(
		self,
		kind: models.EngagementKind,
		actor_id: UUID,
		target_ids: Sequence[UUID],
		group: models.EngagementGroup,
		*,
		conn: asyncpg.Connection | None = None,
	) -> set[UUID]:
		if not target_ids:
			return set()
		async with self._connection(conn) as c:
			rows = await c.fetch(
				"""
				SELECT target_id FROM engagement
				WHERE kind=$1 AND actor_id=$2 AND target_group=$3 AND target_id = ANY($4::uuid[])
				""",
				kind.value,
				actor_id,
				group.value,
				list(target_ids),
			)
		return {row["target_id"] for row in rows}

	async def list_engaged(
		self,
		kind: models.EngagementKind,
		actor_id: UUID,
		group: models.EngagementGroup,
		*,
		schema: SearchSchema,
		base_criteria: Sequence[Constraint],
		limit: int,
		offset: int,
	) -> tuple[list[Mapping[str, Any]], int]:
		"""Targets an actor engaged with, newest engagement first (favourites / visited)."""
		clauses, params = compile_constraints(base_criteria, schema, start=4)
		join = f"""
			FROM engagement e
			JOIN (SELECT * FROM {schema.table} WHERE {where_clause(clauses)}) t ON t.id = e.target_id
			WHERE e.kind=$1 AND e.actor_id=$2 AND e.target_group=$3
		"""
		limit_idx = len(params) + 4
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction(isolation="repeatable_read", readonly=True):
				total = await conn.fetchval(
					f"SELECT COUNT(*) {join}",
					kind.value,
					actor_id,
					group.value,
					*params,
				)
				rows = await conn.fetch(
					f"SELECT t.* {join} ORDER BY e.created_at DESC, e.id DESC LIMIT ${limit_idx} OFFSET ${limit_idx + 1}",
					kind.value,
					actor_id,
					group.value,
					*params,
					limit,
					offset,
				)
		return list(rows), int(total or 0)

	# --- Counters -----------------------------------------------------------

	async def increment_counter(
		self,
		*,
		schema: SearchSchema,
		column: str,
		entity_id: UUID,
		delta: int,
		predicate: Sequence[Constraint] = (),
		conn: asyncpg.Connection | None = None,
	) -> Mapping[str, Any] | None:
		"""Apply ``column = column + delta`` in one statement; None when no row qualifies."""
		counter = schema.require_column(column)
		clauses, params = compile_constraints(predicate, schema, start=3)
		where = where_clause(['"id" = $1', *clauses])
		async with self._connection(conn) as c:
			try:
				record = await c.fetchrow(
					f"""
					UPDATE {schema.table}
					SET "{counter}" = "{counter}" + $2, updated_at = NOW()
					WHERE {where}
					RETURNING *
					""",
					entity_id,
					delta,
					*params,
				)
			except asyncpg.CheckViolationError as exc:  # type: ignore[attr-defined]
				raise ConflictError(f"{counter}_underflow") from exc
		return record

	async def reconcile_counter(
		self,
		*,
		schema: SearchSchema,
		column: str,
		kind: models.EngagementKind,
		group: models.EngagementGroup,
		apply: bool,
	) -> list[UUID]:
		"""Return ids whose counter disagrees with the ledger; rewrite them when ``apply``."""
		counter = schema.require_column(column)
		truth = f"""
			WITH truth AS (
				SELECT t.id, COUNT(e.id) AS n
				FROM {schema.table} t
				LEFT JOIN engagement e ON e.target_id = t.id AND e.kind = $1 AND e.target_group = $2
				GROUP BY t.id
			)
		"""
		pool = await get_pool()
		async with pool.acquire() as conn:
			if apply:
				rows = await conn.fetch(
					f"""
					{truth}
					UPDATE {schema.table} AS x SET "{counter}" = truth.n, updated_at = NOW()
					FROM truth
					WHERE x.id = truth.id AND x."{counter}" <> truth.n
					RETURNING x.id
					""",
					kind.value,
					group.value,
				)
			else:
				rows = await conn.fetch(
					f"""
					{truth}
					SELECT x.id FROM {schema.table} x JOIN truth ON truth.id = x.id
					WHERE x."{counter}" <> truth.n
					""",
					kind.value,
					group.value,
				)
		return [row["id"] for row in rows]

	# --- Search -------------------------------------------------------------

	async def fetch_page(
		self,
		schema: SearchSchema,
		base_criteria: Sequence[Constraint],
		spec: FilterSpec,
	) -> tuple[list[Mapping[str, Any]], int]:
		"""Count and fetch one window from the same snapshot."""
		query = build_search_query(schema, base_criteria, spec)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction(isolation="repeatable_read", readonly=True):
				total = await conn.fetchval(query.count_sql(), *query.params)
				rows = await conn.fetch(query.page_sql(), *query.page_params())
		return list(rows), int(total or 0)

	# --- Entities -----------------------------------------------------------

	async def insert_entity(
		self,
		schema: SearchSchema,
		values: Mapping[str, Any],
		*,
		allowed: Iterable[str],
		conn: asyncpg.Connection | None = None,
	) -> Mapping[str, Any]:
		"""Insert a row; ``values["id"]`` is used when given, otherwise a new id is generated."""
		fields = {column: value for column, value in values.items() if column != "id"}
		columns = _columns_sql(schema, fields, allowed)
		placeholders = ", ".join(f"${idx}" for idx in range(2, len(columns) + 2))
		column_sql = ", ".join(f'"{column}"' for column in columns)
		async with self._connection(conn) as c:
			try:
				record = await c.fetchrow(
					f"""
					INSERT INTO {schema.table} (id, {column_sql})
					VALUES ($1, {placeholders})
					RETURNING *
					""",
					values.get("id") or uuid4(),
					*(_bind_value(fields[column]) for column in columns),
				)
			except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
				raise ConflictError(f"{schema.table}_exists") from exc
			except asyncpg.ForeignKeyViolationError as exc:  # type: ignore[attr-defined]
				raise NotFoundError(f"{schema.table}_reference_not_found") from exc
		return record

	async def fetch_entity(
		self,
		schema: SearchSchema,
		entity_id: UUID,
		predicate: Sequence[Constraint] = (),
		*,
		conn: asyncpg.Connection | None = None,
	) -> Mapping[str, Any] | None:
		clauses, params = compile_constraints(predicate, schema, start=2)
		where = where_clause(['"id" = $1', *clauses])
		async with self._connection(conn) as c:
			return await c.fetchrow(
				f"SELECT * FROM {schema.table} WHERE {where}",
				entity_id,
				*params,
			)

	async def update_entity(
		self,
		schema: SearchSchema,
		entity_id: UUID,
		changes: Mapping[str, Any],
		predicate: Sequence[Constraint] = (),
		*,
		allowed: Iterable[str],
		conn: asyncpg.Connection | None = None,
	) -> Mapping[str, Any] | None:
		columns = _columns_sql(schema, changes, allowed)
		if not columns:
			raise ValidationError("no_updates_requested")
		assignments = ", ".join(f'"{column}" = ${idx}' for idx, column in enumerate(columns, start=2))
		clauses, params = compile_constraints(predicate, schema, start=len(columns) + 2)
		where = where_clause(['"id" = $1', *clauses])
		async with self._connection(conn) as c:
			try:
				return await c.fetchrow(
					f"""
					UPDATE {schema.table} SET {assignments}, updated_at = NOW()
					WHERE {where}
					RETURNING *
					""",
					entity_id,
					*(_bind_value(changes[column]) for column in columns),
					*params,
				)
			except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
				raise ConflictError(f"{schema.table}_exists") from exc

	async def delete_entity(
		self,
		schema: SearchSchema,
		entity_id: UUID,
		predicate: Sequence[Constraint] = (),
		*,
		conn: asyncpg.Connection | None = None,
	) -> Mapping[str, Any] | None:
		clauses, params = compile_constraints(predicate, schema, start=2)
		where = where_clause(['"id" = $1', *clauses])
		async with self._connection(conn) as c:
			return await c.fetchrow(
				f"DELETE FROM {schema.table} WHERE {where} RETURNING *",
				entity_id,
				*params,
			)
