"""SQL builder for filtered, sorted, paged searches."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

from estate.engagement.domain.exceptions import ValidationError
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

MEMBER_SCHEMA = SearchSchema(
	table="member",
	columns=frozenset(
		{
			"id",
			"member_type",
			"member_status",
			"member_nick",
			"member_full_name",
			"member_properties",
			"member_articles",
			"member_likes",
			"member_views",
			"member_comments",
			"created_at",
		}
	),
	text_columns=frozenset({"member_nick", "member_full_name"}),
	sortable_columns=frozenset(
		{"created_at", "updated_at", "member_nick", "member_likes", "member_views", "member_properties"}
	),
)

PROPERTY_SCHEMA = SearchSchema(
	table="property",
	columns=frozenset(
		{
			"id",
			"member_id",
			"property_type",
			"property_status",
			"property_location",
			"property_title",
			"property_price",
			"property_square",
			"property_beds",
			"property_rooms",
			"property_views",
			"property_likes",
			"property_comments",
			"property_barter",
			"property_rent",
			"created_at",
		}
	),
	boolean_columns=frozenset({"property_barter", "property_rent"}),
	text_columns=frozenset({"property_title"}),
	sortable_columns=frozenset(
		{
			"created_at",
			"updated_at",
			"property_price",
			"property_square",
			"property_views",
			"property_likes",
			"property_rooms",
		}
	),
)

COMMENT_SCHEMA = SearchSchema(
	table="comment",
	columns=frozenset(
		{"id", "comment_status", "comment_group", "comment_ref_id", "member_id", "comment_likes", "created_at"}
	),
	text_columns=frozenset({"comment_content"}),
	sortable_columns=frozenset({"created_at", "updated_at", "comment_likes"}),
)


def _quote(column: str) -> str:
	return f'"{column}"'


def _bind(value: Any) -> Any:
	if isinstance(value, Enum):
		return value.value
	return value


def escape_like(text: str) -> str:
	"""Escape LIKE wildcards so user text is matched literally."""
	return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_constraints(
	constraints: Iterable[Constraint],
	schema: SearchSchema,
	*,
	start: int = 1,
) -> tuple[list[str], list[Any]]:
	"""Translate constraints to SQL clauses with ``$n`` placeholders numbered from ``start``."""
	clauses: list[str] = []
	params: list[Any] = []

	def _placeholder(value: Any) -> str:
		params.append(value)
		return f"${start + len(params) - 1}"

	for constraint in constraints:
		if isinstance(constraint, Equals):
			column = _quote(schema.require_column(constraint.column))
			clauses.append(f"{column} = {_placeholder(_bind(constraint.value))}")
		elif isinstance(constraint, OneOf):
			column = _quote(schema.require_column(constraint.column))
			values = [_bind(value) for value in constraint.values]
			clauses.append(f"{column} = ANY({_placeholder(values)})")
		elif isinstance(constraint, Between):
			column = _quote(schema.require_column(constraint.column))
			lower = _placeholder(_bind(constraint.start))
			upper = _placeholder(_bind(constraint.end))
			clauses.append(f"{column} BETWEEN {lower} AND {upper}")
		elif isinstance(constraint, Contains):
			column = _quote(schema.require_text(constraint.column))
			pattern = f"%{escape_like(constraint.text)}%"
			clauses.append(f"{column} ILIKE {_placeholder(pattern)} ESCAPE '\\'")
		elif isinstance(constraint, AnyTrue):
			flags = [f"{_quote(schema.require_boolean(column))} IS TRUE" for column in constraint.columns]
			clauses.append(f"({' OR '.join(flags)})")
		else:
			raise ValidationError(f"unsupported_constraint:{type(constraint).__name__}")
	return clauses, params


def where_clause(clauses: Sequence[str]) -> str:
	return " AND ".join(clauses) if clauses else "TRUE"


@dataclass(frozen=True, slots=True)
class CompiledQuery:
	"""SQL for one search: shared WHERE clause, ORDER BY and page window."""

	table: str
	where: str
	params: tuple[Any, ...]
	order_by: str
	limit: int
	offset: int

	def count_sql(self) -> str:
		return f"SELECT COUNT(*) FROM {self.table} WHERE {self.where}"

	def page_sql(self) -> str:
		limit_idx = len(self.params) + 1
		return (
			f"SELECT * FROM {self.table} WHERE {self.where} "
			f"ORDER BY {self.order_by} LIMIT ${limit_idx} OFFSET ${limit_idx + 1}"
		)

	def page_params(self) -> tuple[Any, ...]:
		return (*self.params, self.limit, self.offset)


def build_search_query(
	schema: SearchSchema,
	base_criteria: Sequence[Constraint],
	spec: FilterSpec,
) -> CompiledQuery:
	"""Merge base criteria with the spec's constraints (AND) and attach sort and window."""
	clauses, params = compile_constraints([*base_criteria, *spec.constraints], schema)
	sort_column = _quote(schema.require_sortable(spec.sort.column))
	direction = "ASC" if spec.sort.direction == Direction.ASC else "DESC"
	return CompiledQuery(
		table=schema.table,
		where=where_clause(clauses),
		params=tuple(params),
		order_by=f"{sort_column} {direction}, \"id\" {direction}",
		limit=spec.limit,
		offset=spec.offset,
	)

