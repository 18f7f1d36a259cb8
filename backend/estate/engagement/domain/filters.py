"""Typed filter specifications for paginated searches.

A search is described by a tuple of constraint variants plus a sort and a
page window. The set of variants is closed; ``query.compile_constraints``
handles each one and rejects anything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Union

from estate.engagement.domain.exceptions import ValidationError


class Direction(str, Enum):
	ASC = "ASC"
	DESC = "DESC"


@dataclass(frozen=True, slots=True)
class Equals:
	"""Scalar column equals value."""

	column: str
	value: Any


@dataclass(frozen=True, slots=True)
class OneOf:
	"""Column value is one of ``values`` (``*List`` inquiry fields)."""

	column: str
	values: tuple[Any, ...]

	def __post_init__(self) -> None:
		object.__setattr__(self, "values", tuple(self.values))


@dataclass(frozen=True, slots=True)
class Between:
	"""Inclusive range on a column (``*Range`` inquiry fields)."""

	column: str
	start: Any
	end: Any

	def __post_init__(self) -> None:
		if self.start is None or self.end is None:
			raise ValidationError(f"range_bounds_required:{self.column}")
		if self.start > self.end:
			raise ValidationError(f"range_start_after_end:{self.column}")


@dataclass(frozen=True, slots=True)
class Contains:
	"""Case-insensitive substring match on a text column."""

	column: str
	text: str


@dataclass(frozen=True, slots=True)
class AnyTrue:
	"""Match when at least one of the boolean flag columns is true."""

	columns: tuple[str, ...]

	def __post_init__(self) -> None:
		columns = tuple(self.columns)
		if not columns:
			raise ValidationError("options_empty")
		object.__setattr__(self, "columns", columns)


Constraint = Union[Equals, OneOf, Between, Contains, AnyTrue]


@dataclass(frozen=True, slots=True)
class Sort:
	column: str = "created_at"
	direction: Direction = Direction.DESC


@dataclass(frozen=True, slots=True)
class FilterSpec:
	"""Match constraints, sort order and page window for one search request."""

	constraints: tuple[Constraint, ...] = ()
	sort: Sort = field(default_factory=Sort)
	page: int = 1
	limit: int = 10

	def __post_init__(self) -> None:
		object.__setattr__(self, "constraints", tuple(self.constraints))
		if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
			raise ValidationError("page_must_be_positive")
		if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
			raise ValidationError("limit_must_be_positive")

	@property
	def offset(self) -> int:
		return (self.page - 1) * self.limit

	@classmethod
	def build(
		cls,
		constraints: Iterable[Constraint | None] = (),
		*,
		sort: str | None = None,
		direction: Direction | str | None = None,
		page: int = 1,
		limit: int = 10,
	) -> "FilterSpec":
		"""Assemble a spec from optional inquiry pieces; ``None`` constraints are dropped."""
		try:
			resolved_direction = Direction(direction) if direction else Direction.DESC
		except ValueError as exc:
			raise ValidationError("invalid_sort_direction") from exc
		return cls(
			constraints=tuple(c for c in constraints if c is not None),
			sort=Sort(column=sort or "created_at", direction=resolved_direction),
			page=page,
			limit=limit,
		)


@dataclass(frozen=True, slots=True)
class SearchSchema:
	"""Columns of one table that constraints and sorts may reference."""

	table: str
	columns: frozenset[str]
	boolean_columns: frozenset[str] = frozenset()
	text_columns: frozenset[str] = frozenset()
	sortable_columns: frozenset[str] = frozenset({"created_at"})

	def require_column(self, column: str) -> str:
		if column not in self.columns:
			raise ValidationError(f"unknown_filter_field:{column}")
		return column

	def require_boolean(self, column: str) -> str:
		if column not in self.boolean_columns:
			raise ValidationError(f"not_a_flag_field:{column}")
		return column

	def require_text(self, column: str) -> str:
		if column not in self.text_columns:
			raise ValidationError(f"not_a_text_field:{column}")
		return column

	def require_sortable(self, column: str) -> str:
		if column not in self.sortable_columns:
			raise ValidationError(f"unsupported_sort_field:{column}")
		return column
