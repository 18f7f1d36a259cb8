from __future__ import annotations

from uuid import uuid4

import pytest

from estate.engagement.domain import models
from estate.engagement.domain.exceptions import ValidationError
from estate.engagement.domain.filters import (
	AnyTrue,
	Between,
	Contains,
	Direction,
	Equals,
	FilterSpec,
	OneOf,
	Sort,
)
from estate.engagement.domain.query import (
	PROPERTY_SCHEMA,
	build_search_query,
	compile_constraints,
	escape_like,
)


def test_each_constraint_compiles_to_numbered_placeholders():
	owner = uuid4()
	clauses, params = compile_constraints(
		[
			Equals("member_id", owner),
			OneOf("property_location", [models.PropertyLocation.SEOUL, models.PropertyLocation.BUSAN]),
			Between("property_price", 100, 200),
			Contains("property_title", "sea view"),
			AnyTrue(("property_barter", "property_rent")),
		],
		PROPERTY_SCHEMA,
	)

	assert clauses == [
		'"member_id" = $1',
		'"property_location" = ANY($2)',
		'"property_price" BETWEEN $3 AND $4',
		"\"property_title\" ILIKE $5 ESCAPE '\\'",
		'("property_barter" IS TRUE OR "property_rent" IS TRUE)',
	]
	assert params == [owner, ["SEOUL", "BUSAN"], 100, 200, "%sea view%"]


def test_placeholders_can_start_after_caller_params():
	clauses, params = compile_constraints([Equals("property_status", "ACTIVE")], PROPERTY_SCHEMA, start=3)
	assert clauses == ['"property_status" = $3']
	assert params == ["ACTIVE"]


def test_like_wildcards_are_matched_literally():
	assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
	_, params = compile_constraints([Contains("property_title", "100%")], PROPERTY_SCHEMA)
	assert params == ["%100\\%%"]


@pytest.mark.parametrize(
	"constraint",
	[
		Equals("property_owner_password", "x"),
		Contains("property_address", "street"),
		AnyTrue(("property_title",)),
	],
)
def test_unknown_or_mistyped_columns_are_rejected(constraint):
	with pytest.raises(ValidationError):
		compile_constraints([constraint], PROPERTY_SCHEMA)


def test_unsupported_constraint_type_is_rejected():
	with pytest.raises(ValidationError):
		compile_constraints([("property_price", 1)], PROPERTY_SCHEMA)  # type: ignore[list-item]


def test_constraint_shapes_are_validated_on_construction():
	with pytest.raises(ValidationError):
		Between("property_price", 300, 100)
	with pytest.raises(ValidationError):
		Between("property_price", None, 100)
	with pytest.raises(ValidationError):
		AnyTrue(())


@pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (-1, 5), (True, 5), (1, 2.5)])
def test_filter_spec_rejects_bad_window(page, limit):
	with pytest.raises(ValidationError):
		FilterSpec(page=page, limit=limit)


def test_filter_spec_build_drops_missing_constraints_and_defaults_sort():
	spec = FilterSpec.build([None, Equals("property_status", "ACTIVE"), None], page=3, limit=4)
	assert spec.constraints == (Equals("property_status", "ACTIVE"),)
	assert spec.sort == Sort("created_at", Direction.DESC)
	assert spec.offset == 8
	with pytest.raises(ValidationError):
		FilterSpec.build(direction="sideways")


def test_search_query_merges_base_criteria_and_window():
	spec = FilterSpec.build(
		[Between("property_price", 100, 200)],
		sort="property_price",
		direction="ASC",
		page=2,
		limit=5,
	)
	query = build_search_query(PROPERTY_SCHEMA, [Equals("property_status", "ACTIVE")], spec)

	assert query.count_sql() == (
		'SELECT COUNT(*) FROM property WHERE "property_status" = $1 AND "property_price" BETWEEN $2 AND $3'
	)
	assert query.page_sql().endswith('ORDER BY "property_price" ASC, "id" ASC LIMIT $4 OFFSET $5')
	assert query.page_params() == ("ACTIVE", 100, 200, 5, 5)


def test_search_query_without_constraints_matches_everything():
	query = build_search_query(PROPERTY_SCHEMA, [], FilterSpec())
	assert query.where == "TRUE"
	assert query.order_by == '"created_at" DESC, "id" DESC'


def test_search_query_rejects_unsortable_column():
	with pytest.raises(ValidationError):
		build_search_query(PROPERTY_SCHEMA, [], FilterSpec(sort=Sort("property_address")))
