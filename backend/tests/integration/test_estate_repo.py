from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Iterator
from uuid import UUID, uuid4

import asyncpg
import pytest
import pytest_asyncio

from estate.engagement.domain import models
from estate.engagement.domain import repo as repo_module
from estate.engagement.domain.counters import PropertyCounter
from estate.engagement.domain.engagement import EngagementCoordinator
from estate.engagement.domain.exceptions import ConflictError, NoDataError, NotFoundError
from estate.engagement.domain.filters import Between, Equals, FilterSpec
from estate.engagement.domain.paginator import Paginator
from estate.engagement.domain.query import PROPERTY_SCHEMA
from estate.engagement.jobs.counter_reconciler import CounterReconciliationJob
from estate.infra import postgres

pytestmark = pytest.mark.asyncio

BACKEND_ROOT = Path(__file__).resolve().parents[2]
MIGRATIONS_DIR = BACKEND_ROOT / "infra" / "migrations"


@pytest.fixture(scope="module")
def postgres_container() -> Iterator["PostgresContainer"]:
    testcontainers = pytest.importorskip(
        "testcontainers.postgres",
        reason="testcontainers.postgres is required for integration tests",
    )
    PostgresContainer = testcontainers.PostgresContainer
    container = PostgresContainer("postgres:16-alpine")
    try:
        container.start()
    except Exception as exc:  # pragma: no cover - environment without docker
        pytest.skip(f"unable to start postgres container: {exc}")
    try:
        yield container
    finally:
        container.stop()


async def _run_migrations(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("DROP SCHEMA IF EXISTS public CASCADE")
        await conn.execute("CREATE SCHEMA public")
        await conn.execute("GRANT ALL ON SCHEMA public TO PUBLIC")
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            await conn.execute(path.read_text(encoding="utf-8"))


@pytest_asyncio.fixture(scope="function")
async def postgres_pool(postgres_container) -> AsyncIterator[asyncpg.Pool]:
    url = postgres_container.get_connection_url().replace("postgresql+psycopg2", "postgresql")
    pool = await asyncpg.create_pool(dsn=url, min_size=1, max_size=8)
    await _run_migrations(pool)
    postgres.set_pool(pool)
    try:
        yield pool
    finally:
        postgres.set_pool(None)
        await pool.close()


async def _member(pool: asyncpg.Pool, nick: str, member_type: str = "AGENT") -> UUID:
    member_id = uuid4()
    await pool.execute(
        "INSERT INTO member (id, member_type, member_nick) VALUES ($1, $2, $3)",
        member_id,
        member_type,
        nick,
    )
    return member_id


async def _property(pool: asyncpg.Pool, owner: UUID, *, price: float = 100.0, title: str = "Flat") -> UUID:
    property_id = uuid4()
    await pool.execute(
        """
        INSERT INTO property (
            id, member_id, property_type, property_location, property_address,
            property_title, property_price, property_square, property_beds, property_rooms
        ) VALUES ($1, $2, 'APARTMENT', 'SEOUL', 'addr', $3, $4, 40, 1, 2)
        """,
        property_id,
        owner,
        title,
        price,
    )
    return property_id


async def _likes(pool: asyncpg.Pool, property_id: UUID) -> tuple[int, int]:
    counter = await pool.fetchval("SELECT property_likes FROM property WHERE id = $1", property_id)
    ledger = await pool.fetchval(
        "SELECT COUNT(*) FROM engagement WHERE kind = 'like' AND target_group = 'PROPERTY' AND target_id = $1",
        property_id,
    )
    return counter, ledger


@pytest.mark.integration
async def test_concurrent_likes_keep_counter_equal_to_ledger(postgres_pool):
    owner = await _member(postgres_pool, "owner")
    listing = await _property(postgres_pool, owner)
    actors = [await _member(postgres_pool, f"fan-{idx}", "USER") for idx in range(6)]
    coordinator = EngagementCoordinator(repo_module.EstateRepository(), timeout_seconds=10)

    async def _like(actor: UUID) -> int:
        outcome = await coordinator.like(actor, listing, models.EngagementGroup.PROPERTY, PropertyCounter.LIKES)
        return outcome.modifier

    modifiers = await asyncio.gather(*(_like(actor) for actor in actors))
    assert modifiers == [1] * len(actors)
    assert await _likes(postgres_pool, listing) == (6, 6)

    # The same actor racing itself ends either liked or unliked, never half-applied.
    results = await asyncio.gather(_like(actors[0]), _like(actors[0]), return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            assert isinstance(result, ConflictError)
    counter, ledger = await _likes(postgres_pool, listing)
    assert counter == ledger


@pytest.mark.integration
async def test_like_on_missing_target_rolls_back_ledger(postgres_pool):
    actor = await _member(postgres_pool, "ghost-fan", "USER")
    coordinator = EngagementCoordinator(repo_module.EstateRepository(), timeout_seconds=10)
    missing = uuid4()

    with pytest.raises(NotFoundError):
        await coordinator.like(actor, missing, models.EngagementGroup.PROPERTY, PropertyCounter.LIKES)

    rows = await postgres_pool.fetchval("SELECT COUNT(*) FROM engagement WHERE target_id = $1", missing)
    assert rows == 0


@pytest.mark.integration
async def test_views_are_counted_once_per_actor(postgres_pool):
    owner = await _member(postgres_pool, "viewed-owner")
    listing = await _property(postgres_pool, owner)
    viewer = await _member(postgres_pool, "viewer", "USER")
    coordinator = EngagementCoordinator(repo_module.EstateRepository(), timeout_seconds=10)

    first = await coordinator.view(viewer, listing, models.EngagementGroup.PROPERTY, PropertyCounter.VIEWS)
    again = await asyncio.gather(
        *(
            coordinator.view(viewer, listing, models.EngagementGroup.PROPERTY, PropertyCounter.VIEWS)
            for _ in range(3)
        )
    )
    anonymous = await coordinator.view(None, listing, models.EngagementGroup.PROPERTY, PropertyCounter.VIEWS)

    assert first.is_new is True
    assert [outcome.is_new for outcome in again] == [False, False, False]
    assert anonymous.is_new is False
    views = await postgres_pool.fetchval("SELECT property_views FROM property WHERE id = $1", listing)
    assert views == 1


@pytest.mark.integration
async def test_search_pages_cover_match_set_with_stable_total(postgres_pool):
    owner = await _member(postgres_pool, "lister")
    for idx in range(7):
        await _property(postgres_pool, owner, price=100 + idx * 10, title=f"Unit {idx}")
    await _property(postgres_pool, owner, price=5_000, title="Penthouse")
    paginator = Paginator(repo_module.EstateRepository(), empty_is_error=True)
    base = [Equals("property_status", models.PropertyStatus.ACTIVE)]

    seen: list[UUID] = []
    for page in (1, 2, 3):
        spec = FilterSpec.build(
            [Between("property_price", 100, 160)],
            sort="property_price",
            direction="ASC",
            page=page,
            limit=3,
        )
        result = await paginator.search(base, spec, schema=PROPERTY_SCHEMA, model=models.Property)
        assert result.total_count == 7
        seen.extend(item.id for item in result.items)

    assert len(seen) == len(set(seen)) == 7

    with pytest.raises(NoDataError):
        await paginator.search(
            base,
            FilterSpec.build([Between("property_price", 9_000, 10_000)]),
            schema=PROPERTY_SCHEMA,
            model=models.Property,
        )


@pytest.mark.integration
async def test_reconciler_repairs_drifted_counters(postgres_pool):
    owner = await _member(postgres_pool, "drift-owner")
    listing = await _property(postgres_pool, owner)
    fan = await _member(postgres_pool, "drift-fan", "USER")
    coordinator = EngagementCoordinator(repo_module.EstateRepository(), timeout_seconds=10)
    await coordinator.like(fan, listing, models.EngagementGroup.PROPERTY, PropertyCounter.LIKES)
    await postgres_pool.execute("UPDATE property SET property_likes = 9 WHERE id = $1", listing)

    job = CounterReconciliationJob()
    dry_run = await job.run_once(apply=False)
    drifted = {(report.entity, report.field): report.drifted for report in dry_run}
    assert drifted[("property", "property_likes")] == 1
    assert await _likes(postgres_pool, listing) == (9, 1)

    await job.run_once(apply=True)
    assert await _likes(postgres_pool, listing) == (1, 1)
    assert all(report.drifted == 0 for report in await job.run_once(apply=False))
