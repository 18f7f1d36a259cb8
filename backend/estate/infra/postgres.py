"""Process-wide asyncpg pool shared by the repository and health checks."""

from __future__ import annotations

import asyncio
from typing import Optional

import asyncpg

from estate.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None
_pool_lock = asyncio.Lock()


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	async with _pool_lock:
		if _pool is None:
			_pool = await asyncpg.create_pool(
				dsn=settings.postgres_url,
				min_size=settings.postgres_min_pool_size,
				max_size=settings.postgres_max_pool_size,
				ssl="require" if settings.postgres_ssl else "disable",
				command_timeout=settings.postgres_command_timeout_seconds,
				server_settings={"application_name": settings.service_name},
			)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	"""Install an externally managed pool (integration tests) or clear it."""
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
