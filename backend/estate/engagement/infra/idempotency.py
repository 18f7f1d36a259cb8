"""Idempotency helpers backed by Redis.

Engagement toggles are not naturally idempotent: replaying a like request
would unlike. A client-supplied key pins the first response for the TTL.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Awaitable, Callable, TypeVar

from estate.engagement.domain.exceptions import IdempotencyConflict, IdempotencyInProgress, ValidationError
from estate.infra.redis import redis_client
from estate.obs import metrics as obs_metrics
from estate.settings import settings

T = TypeVar("T")
_KEY_PREFIX = "estate:idemp:"
_MAX_KEY_LENGTH = 128
_POLL_SECONDS = 0.05


@dataclass(slots=True)
class StoredResponse:
	"""Cached response plus the hash of the request that produced it.

	A ``pending`` record reserves the key while the first request runs.
	"""

	hash: str
	payload: Any
	pending: bool = False

	def to_json(self) -> str:
		return json.dumps({"hash": self.hash, "payload": self.payload, "pending": self.pending})

	@staticmethod
	def from_json(raw: str | bytes) -> "StoredResponse":
		data = json.loads(raw)
		return StoredResponse(
			hash=data.get("hash", ""), payload=data.get("payload"), pending=bool(data.get("pending"))
		)


def compute_hash(*, scope: str, body: Any | None = None) -> str:
	"""Stable hash of the operation scope (route + target) and request body."""
	materialised = json.dumps({"scope": scope, "body": body}, sort_keys=True, separators=(",", ":"), default=str)
	return sha256(materialised.encode()).hexdigest()


def normalise_key(key: str | None) -> str | None:
	if key is None:
		return None
	key = key.strip()
	if not key:
		return None
	if len(key) > _MAX_KEY_LENGTH:
		raise ValidationError("idempotency_key_too_long")
	return key


async def resolve(
	*,
	key: str | None,
	actor_id: str,
	body_hash: str,
	producer: Callable[[], Awaitable[T]],
	serializer: Callable[[T], Any],
	deserializer: Callable[[Any], T],
) -> T:
	"""Run ``producer`` once per (actor, key).

	The key is reserved with a pending marker before the producer runs, so a
	concurrent request with the same key waits for the stored payload instead
	of running the producer a second time. A repeated key with a different
	hash raises :class:`IdempotencyConflict`; a reservation that outlives the
	wait raises :class:`IdempotencyInProgress`. Without a key the producer
	simply runs.
	"""
	key = normalise_key(key)
	if not key:
		return await producer()

	redis_key = f"{_KEY_PREFIX}{actor_id}:{key}"
	ttl = settings.idempotency_ttl_seconds
	marker = StoredResponse(hash=body_hash, payload=None, pending=True).to_json()
	deadline = time.monotonic() + settings.engagement_op_timeout_seconds
	while not await redis_client.set(redis_key, marker, ex=ttl, nx=True):
		cached = await redis_client.get(redis_key)
		if cached:
			record = StoredResponse.from_json(cached)
			if record.hash != body_hash or not record.pending:
				return _replay(record, body_hash, deserializer)
		if time.monotonic() >= deadline:
			obs_metrics.inc_idempotency("in_progress")
			raise IdempotencyInProgress()
		await asyncio.sleep(_POLL_SECONDS)

	try:
		result = await producer()
	except BaseException:
		# Nothing was committed; release the key so a retry can run.
		await redis_client.delete(redis_key)
		raise
	record = StoredResponse(hash=body_hash, payload=serializer(result))
	await redis_client.set(redis_key, record.to_json(), ex=ttl)
	obs_metrics.inc_idempotency("stored")
	return result


def _replay(record: StoredResponse, body_hash: str, deserializer: Callable[[Any], T]) -> T:
	if record.hash != body_hash:
		obs_metrics.inc_idempotency("conflict")
		raise IdempotencyConflict()
	obs_metrics.inc_idempotency("replayed")
	return deserializer(record.payload)
