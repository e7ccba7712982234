"""Redis connection management.

Provides a stable proxy object so imports like `from meowlah.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from meowlah.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client."""

	def __init__(self, client: Optional[redis.Redis]):
		self._client: Optional[redis.Redis] = client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	@property
	def configured(self) -> bool:
		return self._client is not None

	def __getattr__(self, item):
		if self._client is None:
			raise redis.ConnectionError("redis client not configured")
		return getattr(self._client, item)


def _build_client() -> Optional[redis.Redis]:
	if not settings.redis_url:
		return None
	return redis.from_url(
		settings.redis_url,
		decode_responses=True,
		socket_timeout=2.0,
		socket_connect_timeout=2.0,
	)


redis_client: RedisProxy = RedisProxy(_build_client())


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)


async def close_client() -> None:
	if redis_client.configured:
		await redis_client.aclose()
