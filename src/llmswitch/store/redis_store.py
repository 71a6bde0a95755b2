# Copyright 2025 KTTC AI (https://github.com/kttc-ai)
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Redis-backed shared store.

Uses the asyncio client shipped with redis-py. All Redis failures are
reported as StoreError.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .base import SharedStore, StoreError

logger = logging.getLogger(__name__)


class RedisStore(SharedStore):
    """Shared store backed by a Redis server.

    Example:
        >>> store = RedisStore.from_url("redis://localhost:6379/0")
        >>> await store.increment("rate_limit:gemini:2025-01-01-12-00")
        1
    """

    def __init__(self, client: aioredis.Redis) -> None:
        """Initialize with an existing asyncio Redis client.

        The client must be created with ``decode_responses=True``.
        """
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        """Create a store from a Redis URL."""
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except RedisError as e:
            raise StoreError(f"Redis GET {key} failed: {e}") from e
        return None if value is None else str(value)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise StoreError(f"Redis SET {key} failed: {e}") from e

    async def increment(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except RedisError as e:
            raise StoreError(f"Redis INCR {key} failed: {e}") from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, ttl_seconds))
        except RedisError as e:
            raise StoreError(f"Redis EXPIRE {key} failed: {e}") from e

    async def hash_increment(self, key: str, field: str, amount: int = 1) -> int:
        try:
            return int(await self._client.hincrby(key, field, amount))
        except RedisError as e:
            raise StoreError(f"Redis HINCRBY {key} {field} failed: {e}") from e

    async def hash_get_all(self, key: str) -> dict[str, str]:
        try:
            raw = await self._client.hgetall(key)
        except RedisError as e:
            raise StoreError(f"Redis HGETALL {key} failed: {e}") from e
        return {str(name): str(value) for name, value in raw.items()}

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StoreError(f"Redis DEL {key} failed: {e}") from e

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis connection: {e}")
