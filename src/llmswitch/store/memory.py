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

"""Process-local implementation of the shared store.

Only coordinates callers inside one event loop. Useful for tests and for
single-process development setups without Redis.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .base import SharedStore, StoreError


@dataclass
class _Entry:
    value: Any
    expires_at: float | None = None


class InMemoryStore(SharedStore):
    """Dictionary-backed store with per-key expiry.

    Example:
        >>> store = InMemoryStore()
        >>> await store.set("llm:active_provider", "ollama", ttl_seconds=60)
        >>> await store.get("llm:active_provider")
        'ollama'
    """

    def __init__(self, time_source: Callable[[], float] | None = None) -> None:
        """Initialize an empty store.

        Args:
            time_source: Monotonic clock in seconds (default: time.monotonic)
        """
        self._time = time_source or time.monotonic
        self._data: dict[str, _Entry] = {}

    def _live(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._time():
            del self._data[key]
            return None
        return entry

    def _deadline(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._time() + ttl_seconds

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        if entry is None:
            return None
        if isinstance(entry.value, dict):
            raise StoreError(f"Key '{key}' holds a hash, not a string")
        return str(entry.value)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._data[key] = _Entry(value=str(value), expires_at=self._deadline(ttl_seconds))

    async def increment(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            self._data[key] = _Entry(value="1")
            return 1
        try:
            new_value = int(entry.value) + 1
        except (TypeError, ValueError) as e:
            raise StoreError(f"Key '{key}' does not hold an integer") from e
        entry.value = str(new_value)
        return new_value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        entry.expires_at = self._deadline(ttl_seconds)
        return True

    async def hash_increment(self, key: str, field: str, amount: int = 1) -> int:
        entry = self._live(key)
        if entry is None:
            entry = _Entry(value={})
            self._data[key] = entry
        if not isinstance(entry.value, dict):
            raise StoreError(f"Key '{key}' does not hold a hash")
        new_value = int(entry.value.get(field, 0)) + amount
        entry.value[field] = new_value
        return new_value

    async def hash_get_all(self, key: str) -> dict[str, str]:
        entry = self._live(key)
        if entry is None:
            return {}
        if not isinstance(entry.value, dict):
            raise StoreError(f"Key '{key}' does not hold a hash")
        return {name: str(value) for name, value in entry.value.items()}

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def ttl(self, key: str) -> float | None:
        """Remaining lifetime of ``key`` in seconds (None if no expiry or absent)."""
        entry = self._live(key)
        if entry is None or entry.expires_at is None:
            return None
        return entry.expires_at - self._time()
