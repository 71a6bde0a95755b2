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

"""Abstract interface for the shared state store.

Every piece of state that must be visible to all concurrent callers and all
process instances (active provider pointer, rate-limit windows, failure
counters, usage ledger) goes through this interface. Components receive a
store instance explicitly through their constructor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class StoreError(Exception):
    """Raised when the shared store cannot be reached or rejects an operation."""

    pass


class SharedStore(ABC):
    """Key/value store with expiry and atomic counters.

    Values are plain strings. Counters are stored as decimal strings so that
    ``get`` on a counter key returns its current value.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored at ``key`` or None if absent/expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store ``value`` at ``key``, optionally expiring after ``ttl_seconds``."""
        ...

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Atomically increment the counter at ``key``.

        A missing key is created with value 1.

        Returns:
            The counter value after the increment
        """
        ...

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a time-to-live on ``key``.

        Returns:
            True if the key exists and the expiry was set
        """
        ...

    @abstractmethod
    async def hash_increment(self, key: str, field: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to ``field`` of the hash stored at ``key``."""
        ...

    @abstractmethod
    async def hash_get_all(self, key: str) -> dict[str, str]:
        """Return every field of the hash stored at ``key`` (empty if absent)."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
