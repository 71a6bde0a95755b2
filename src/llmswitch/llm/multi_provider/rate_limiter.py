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

"""Fixed-window request rate limiting backed by the shared store.

Each provider gets one counter per wall-clock minute under the key
``rate_limit:{provider}:{yyyy-MM-dd-HH-mm}``. Counters are only ever
incremented and disappear through expiry, so every process sharing the
store sees the same window.

Two admission policies are available:
- approximate (default): read the counter, reject when it already reached
  the ceiling, otherwise increment. Concurrent callers racing between the
  read and the increment can overshoot the ceiling by the size of the race.
- strict: increment first and reject when the new value is above the
  ceiling. The ceiling is never overshot; rejected calls still occupy a slot
  in the current window.

If the store cannot be reached the limiter lets the call through.
"""

from __future__ import annotations

import functools
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from ...store import SharedStore, StoreError
from ..base import RateLimitExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "rate_limit"
WINDOW_SECONDS = 60
BUCKET_FORMAT = "%Y-%m-%d-%H-%M"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RateLimitMetrics:
    """Metrics for rate limiter monitoring.

    Attributes:
        admitted_requests: Requests allowed through
        rejected_requests: Requests rejected due to the ceiling
        fail_open_requests: Requests allowed because the store was unreachable
    """

    admitted_requests: int = 0
    rejected_requests: int = 0
    fail_open_requests: int = 0

    def reset(self) -> None:
        """Reset all metrics."""
        self.admitted_requests = 0
        self.rejected_requests = 0
        self.fail_open_requests = 0


def bucket_key(provider: str, moment: datetime) -> str:
    """Shared-store key of the minute bucket containing ``moment``."""
    return f"{KEY_PREFIX}:{provider}:{moment.strftime(BUCKET_FORMAT)}"


def seconds_until_next_minute(moment: datetime) -> int:
    """Whole seconds until the next minute boundary, in the range 1..60."""
    next_minute = moment.replace(second=0, microsecond=0) + timedelta(minutes=1)
    remaining = (next_minute - moment).total_seconds()
    return max(1, min(WINDOW_SECONDS, math.ceil(remaining)))


class FixedWindowRateLimiter:
    """Per-provider requests-per-minute limiter.

    Example:
        >>> limiter = FixedWindowRateLimiter(store)
        >>> await limiter.acquire("gemini", requests_per_minute=15)
        >>>
        >>> @limiter.limit("gemini", 15)
        ... async def call_gemini(prompt: str) -> str:
        ...     ...
    """

    def __init__(
        self,
        store: SharedStore,
        strict: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            store: Shared store holding the window counters
            strict: Use increment-then-compare admission
            clock: Wall clock (default: current UTC time)
        """
        self._store = store
        self.strict = strict
        self._clock = clock or _utc_now
        self._metrics = RateLimitMetrics()

    @property
    def metrics(self) -> RateLimitMetrics:
        """Get rate limiter metrics."""
        return self._metrics

    async def acquire(self, provider: str, requests_per_minute: int) -> None:
        """Admit one request for ``provider`` or raise.

        Args:
            provider: Provider name
            requests_per_minute: Ceiling for the current minute

        Raises:
            RateLimitExceeded: If the ceiling for the current minute is reached
        """
        now = self._clock()
        key = bucket_key(provider, now)

        try:
            if self.strict:
                count = await self._admit_strict(key, requests_per_minute)
            else:
                count = await self._admit_approximate(key, requests_per_minute)
        except StoreError as e:
            self._metrics.fail_open_requests += 1
            logger.warning(f"Rate limit check for '{provider}' skipped, store unavailable: {e}")
            return

        if count is None:
            self._metrics.rejected_requests += 1
            retry_after = seconds_until_next_minute(now)
            logger.warning(
                f"Rate limit exceeded for provider '{provider}' "
                f"(limit: {requests_per_minute}/min, retry in {retry_after}s)"
            )
            raise RateLimitExceeded(provider, requests_per_minute, retry_after)

        self._metrics.admitted_requests += 1
        logger.debug(f"Rate limit check passed for '{provider}' ({count}/{requests_per_minute})")

    async def _admit_approximate(self, key: str, ceiling: int) -> int | None:
        current = await self._store.get(key)
        current_count = int(current) if current is not None else 0
        if current_count >= ceiling:
            return None
        count = await self._store.increment(key)
        await self._store.expire(key, WINDOW_SECONDS)
        return count

    async def _admit_strict(self, key: str, ceiling: int) -> int | None:
        count = await self._store.increment(key)
        await self._store.expire(key, WINDOW_SECONDS)
        if count > ceiling:
            return None
        return count

    async def current_count(self, provider: str) -> int:
        """Requests counted for ``provider`` in the current minute (0 if unknown)."""
        try:
            value = await self._store.get(bucket_key(provider, self._clock()))
        except StoreError:
            return 0
        return int(value) if value is not None else 0

    def limit(
        self,
        provider: str,
        requests_per_minute: int,
    ) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
        """Decorator applying admission control before an async callable.

        Args:
            provider: Provider name the calls are counted against
            requests_per_minute: Ceiling per minute

        Returns:
            Decorator for async functions or bound methods
        """
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be at least 1")

        def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
            @functools.wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> T:
                await self.acquire(provider, requests_per_minute)
                return await func(*args, **kwargs)

            return wrapper

        return decorator

    def get_status(self) -> dict[str, Any]:
        """Get rate limiter status for monitoring."""
        return {
            "mode": "strict" if self.strict else "approximate",
            "window_seconds": WINDOW_SECONDS,
            "metrics": {
                "admitted_requests": self._metrics.admitted_requests,
                "rejected_requests": self._metrics.rejected_requests,
                "fail_open_requests": self._metrics.fail_open_requests,
            },
        }

    def reset(self) -> None:
        """Reset in-process metrics. Shared counters expire on their own."""
        self._metrics.reset()
