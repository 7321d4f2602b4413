"""Daily usage quotas.

Counters are kept per (account, category) and roll over at the next local
midnight. A denied request leaves the counter unchanged.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from access.tiers import UNLIMITED

logger = logging.getLogger(__name__)

ANONYMOUS_ACCOUNT = "anonymous"


@dataclass(frozen=True)
class UsageDecision:
    allowed: bool
    reason: str
    used: int
    limit: int
    remaining: int
    reset_at: datetime | None


@runtime_checkable
class UsageGate(Protocol):
    async def check_and_reserve(self, account_id: str | None, category: str, count: int = 1,
                                *, limit: int = UNLIMITED) -> UsageDecision: ...


def next_midnight(now: datetime) -> datetime:
    return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class _Counter:
    used: int
    reset_at: datetime


class InMemoryUsageGate:
    """Process-local usage gate."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self._counters: dict[tuple[str, str], _Counter] = {}
        self._lock = asyncio.Lock()

    async def check_and_reserve(self, account_id: str | None, category: str, count: int = 1,
                                *, limit: int = UNLIMITED) -> UsageDecision:
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        key = (account_id or ANONYMOUS_ACCOUNT, category)

        async with self._lock:
            now = self.clock()
            counter = self._counters.get(key)
            if counter is None or now >= counter.reset_at:
                counter = _Counter(used=0, reset_at=next_midnight(now))
                self._counters[key] = counter

            if limit == UNLIMITED:
                counter.used += count
                return UsageDecision(True, "", counter.used, UNLIMITED, UNLIMITED,
                                     counter.reset_at)

            if counter.used + count > limit:
                remaining = max(0, limit - counter.used)
                logger.info("Usage denied for %s/%s: %d requested, %d remaining",
                            key[0], category, count, remaining)
                return UsageDecision(
                    allowed=False,
                    reason=(f"Daily {category} limit of {limit:,} reached "
                            f"({counter.used:,} used, {count:,} requested)"),
                    used=counter.used,
                    limit=limit,
                    remaining=remaining,
                    reset_at=counter.reset_at,
                )

            counter.used += count
            return UsageDecision(True, "", counter.used, limit, limit - counter.used,
                                 counter.reset_at)

    async def usage(self, account_id: str | None, category: str) -> int:
        async with self._lock:
            counter = self._counters.get((account_id or ANONYMOUS_ACCOUNT, category))
            if counter is None or self.clock() >= counter.reset_at:
                return 0
            return counter.used
