"""Per-storefront request pacing.

Each host gets a request budget that refills continuously at its
requests-per-minute rate, up to a small burst allowance. A request spends
one unit; with the budget empty the caller sleeps until it refills.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class HostBudget:
    """Refilling request budget for one storefront host."""

    rpm: int
    burst: float
    available: float
    refilled_at: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def for_rpm(cls, rpm: int) -> "HostBudget":
        # Bursts of 10% of the minute budget, at least 2 requests
        burst = max(2.0, rpm / 10.0)
        return cls(rpm=rpm, burst=burst, available=burst, refilled_at=time.monotonic())

    @property
    def per_second(self) -> float:
        return self.rpm / 60.0

    def refill(self) -> None:
        now = time.monotonic()
        self.available = min(self.burst, self.available + (now - self.refilled_at) * self.per_second)
        self.refilled_at = now


class DomainRateLimiter:
    """Per-host pacing so no single storefront gets hammered.

    Hosts are paced independently; different retailers can be fetched
    concurrently. Limits come from ``DOMAIN_LIMITS_RPM`` and can be
    overridden per retailer through ``Retailer.scrape_config``.
    """

    # Requests per minute for known storefront hosts
    DOMAIN_LIMITS_RPM = {
        "www.amazon.sa": 30,
        "www.amazon.eg": 30,
        "www.amazon.ae": 30,
        "www.noon.com": 30,
        "www.jarir.com": 20,
        "www.extra.com": 20,
        "www.jumia.com.eg": 20,
        "btech.com": 20,
    }

    DEFAULT_RPM = 20

    def __init__(self) -> None:
        self._budgets: Dict[str, HostBudget] = {}

    def _budget(self, host: str) -> HostBudget:
        budget = self._budgets.get(host)
        if budget is None:
            budget = HostBudget.for_rpm(self.DOMAIN_LIMITS_RPM.get(host, self.DEFAULT_RPM))
            self._budgets[host] = budget
        return budget

    async def acquire(self, host: str, tokens: float = 1.0) -> None:
        """Wait until the host's budget covers one more request, then spend it."""
        budget = self._budget(host)
        async with budget.lock:
            while True:
                budget.refill()
                if budget.available >= tokens:
                    budget.available -= tokens
                    return
                await asyncio.sleep((tokens - budget.available) / budget.per_second)

    def set_custom_limit(self, host: str, rpm: int) -> None:
        """Override a host's limit; a repeat call with the same rate keeps the current budget."""
        current = self._budgets.get(host)
        if current is not None and current.rpm == rpm:
            return
        self._budgets[host] = HostBudget.for_rpm(rpm)

    def get_current_rate(self, host: str) -> float:
        """Current limit for a host in requests per minute."""
        return float(self._budget(host).rpm)
