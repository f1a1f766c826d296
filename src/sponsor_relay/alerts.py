#!/usr/bin/env python3
"""Balance alert throttling.

Every processed transaction bumps a per-signer counter; the relayer balance
is only sampled when that counter hits a multiple of the sampling interval,
so a burst of transactions cannot turn into a burst of alerts.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

import redis.asyncio as redis

from .utils.telegram_utility import Notifier

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility

# Get logger for this module
logger = logging.getLogger(__name__)

COUNTER_KEY_PREFIX = "sponsor-relay:tx-count"


class CounterStore(Protocol):
    """Per-key integer counter with atomic single-key increments."""

    async def increment(self, key: str) -> int: ...

    async def get(self, key: str) -> int: ...


class InMemoryCounterStore:
    """Process-local counters, used when no Redis URL is configured."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    async def increment(self, key: str) -> int:
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    async def get(self, key: str) -> int:
        return self._counts.get(key, 0)

    async def close(self) -> None:
        self._counts.clear()


class RedisCounterStore:
    """Counters kept in Redis (INCR/GET)."""

    def __init__(self, redis_url: str, timeout: float = 5) -> None:
        self.client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout
        )

    async def increment(self, key: str) -> int:
        return int(await self.client.incr(key))

    async def get(self, key: str) -> int:
        return int(await self.client.get(key) or 0)

    async def close(self) -> None:
        await self.client.aclose()


class BalanceAlertThrottler:
    """Samples the relayer balance every N attempts per signer and alerts when low."""

    def __init__(
        self,
        counters: CounterStore,
        contract_util: "ContractUtility",
        notifier: Notifier,
        relayer_address: str,
        sampling_interval: int,
        minimum_balance: Decimal
    ) -> None:
        """
        Initialize the BalanceAlertThrottler.

        Args:
            counters: Counter store holding the per-signer attempt counts
            contract_util: Ledger access for the balance lookup
            notifier: Alert channel
            relayer_address: Address whose balance is watched
            sampling_interval: Attempts between balance checks
            minimum_balance: Balance in ether at or below which an alert fires
        """
        if sampling_interval <= 0:
            raise ValueError(f"Sampling interval must be positive, got {sampling_interval}")

        self.counters = counters
        self.contract_util = contract_util
        self.notifier = notifier
        self.relayer_address = relayer_address
        self.sampling_interval = sampling_interval
        self.minimum_balance = minimum_balance

    @staticmethod
    def counter_key(signer: str) -> str:
        return f"{COUNTER_KEY_PREFIX}:{signer.lower()}"

    async def observe(self, signer: str) -> bool:
        """
        Count one processed transaction for signer and alert if due.

        Args:
            signer: Resolved sender address

        Returns:
            True if a notification was sent
        """
        count = await self.counters.increment(self.counter_key(signer))
        if count % self.sampling_interval != 0:
            return False

        balance = await self.contract_util.native_balance(self.relayer_address)
        logger.info(f"Relayer balance after {count} txs from {signer}: {balance}")

        if balance > self.minimum_balance:
            return False

        await self.notifier.send(self.relayer_address, balance)
        return True
