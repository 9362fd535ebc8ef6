"""Simulated network behaviour for canonical-store writes.

Injects a uniform random latency and a random failure rate in front of write
operations so the reconciliation retry path is exercised in development.
Both default to zero.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

from assessment_engine.config import SimulationConfig
from assessment_engine.errors import TransientRemoteError

logger = logging.getLogger(__name__)


class WriteSimulator:
    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or SimulationConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep

    def latency_seconds(self) -> float:
        lo, hi = self.config.min_latency_ms, self.config.max_latency_ms
        if hi <= 0:
            return 0.0
        return self._rng.uniform(lo, hi) / 1000.0

    def should_fail(self) -> bool:
        rate = self.config.write_failure_rate
        return rate > 0 and self._rng.random() < rate

    async def before_write(self, operation: str) -> None:
        """Delay, then raise TransientRemoteError when a failure is drawn."""
        delay = self.latency_seconds()
        if delay > 0:
            await self._sleep(delay)
        if self.should_fail():
            logger.warning("simulated_write_failure operation=%s", operation)
            raise TransientRemoteError(f"Simulated failure during {operation}", kind="server_error", status=500)


__all__ = ["WriteSimulator"]
