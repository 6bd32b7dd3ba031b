"""Periodic expiry sweep that bounds aggregator and response cache memory."""

import asyncio
from typing import Optional

from ..core.base import AlwaysOnComponent
from ..market_data.cache import TTLCache
from .aggregator import ContextAggregator


class ContextSweeper(AlwaysOnComponent):
    """
    Runs ``ContextAggregator.sweep`` every ``interval_seconds`` and, when
    given a cache, drops its expired entries on the same schedule.
    """

    def __init__(
        self,
        aggregator: ContextAggregator,
        interval_seconds: float = 60.0,
        cache: Optional[TTLCache] = None,
    ):
        super().__init__("context_sweeper")
        self.aggregator = aggregator
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.sweeps = 0

    def sweep_once(self) -> int:
        removed = self.aggregator.sweep()
        if self.cache is not None:
            cleared = self.cache.clear_expired()
            if cleared:
                self._logger.debug("Cleared %d expired cache entries", cleared)
        self.sweeps += 1
        return removed

    async def _run_loop(self) -> None:
        while self._running:
            try:
                removed = self.sweep_once()
                if removed:
                    self._logger.info("Swept %d idle symbols", removed)
            except Exception as e:
                self._logger.exception("Error in sweep loop: %s", e)
            await asyncio.sleep(self.interval_seconds)

    async def health_check(self) -> dict:
        health = await super().health_check()
        health["details"] = {
            "sweeps": self.sweeps,
            "tracked_symbols": len(self.aggregator.symbols()),
            "cache_entries": len(self.cache) if self.cache is not None else 0,
        }
        return health
