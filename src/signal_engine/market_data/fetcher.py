"""
Market Metrics Fetcher - concurrent provider calls under a shared budget.

One task per metrics section runs in parallel. Each call is bounded by
``min(provider.timeout_seconds, budget)`` and the whole fetch by ``budget``;
anything still running at the budget boundary is cancelled. A retryable
failure (timeout, network error) is retried while budget remains. Calls
refused by the rate limiter fail as RATE_LIMITED without reaching the
provider. A failed, timed-out or cancelled section falls back to its
documented values and adds a provider-tagged entry to ``errors``.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from ..core.errors import ProviderFailure
from ..core.types import MetricSection, ProviderErrorType
from ..utils.logger import get_decision_logger
from ..utils.metrics import MetricsCollector
from .cache import TTLCache
from .models import FALLBACKS, SECTION_TYPES, MarketMetrics
from .providers.base import MetricsProvider
from .rate_limit import RateLimitTracker

logger = logging.getLogger(__name__)


class MarketMetricsFetcher:
    """
    Fetches MarketMetrics for a symbol from one provider per section.

    Example:
        fetcher = MarketMetricsFetcher({
            MetricSection.DERIVATIVES: tradier,
            MetricSection.LIQUIDITY: alpaca,
            MetricSection.STATISTICS: twelvedata,
        }, budget_seconds=1.0)
        metrics = await fetcher.fetch("SPY")
    """

    def __init__(
        self,
        providers: Dict[MetricSection, MetricsProvider],
        budget_seconds: float = 1.0,
        cache: Optional[TTLCache] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
        rate_limiter: Optional[RateLimitTracker] = None,
        max_retries: int = 1,
        retry_delay_seconds: float = 0.05,
    ):
        self.providers = dict(providers)
        self.budget_seconds = budget_seconds
        self.cache = cache if cache is not None else TTLCache()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimitTracker()
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.metrics = metrics
        self._clock = clock
        self.audit = get_decision_logger(__name__)

        logger.info(
            "MarketMetricsFetcher initialized: "
            + ", ".join(f"{s.value}={p.name}" for s, p in self.providers.items())
            + f" (budget={budget_seconds}s)"
        )

    async def fetch(self, symbol: str, budget: Optional[float] = None) -> MarketMetrics:
        """
        Fetch all sections for ``symbol`` within ``budget`` seconds.

        Never raises for provider problems; every section is populated with
        live or fallback values.
        """
        budget = self.budget_seconds if budget is None else budget
        started = time.perf_counter()
        deadline = asyncio.get_running_loop().time() + budget

        tasks: Dict[MetricSection, asyncio.Task] = {}
        for section in MetricSection:
            provider = self.providers.get(section)
            if provider is not None:
                tasks[section] = asyncio.create_task(
                    self._fetch_section(provider, section, symbol, deadline),
                    name=f"metrics_{provider.name}_{section.value}_{symbol}",
                )

        if tasks:
            _, pending = await asyncio.wait(tasks.values(), timeout=budget)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        values = {}
        errors: List[str] = []
        for section in MetricSection:
            task = tasks.get(section)
            if task is None:
                errors.append(f"{section.value}: no provider configured")
                continue

            provider = self.providers[section]
            if task.cancelled():
                error = f"{provider.name}: TIMEOUT {section.value} cancelled at {budget:.2f}s budget"
            elif task.exception() is not None:
                error = self._describe(provider, task.exception())
            else:
                values[section.value] = task.result()
                continue

            errors.append(error)
            self.audit.provider_error(
                provider.name, f"{section.value} for {symbol} using fallback values: {error}"
            )
            if self.metrics:
                self.metrics.increment("provider.failures", tags={"provider": provider.name})

        fetch_time_ms = (time.perf_counter() - started) * 1000
        result = MarketMetrics(
            derivatives=values.get("derivatives", FALLBACKS[MetricSection.DERIVATIVES]),
            liquidity=values.get("liquidity", FALLBACKS[MetricSection.LIQUIDITY]),
            statistics=values.get("statistics", FALLBACKS[MetricSection.STATISTICS]),
            completeness=round(len(values) / len(MetricSection), 4),
            errors=tuple(errors),
            fetch_time_ms=round(fetch_time_ms, 2),
            timestamp=self._clock(),
            providers={s.value: p.name for s, p in self.providers.items()},
        )

        if self.metrics:
            self.metrics.timer("market.fetch_time", fetch_time_ms / 1000)
            self.metrics.gauge("market.completeness", result.completeness)

        logger.debug(
            f"Market metrics for {symbol}: completeness={result.completeness:.0%} "
            f"in {fetch_time_ms:.0f}ms"
        )
        return result

    async def _fetch_section(
        self,
        provider: MetricsProvider,
        section: MetricSection,
        symbol: str,
        deadline: float,
    ):
        cache_key = (provider.name, section, symbol)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            try:
                value = await self._call(provider, section, symbol, deadline - loop.time())
                break
            except ProviderFailure as e:
                remaining = deadline - loop.time()
                if not e.retryable or attempt >= self.max_retries or remaining <= self.retry_delay_seconds:
                    raise
                attempt += 1
                logger.debug(f"Retrying {provider.name} {section.value} for {symbol} ({attempt}/{self.max_retries}): {e}")
                if self.metrics:
                    self.metrics.increment("provider.retries", tags={"provider": provider.name})
                await asyncio.sleep(self.retry_delay_seconds)

        self.cache.set(cache_key, value, provider.cache_ttl_seconds)
        return value

    async def _call(self, provider: MetricsProvider, section: MetricSection, symbol: str, remaining: float):
        """One provider call, bounded by the provider timeout and the remaining budget."""
        if not self.rate_limiter.try_acquire(provider.name):
            raise ProviderFailure(
                provider.name, ProviderErrorType.RATE_LIMITED, f"{section.value} call quota exhausted"
            )

        timeout = max(0.0, min(provider.timeout_seconds, remaining))
        try:
            value = await asyncio.wait_for(provider.fetch_section(section, symbol), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderFailure(
                provider.name, ProviderErrorType.TIMEOUT, f"{section.value} timed out after {timeout:.2f}s"
            ) from e

        expected = SECTION_TYPES[section]
        if not isinstance(value, expected):
            raise ProviderFailure(
                provider.name,
                ProviderErrorType.INVALID_RESPONSE,
                f"{section.value} returned {type(value).__name__}, expected {expected.__name__}",
            )

        return value

    @staticmethod
    def _describe(provider: MetricsProvider, error: BaseException) -> str:
        if isinstance(error, ProviderFailure):
            return str(error)
        return f"{provider.name}: {ProviderErrorType.API_ERROR.value} {type(error).__name__}: {error}"

    async def close(self) -> None:
        """Close every distinct provider."""
        closed = set()
        for provider in self.providers.values():
            if id(provider) not in closed:
                closed.add(id(provider))
                await provider.close()
