"""Fixed-value provider for offline replay and tests."""

from typing import Optional

from ..models import (
    DerivativesMetrics,
    LiquidityMetrics,
    StatisticsMetrics,
    as_live,
    FALLBACK_DERIVATIVES,
    FALLBACK_STATISTICS,
)
from .base import MetricsProvider


DEFAULT_LIQUIDITY = LiquidityMetrics(
    spread_bps=4.0,
    depth_score=80.0,
    trade_velocity="NORMAL",
    bid_size=500.0,
    ask_size=500.0,
)


class StaticMetricsProvider(MetricsProvider):
    """Serves the same metrics for every symbol; sections left unset use neutral values."""

    name = "static"

    def __init__(
        self,
        derivatives: Optional[DerivativesMetrics] = None,
        liquidity: Optional[LiquidityMetrics] = None,
        statistics: Optional[StatisticsMetrics] = None,
        timeout_seconds: float = 1.0,
    ):
        super().__init__(timeout_seconds=timeout_seconds)
        self.derivatives = derivatives or as_live(FALLBACK_DERIVATIVES)
        self.liquidity = liquidity or DEFAULT_LIQUIDITY
        self.statistics = statistics or as_live(FALLBACK_STATISTICS)

    async def fetch_options(self, symbol: str) -> DerivativesMetrics:
        return self.derivatives

    async def fetch_liquidity(self, symbol: str) -> LiquidityMetrics:
        return self.liquidity

    async def fetch_stats(self, symbol: str) -> StatisticsMetrics:
        return self.statistics
