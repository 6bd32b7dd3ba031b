"""Market metrics: models, providers, cache and concurrent fetcher."""

from .models import (
    DerivativesMetrics,
    LiquidityMetrics,
    StatisticsMetrics,
    MarketMetrics,
    FALLBACK_DERIVATIVES,
    FALLBACK_LIQUIDITY,
    FALLBACK_STATISTICS,
    FALLBACKS,
    fallback_metrics,
)
from .cache import TTLCache
from .rate_limit import RateLimitTracker
from .fetcher import MarketMetricsFetcher
from .providers import MetricsProvider, StaticMetricsProvider

__all__ = [
    "DerivativesMetrics",
    "LiquidityMetrics",
    "StatisticsMetrics",
    "MarketMetrics",
    "FALLBACK_DERIVATIVES",
    "FALLBACK_LIQUIDITY",
    "FALLBACK_STATISTICS",
    "FALLBACKS",
    "fallback_metrics",
    "TTLCache",
    "RateLimitTracker",
    "MarketMetricsFetcher",
    "MetricsProvider",
    "StaticMetricsProvider",
]
