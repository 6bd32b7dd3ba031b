"""
Metrics Provider - abstract interface for market data vendors.

Each vendor implements whichever of the three section calls it serves.
Implementations raise ProviderFailure for vendor errors; the fetcher turns
any failure into fallback values.
"""

from abc import ABC
from typing import Optional

from ...core.errors import ProviderFailure
from ...core.types import MetricSection, ProviderErrorType
from ..models import DerivativesMetrics, LiquidityMetrics, StatisticsMetrics


class MetricsProvider(ABC):
    """
    Base class for market data providers.

    Subclasses override the ``fetch_*`` methods for the sections they serve.
    """

    name = "provider"

    def __init__(self, timeout_seconds: float = 1.0, cache_ttl_seconds: float = 0.0):
        self.timeout_seconds = timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds

    async def fetch_options(self, symbol: str) -> DerivativesMetrics:
        raise self._unsupported(MetricSection.DERIVATIVES)

    async def fetch_liquidity(self, symbol: str) -> LiquidityMetrics:
        raise self._unsupported(MetricSection.LIQUIDITY)

    async def fetch_stats(self, symbol: str) -> StatisticsMetrics:
        raise self._unsupported(MetricSection.STATISTICS)

    async def fetch_section(self, section: MetricSection, symbol: str):
        if section is MetricSection.DERIVATIVES:
            return await self.fetch_options(symbol)
        if section is MetricSection.LIQUIDITY:
            return await self.fetch_liquidity(symbol)
        return await self.fetch_stats(symbol)

    async def close(self) -> None:
        """Release network resources (no-op by default)."""
        return None

    def _unsupported(self, section: MetricSection) -> ProviderFailure:
        return ProviderFailure(
            self.name,
            ProviderErrorType.API_ERROR,
            f"{section.value} not supported by this provider",
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, timeout={self.timeout_seconds}s)"


def require_number(provider: str, value, field: str, default: Optional[float] = None) -> float:
    """Coerce a vendor field to float or raise INVALID_RESPONSE."""
    if value is None:
        if default is not None:
            return default
        raise ProviderFailure(provider, ProviderErrorType.INVALID_RESPONSE, f"missing field '{field}'")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ProviderFailure(
            provider, ProviderErrorType.INVALID_RESPONSE, f"non-numeric field '{field}': {value!r}"
        )
