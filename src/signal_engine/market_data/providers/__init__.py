"""Market data providers."""

from .base import MetricsProvider
from .static import StaticMetricsProvider
from .http import (
    HTTPMetricsProvider,
    TradierProvider,
    TwelveDataProvider,
    AlpacaProvider,
    PROVIDER_CLASSES,
)

__all__ = [
    "MetricsProvider",
    "StaticMetricsProvider",
    "HTTPMetricsProvider",
    "TradierProvider",
    "TwelveDataProvider",
    "AlpacaProvider",
    "PROVIDER_CLASSES",
]
