"""
Market metrics model and documented fallback values.

Every section is always populated. When its provider fails, the section
holds the fallback values below with ``is_fallback=True``; the liquidity
fallback spread is deliberately wider than the default gate threshold so a
blind decision cannot pass the market gate.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import Dict, Tuple

from ..core.types import MetricSection


@dataclass(frozen=True)
class DerivativesMetrics:
    put_call_ratio: float
    iv_percentile: float
    gamma_bias: str  # POSITIVE / NEGATIVE / NEUTRAL
    option_volume: float
    max_pain: float
    is_fallback: bool = False


@dataclass(frozen=True)
class LiquidityMetrics:
    spread_bps: float
    depth_score: float
    trade_velocity: str  # FAST / NORMAL / SLOW
    bid_size: float
    ask_size: float
    is_fallback: bool = False


@dataclass(frozen=True)
class StatisticsMetrics:
    atr14: float
    rv20: float
    trend_slope: float
    rsi: float
    volume: float
    volume_ratio: float
    is_fallback: bool = False


FALLBACK_DERIVATIVES = DerivativesMetrics(
    put_call_ratio=1.0,
    iv_percentile=50.0,
    gamma_bias="NEUTRAL",
    option_volume=0.0,
    max_pain=0.0,
    is_fallback=True,
)

FALLBACK_LIQUIDITY = LiquidityMetrics(
    spread_bps=15.0,
    depth_score=50.0,
    trade_velocity="NORMAL",
    bid_size=100.0,
    ask_size=100.0,
    is_fallback=True,
)

FALLBACK_STATISTICS = StatisticsMetrics(
    atr14=2.0,
    rv20=20.0,
    trend_slope=0.0,
    rsi=50.0,
    volume=0.0,
    volume_ratio=1.0,
    is_fallback=True,
)

FALLBACKS = {
    MetricSection.DERIVATIVES: FALLBACK_DERIVATIVES,
    MetricSection.LIQUIDITY: FALLBACK_LIQUIDITY,
    MetricSection.STATISTICS: FALLBACK_STATISTICS,
}

SECTION_TYPES = {
    MetricSection.DERIVATIVES: DerivativesMetrics,
    MetricSection.LIQUIDITY: LiquidityMetrics,
    MetricSection.STATISTICS: StatisticsMetrics,
}


@dataclass(frozen=True)
class MarketMetrics:
    """Market conditions for one decision attempt."""
    derivatives: DerivativesMetrics = FALLBACK_DERIVATIVES
    liquidity: LiquidityMetrics = FALLBACK_LIQUIDITY
    statistics: StatisticsMetrics = FALLBACK_STATISTICS
    completeness: float = 0.0
    errors: Tuple[str, ...] = ()
    fetch_time_ms: float = 0.0
    timestamp: float = 0.0
    providers: Dict[str, str] = field(default_factory=dict)

    @property
    def fallback_sections(self) -> Tuple[MetricSection, ...]:
        return tuple(
            section for section in MetricSection
            if getattr(self, section.value).is_fallback
        )

    def to_dict(self) -> dict:
        return asdict(self)


def fallback_metrics(errors: Tuple[str, ...] = (), timestamp: float = 0.0) -> MarketMetrics:
    """Metrics with every section on fallback values."""
    return MarketMetrics(completeness=0.0, errors=tuple(errors), timestamp=timestamp)


def as_live(section):
    """Copy of a section marked as live (not fallback) data."""
    return replace(section, is_fallback=False)
