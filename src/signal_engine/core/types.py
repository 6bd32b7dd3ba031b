"""
Enumerations shared across context aggregation, market data and decisions.

All enums subclass ``str`` so they serialize directly to JSON and compare
equal to their raw values coming from YAML configuration.
"""

from enum import Enum


class SourceName(str, Enum):
    """Known producers of context fragments."""
    REGIME = "REGIME"
    EXPERT_SIGNAL = "EXPERT_SIGNAL"
    TREND_ALIGNMENT = "TREND_ALIGNMENT"
    STRUCTURE_CHECK = "STRUCTURE_CHECK"


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class Bias(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"

    def supports(self, direction: Direction) -> bool:
        """True if this bias does not contradict ``direction``."""
        if self is Bias.NEUTRAL:
            return True
        if self is Bias.BULLISH:
            return direction is Direction.LONG
        return direction is Direction.SHORT


class QualityTier(str, Enum):
    EXTREME = "EXTREME"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ExecutionGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class Action(str, Enum):
    EXECUTE = "EXECUTE"
    WAIT = "WAIT"
    SKIP = "SKIP"


class MetricSection(str, Enum):
    """Sections of MarketMetrics, one provider call each."""
    DERIVATIVES = "derivatives"
    LIQUIDITY = "liquidity"
    STATISTICS = "statistics"


class ProviderErrorType(str, Enum):
    TIMEOUT = "TIMEOUT"
    API_ERROR = "API_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    NETWORK_ERROR = "NETWORK_ERROR"

    @property
    def retryable(self) -> bool:
        return self in (ProviderErrorType.TIMEOUT, ProviderErrorType.NETWORK_ERROR)
