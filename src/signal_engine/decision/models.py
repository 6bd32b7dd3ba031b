"""
Decision models.

GateResult, ConfidenceBreakdown, SizingBreakdown and the immutable
DecisionPacket handed to sinks.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Tuple

from ..context.models import AggregatedContext
from ..core.types import Action, Direction
from ..market_data.models import MarketMetrics


@dataclass(frozen=True)
class GateResult:
    """
    Outcome of one gate.

    ``failures`` lists every violated condition; ``reason`` joins them (or
    describes the pass).
    """
    name: str
    passed: bool
    score: float
    reason: str
    failures: Tuple[str, ...] = ()

    def __repr__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"GateResult({self.name}: {status} score={self.score:.1f} reason='{self.reason}')"


@dataclass(frozen=True)
class GateResults:
    regime: GateResult
    structural: GateResult
    market: GateResult

    @property
    def all_passed(self) -> bool:
        return self.regime.passed and self.structural.passed and self.market.passed

    def __iter__(self):
        return iter((self.regime, self.structural, self.market))


@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Per-contribution raw (0-100) and weighted values."""
    raw: Dict[str, float]
    weighted: Dict[str, float]
    penalty: float
    total: float


@dataclass(frozen=True)
class SizingBreakdown:
    """Every factor that went into the size multiplier."""
    factors: Dict[str, float]
    phase_boost: float
    raw: float
    final: float
    clamped: bool


@dataclass(frozen=True)
class DecisionPacket:
    """Audit-complete result of one decision evaluation."""
    action: Action
    direction: Optional[Direction]
    size_multiplier: float
    confidence_score: float
    reasons: Tuple[str, ...]
    gate_results: GateResults
    context: AggregatedContext
    market: MarketMetrics
    confidence: ConfidenceBreakdown
    sizing: Optional[SizingBreakdown] = None
    rules_version: str = ""
    engine_version: str = ""
    timestamp: float = 0.0

    @property
    def symbol(self) -> str:
        return self.context.instrument.symbol

    def to_dict(self) -> dict:
        """JSON-ready view (str enums serialize as their values)."""
        return asdict(self)

    def __repr__(self) -> str:
        return (
            f"DecisionPacket({self.action.value} {self.symbol} "
            f"direction={self.direction.value if self.direction else None} "
            f"confidence={self.confidence_score:.1f} size={self.size_multiplier:.2f}x)"
        )
