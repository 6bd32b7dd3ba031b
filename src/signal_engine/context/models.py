"""
Context data model.

A ContextFragment carries exactly one section from one source. The
ContextAggregator merges fragments per symbol into an AggregatedContext in
which sections that have not been received (or have expired) are ``None``.
Absence is therefore never confused with a zero score.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from ..core.types import Bias, Direction, ExecutionGrade, QualityTier, SourceName


class ContextState(str, Enum):
    """Per-symbol aggregation state."""
    EMPTY = "EMPTY"
    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"
    EXPIRED = "EXPIRED"


PHASE_NAMES = {
    1: "ACCUMULATION",
    2: "MARKUP",
    3: "DISTRIBUTION",
    4: "MARKDOWN",
}


# ============================================================================
# Sections
# ============================================================================

@dataclass(frozen=True)
class Instrument:
    symbol: str
    exchange: Optional[str] = None
    price: Optional[float] = None

    def filled_from(self, other: "Instrument") -> "Instrument":
        """Copy of self with missing exchange/price taken from ``other``."""
        return Instrument(
            symbol=self.symbol,
            exchange=self.exchange if self.exchange is not None else other.exchange,
            price=self.price if self.price is not None else other.price,
        )


@dataclass(frozen=True)
class RegimeSection:
    bias: Bias
    phase_confidence: float
    phase: Optional[int] = None
    volatility: Optional[str] = None

    @property
    def phase_name(self) -> Optional[str]:
        return PHASE_NAMES.get(self.phase) if self.phase is not None else None


@dataclass(frozen=True)
class ExpertSection:
    direction: Direction
    ai_score: float
    quality: QualityTier
    rr_ratio_t1: Optional[float] = None
    rr_ratio_t2: Optional[float] = None
    timeframe: Optional[str] = None
    components: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AlignmentSection:
    # timeframe key (e.g. "tf15min") -> BULLISH / BEARISH / NEUTRAL
    tf_states: Dict[str, Bias]
    bullish_pct: float
    bearish_pct: float

    def aligned_count(self, direction: Direction) -> int:
        target = Bias.BULLISH if direction is Direction.LONG else Bias.BEARISH
        return sum(1 for state in self.tf_states.values() if state is target)

    def pct_for(self, direction: Direction) -> float:
        return self.bullish_pct if direction is Direction.LONG else self.bearish_pct


@dataclass(frozen=True)
class StructureSection:
    valid_setup: bool
    execution_quality: ExecutionGrade
    liquidity_ok: bool = True


Section = Union[RegimeSection, ExpertSection, AlignmentSection, StructureSection]

SECTION_FIELD = {
    SourceName.REGIME: "regime",
    SourceName.EXPERT_SIGNAL: "expert",
    SourceName.TREND_ALIGNMENT: "alignment",
    SourceName.STRUCTURE_CHECK: "structure",
}


# ============================================================================
# Fragments and Snapshots
# ============================================================================

@dataclass(frozen=True)
class ContextFragment:
    """Partial context update supplied by exactly one source."""
    source: SourceName
    instrument: Instrument
    section: Section
    timestamp: float

    @property
    def symbol(self) -> str:
        return self.instrument.symbol


@dataclass(frozen=True)
class ContextMeta:
    received_at: float
    completeness: float
    fresh_sources: Tuple[SourceName, ...] = ()
    engine_version: str = ""


@dataclass(frozen=True)
class AggregatedContext:
    """Merged point-in-time view of all fresh fragments for one symbol."""
    instrument: Instrument
    regime: Optional[RegimeSection] = None
    expert: Optional[ExpertSection] = None
    alignment: Optional[AlignmentSection] = None
    structure: Optional[StructureSection] = None
    meta: ContextMeta = field(default_factory=lambda: ContextMeta(received_at=0.0, completeness=0.0))

    def has(self, source: SourceName) -> bool:
        return getattr(self, SECTION_FIELD[source]) is not None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Unrecognized:
    """Classifier result for payloads no fingerprint matched."""
    hint: str

    def __bool__(self) -> bool:
        return False
