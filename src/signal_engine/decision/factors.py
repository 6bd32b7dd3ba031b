"""
Scoring factors shared by confidence and sizing.

Each factor is computed exactly once per decision by ``compute_factors``;
the confidence calculator and the position sizer both read the resulting
ScoringFactors and never recompute a factor on their own.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from ..config.settings import ConfidenceConfig, HTFAlignment, RuleConfig, Session
from ..context.models import AggregatedContext, AlignmentSection
from ..core.types import Bias, Direction, QualityTier
from ..market_data.models import MarketMetrics
from ..utils.math_utils import clamp
from ..utils.time_utils import TimeUtils


@dataclass(frozen=True)
class ScoringFactors:
    direction: Optional[Direction]
    quality_multiplier: float
    expert_strength: float
    alignment_pct: Optional[float]
    aligned_count: Optional[int]
    htf_alignment: Optional[HTFAlignment]
    trend_strength: float
    volume_ratio: float
    rr_ratio: Optional[float]
    regime_confidence: Optional[float]
    regime_agrees: bool
    session: Session
    day: str


def quality_multiplier(tier: Optional[QualityTier], table: Dict[QualityTier, float]) -> float:
    """Signal-quality multiplier; 1.0 when no expert signal is present."""
    if tier is None:
        return 1.0
    return table.get(tier, 1.0)


def expert_strength(ai_score: Optional[float], multiplier: float, config: ConfidenceConfig) -> float:
    """
    Expert signal strength on 0-100.

    The raw score is normalized to 0-100 from ``ai_score_max``, penalized
    below ``ai_score_minimum`` and scaled by the quality multiplier.
    """
    if ai_score is None:
        return 0.0
    normalized = clamp(ai_score / config.ai_score_max * 100.0, 0.0, 100.0)
    if ai_score < config.ai_score_minimum:
        normalized *= config.low_ai_penalty
    return clamp(normalized * multiplier, 0.0, 100.0)


def classify_htf_alignment(
    alignment: Optional[AlignmentSection],
    direction: Optional[Direction],
    higher_timeframes: Iterable[str],
) -> Optional[HTFAlignment]:
    """PERFECT / GOOD / WEAK / COUNTER from higher-timeframe states, None if unknown."""
    if alignment is None or direction is None:
        return None

    states = [alignment.tf_states[tf] for tf in higher_timeframes if tf in alignment.tf_states]
    if not states:
        return None

    target = Bias.BULLISH if direction is Direction.LONG else Bias.BEARISH
    opposite = Bias.BEARISH if target is Bias.BULLISH else Bias.BULLISH
    aligned = sum(1 for s in states if s is target)
    against = sum(1 for s in states if s is opposite)

    if aligned == len(states):
        return HTFAlignment.PERFECT
    if against == len(states):
        return HTFAlignment.COUNTER
    if aligned > against:
        return HTFAlignment.GOOD
    return HTFAlignment.WEAK


def trend_strength(trend_slope: float, direction: Optional[Direction]) -> float:
    """0-100 strength of the statistical trend in the trade's direction."""
    if direction is None:
        return 0.0
    signed = trend_slope if direction is Direction.LONG else -trend_slope
    return clamp(signed * 100.0, 0.0, 100.0)


def compute_factors(
    context: AggregatedContext,
    metrics: MarketMetrics,
    rules: RuleConfig,
) -> ScoringFactors:
    expert = context.expert
    direction = expert.direction if expert else None
    multiplier = quality_multiplier(expert.quality if expert else None, rules.sizing.quality_factors)
    alignment = context.alignment
    regime = context.regime

    return ScoringFactors(
        direction=direction,
        quality_multiplier=multiplier,
        expert_strength=expert_strength(expert.ai_score if expert else None, multiplier, rules.confidence),
        alignment_pct=alignment.pct_for(direction) if alignment and direction else None,
        aligned_count=alignment.aligned_count(direction) if alignment and direction else None,
        htf_alignment=classify_htf_alignment(alignment, direction, rules.sizing.higher_timeframes),
        trend_strength=trend_strength(metrics.statistics.trend_slope, direction),
        volume_ratio=metrics.statistics.volume_ratio,
        rr_ratio=expert.rr_ratio_t1 if expert else None,
        regime_confidence=regime.phase_confidence if regime else None,
        regime_agrees=bool(
            regime and direction
            and regime.bias is not Bias.NEUTRAL
            and regime.bias.supports(direction)
        ),
        session=TimeUtils.market_session(context.meta.received_at),
        day=TimeUtils.day_code(context.meta.received_at),
    )
