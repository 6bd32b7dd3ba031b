"""
Position Size Multiplier

Base 1.0, multiplied by eight independent factors, plus an additive phase
boost, clamped to the configured range. Every factor is a pure function of
one input and its table so it can be tested on its own.
"""

import logging
from typing import Dict, Optional

from ..config.settings import HTFAlignment, Session, SizingConfig
from ..utils.math_utils import clamp, tier_lookup
from .factors import ScoringFactors
from .models import SizingBreakdown

logger = logging.getLogger(__name__)


# ============================================================================
# Factor Functions
# ============================================================================

def confluence_factor(aligned_count: Optional[int], config: SizingConfig) -> float:
    """Timeframes agreeing with the trade direction; neutral without alignment data."""
    if aligned_count is None:
        return 1.0
    return tier_lookup(aligned_count, config.confluence_tiers, 1.0)


def htf_factor(alignment: Optional[HTFAlignment], config: SizingConfig) -> float:
    if alignment is None:
        return 1.0
    return config.htf_factors.get(alignment, 1.0)


def rr_factor(rr_ratio: Optional[float], config: SizingConfig) -> float:
    """Risk:reward tier of the first target; neutral when the signal carries none."""
    if rr_ratio is None:
        return 1.0
    return tier_lookup(rr_ratio, config.rr_tiers, 1.0)


def volume_factor(volume_ratio: float, config: SizingConfig) -> float:
    return tier_lookup(volume_ratio, config.volume_tiers, 1.0)


def trend_factor(trend_strength: float, config: SizingConfig) -> float:
    return tier_lookup(trend_strength, config.trend_tiers, 1.0)


def session_factor(session: Session, config: SizingConfig) -> float:
    return config.session_factors.get(session, 1.0)


def day_factor(day: str, config: SizingConfig) -> float:
    return config.day_factors.get(day, 1.0)


def phase_boost(regime_confidence: Optional[float], regime_agrees: bool, config: SizingConfig) -> float:
    """Additive boost for a strong regime that agrees with the trade direction."""
    if regime_confidence is None or not regime_agrees:
        return 0.0
    return tier_lookup(regime_confidence, config.phase_boost_tiers, 0.0)


# ============================================================================
# Position Sizer
# ============================================================================

class PositionSizer:
    """Combines the sizing factors into a bounded multiplier."""

    def __init__(self, config: SizingConfig):
        self.config = config

    def factors(self, scoring: ScoringFactors) -> Dict[str, float]:
        config = self.config
        return {
            "quality": scoring.quality_multiplier,
            "confluence": confluence_factor(scoring.aligned_count, config),
            "htf": htf_factor(scoring.htf_alignment, config),
            "rr": rr_factor(scoring.rr_ratio, config),
            "volume": volume_factor(scoring.volume_ratio, config),
            "trend": trend_factor(scoring.trend_strength, config),
            "session": session_factor(scoring.session, config),
            "day": day_factor(scoring.day, config),
        }

    def calculate(self, scoring: ScoringFactors) -> SizingBreakdown:
        factors = self.factors(scoring)

        product = 1.0
        for value in factors.values():
            product *= value

        boost = phase_boost(scoring.regime_confidence, scoring.regime_agrees, self.config)
        raw = product + boost
        final = round(clamp(raw, self.config.min_multiplier, self.config.max_multiplier), 2)

        logger.debug(
            f"Size {final:.2f}x = "
            + " x ".join(f"{k}:{v:.2f}" for k, v in factors.items())
            + f" + boost {boost:.2f}"
        )

        return SizingBreakdown(
            factors=factors,
            phase_boost=boost,
            raw=round(raw, 4),
            final=final,
            clamped=not (self.config.min_multiplier <= raw <= self.config.max_multiplier),
        )
