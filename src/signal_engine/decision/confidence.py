"""
Confidence Score Calculator

Weighted sum of five contributions, each clamped to 0-100 before weighting:

- regime:     regime gate score
- expert:     expert signal strength (quality multiplier already applied)
- alignment:  timeframe alignment % in the trade direction
- market:     market gate score
- structural: structural gate score

A fixed penalty per fallback metrics section is subtracted and the total is
clamped to 0-100.
"""

import logging

from ..config.settings import ConfidenceConfig
from ..market_data.models import MarketMetrics
from ..utils.math_utils import clamp
from .factors import ScoringFactors
from .models import ConfidenceBreakdown, GateResults

logger = logging.getLogger(__name__)


class ConfidenceCalculator:
    """
    Calculates the decision confidence score.

    This is a pure calculation component - no side effects or state.
    """

    def __init__(self, config: ConfidenceConfig, name: str = "ConfidenceCalculator"):
        self.config = config
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def calculate(
        self,
        gates: GateResults,
        factors: ScoringFactors,
        metrics: MarketMetrics,
    ) -> ConfidenceBreakdown:
        weights = self.config.weights
        alignment = (
            factors.alignment_pct
            if factors.alignment_pct is not None
            else self.config.neutral_score
        )

        raw = {
            "regime": gates.regime.score,
            "expert": factors.expert_strength,
            "alignment": alignment,
            "market": gates.market.score,
            "structural": gates.structural.score,
        }
        raw = {key: round(clamp(value, 0.0, 100.0), 4) for key, value in raw.items()}

        weighted = {
            "regime": raw["regime"] * weights.regime,
            "expert": raw["expert"] * weights.expert,
            "alignment": raw["alignment"] * weights.alignment,
            "market": raw["market"] * weights.market,
            "structural": raw["structural"] * weights.structural,
        }
        weighted = {key: round(value, 4) for key, value in weighted.items()}

        penalty = self.config.fallback_penalty * len(metrics.fallback_sections)
        total = round(clamp(sum(weighted.values()) - penalty, 0.0, 100.0), 1)

        self.logger.debug(
            f"Confidence {total:.1f} = "
            + " + ".join(f"{k}:{v:.1f}" for k, v in weighted.items())
            + (f" - penalty {penalty:.1f}" if penalty else "")
        )

        return ConfidenceBreakdown(raw=raw, weighted=weighted, penalty=penalty, total=total)

    def get_confidence_level(self, score: float) -> str:
        """
        Get confidence level label for a score.

        - >= 85: very_high
        - >= 70: high
        - >= 50: medium
        - >= 30: low
        - < 30: insufficient
        """
        if score >= 85:
            return "very_high"
        elif score >= 70:
            return "high"
        elif score >= 50:
            return "medium"
        elif score >= 30:
            return "low"
        else:
            return "insufficient"
