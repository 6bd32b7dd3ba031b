"""
Market gate.

Checks spread, ATR and depth independently. Each condition produces a
sub-score that is continuous at its threshold and falls off in proportion
to how far the metric is beyond it; the gate score is their mean.

    spread  within: 100 - 50 * spread / max      beyond: 50 * (1 - overshoot)
    atr     within: 100 - 40 * atr / max         beyond: 60 * (1 - overshoot)
    depth   depth score itself

where ``overshoot = (value - max) / max``.
"""

from typing import List, Tuple

from ...context.models import AggregatedContext
from ...market_data.models import MarketMetrics
from ...utils.math_utils import clamp
from ..models import GateResult
from .base import Gate


def _upper_bound_score(value: float, limit: float, floor_at_limit: float) -> float:
    if value <= limit:
        return 100.0 - (100.0 - floor_at_limit) * (max(value, 0.0) / limit)
    overshoot = (value - limit) / limit
    return max(0.0, floor_at_limit * (1.0 - overshoot))


def spread_score(spread_bps: float, max_spread_bps: float) -> float:
    return _upper_bound_score(spread_bps, max_spread_bps, 50.0)


def atr_score(atr: float, max_atr: float) -> float:
    return _upper_bound_score(atr, max_atr, 60.0)


class MarketGate(Gate):
    name = "market"

    def evaluate(self, context: AggregatedContext, metrics: MarketMetrics) -> GateResult:
        cfg = self.config
        liquidity = metrics.liquidity
        stats = metrics.statistics

        failures: List[str] = []
        scores: List[Tuple[str, float]] = []

        scores.append(("spread", spread_score(liquidity.spread_bps, cfg.max_spread_bps)))
        if liquidity.spread_bps > cfg.max_spread_bps:
            failures.append(
                f"Spread {liquidity.spread_bps:.1f}bps exceeds max {cfg.max_spread_bps:.1f}bps"
            )

        scores.append(("atr", atr_score(stats.atr14, cfg.max_atr)))
        if stats.atr14 > cfg.max_atr:
            failures.append(f"ATR {stats.atr14:.2f} exceeds spike threshold {cfg.max_atr:.2f}")

        scores.append(("depth", clamp(liquidity.depth_score, 0.0, 100.0)))
        if liquidity.depth_score < cfg.min_depth_score:
            failures.append(
                f"Depth score {liquidity.depth_score:.1f} below minimum {cfg.min_depth_score:.1f}"
            )

        score = sum(s for _, s in scores) / len(scores)

        if failures:
            return self._failed(score, failures)

        reason = "Market conditions within limits"
        fallback = metrics.fallback_sections
        if fallback:
            reason += f" (fallback data: {', '.join(s.value for s in fallback)})"
        return self._passed(score, reason)
