"""
Regime gate.

Checks that the regime bias (and, when known, the regime phase) allows the
expert signal's direction and that phase confidence clears the minimum.

Scores:
- pass: phase confidence
- direction conflict: 0
- compatible but under-confident: the (sub-threshold) phase confidence
- no regime data: ``signal_only_score`` when signal-only mode is allowed
"""

from ...context.models import AggregatedContext
from ...market_data.models import MarketMetrics
from ..models import GateResult
from .base import Gate


class RegimeGate(Gate):
    name = "regime"

    def evaluate(self, context: AggregatedContext, metrics: MarketMetrics) -> GateResult:
        regime = context.regime
        expert = context.expert

        if regime is None:
            if self.config.allow_signal_only_mode:
                return self._passed(
                    self.config.signal_only_score,
                    "No regime data; signal-only mode",
                )
            return self._failed(0.0, ["No regime data received"])

        if expert is None:
            return self._failed(0.0, ["No expert signal direction to validate against regime"])

        direction = expert.direction
        failures = []
        conflict = False

        if not regime.bias.supports(direction):
            failures.append(f"Regime bias {regime.bias.value} conflicts with {direction.value} signal")
            conflict = True

        if self.config.enforce_phase_rules and regime.phase is not None:
            allowed = self.config.phase_rules.get(regime.phase)
            if allowed is not None and direction not in allowed:
                failures.append(
                    f"{direction.value} not allowed in phase {regime.phase} ({regime.phase_name})"
                )
                conflict = True

        if regime.phase_confidence < self.config.min_regime_confidence:
            failures.append(
                f"Phase confidence {regime.phase_confidence:.1f} below minimum "
                f"{self.config.min_regime_confidence:.1f}"
            )

        if conflict:
            return self._failed(0.0, failures)
        if failures:
            return self._failed(regime.phase_confidence, failures)

        return self._passed(
            regime.phase_confidence,
            f"Regime {regime.bias.value} supports {direction.value} "
            f"(confidence {regime.phase_confidence:.1f})",
        )
