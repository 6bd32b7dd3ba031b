"""
Decision Engine - deterministic rule evaluation.

Pure function of (aggregated context, market metrics, rule config):
1. Runs the regime, structural and market gates (all three, always)
2. Computes scoring factors once
3. Computes the weighted confidence score
4. Determines EXECUTE / WAIT / SKIP
5. Computes the position size multiplier (reported on EXECUTE/WAIT)

Nothing here performs I/O; the same inputs always give the same packet
apart from ``timestamp``.
"""

import logging
import time
from typing import List, Optional

from .. import ENGINE_VERSION
from ..config.settings import RuleConfig
from ..context.models import AggregatedContext
from ..core.errors import InvalidContextError
from ..core.types import Action
from ..market_data.models import MarketMetrics
from .confidence import ConfidenceCalculator
from .factors import compute_factors
from .gates import MarketGate, RegimeGate, StructuralGate
from .models import DecisionPacket, GateResults
from .sizing import PositionSizer

logger = logging.getLogger(__name__)


class DecisionEngine:
    """
    Evaluates the gates, confidence and sizing for one aggregated context.

    Example:
        engine = DecisionEngine(load_rule_config())
        packet = engine.decide(context, metrics)
        if packet.action is Action.EXECUTE:
            ...
    """

    def __init__(self, rules: Optional[RuleConfig] = None, name: str = "DecisionEngine"):
        self.rules = rules if rules is not None else RuleConfig()
        self.name = name

        self.regime_gate = RegimeGate(self.rules.gates)
        self.structural_gate = StructuralGate(self.rules.gates)
        self.market_gate = MarketGate(self.rules.gates)
        self.confidence_calculator = ConfidenceCalculator(self.rules.confidence)
        self.sizer = PositionSizer(self.rules.sizing)

        self.decisions_made = 0
        self.action_counts = {action.value: 0 for action in Action}

        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.logger.info(
            f"DecisionEngine initialized: rules v{self.rules.version}, "
            f"execute>={self.rules.thresholds.execute:.0f}, wait>={self.rules.thresholds.wait:.0f}"
        )

    def decide(
        self,
        context: AggregatedContext,
        metrics: MarketMetrics,
        now: Optional[float] = None,
    ) -> DecisionPacket:
        """
        Produce a fully formed DecisionPacket.

        Raises:
            InvalidContextError: context has no instrument symbol
        """
        if not context.instrument.symbol:
            raise InvalidContextError("Aggregated context has no instrument symbol")

        # Step 1: All gates run independently
        gates = GateResults(
            regime=self.regime_gate.evaluate(context, metrics),
            structural=self.structural_gate.evaluate(context, metrics),
            market=self.market_gate.evaluate(context, metrics),
        )
        for gate, result in zip(
            (self.regime_gate, self.structural_gate, self.market_gate), gates
        ):
            gate.log_result(result)

        # Step 2: Factors and confidence
        factors = compute_factors(context, metrics, self.rules)
        confidence = self.confidence_calculator.calculate(gates, factors, metrics)

        # Step 3: Action
        action, reasons = self._determine_action(context, gates, confidence.total)

        # Step 4: Sizing is only meaningful when not skipping
        sizing = None
        size = self.rules.sizing.min_multiplier
        if action is not Action.SKIP:
            sizing = self.sizer.calculate(factors)
            size = sizing.final

        packet = DecisionPacket(
            action=action,
            direction=factors.direction,
            size_multiplier=size,
            confidence_score=confidence.total,
            reasons=tuple(reasons),
            gate_results=gates,
            context=context,
            market=metrics,
            confidence=confidence,
            sizing=sizing,
            rules_version=self.rules.version,
            engine_version=ENGINE_VERSION,
            timestamp=time.time() if now is None else now,
        )

        self.decisions_made += 1
        self.action_counts[action.value] += 1

        if action is Action.EXECUTE:
            self.logger.info(
                f"🎯 EXECUTE {packet.symbol} {packet.direction.value} | "
                f"Confidence: {packet.confidence_score:.1f} | Size: {packet.size_multiplier:.2f}x"
            )
        else:
            self.logger.info(
                f"{action.value} {packet.symbol} | Confidence: {packet.confidence_score:.1f} | "
                f"Reasons: {'; '.join(packet.reasons)}"
            )

        return packet

    def _determine_action(
        self,
        context: AggregatedContext,
        gates: GateResults,
        confidence: float,
    ):
        thresholds = self.rules.thresholds
        reasons: List[str] = []

        if context.expert is None:
            reasons.append("No expert signal: trade direction unknown")

        for result in gates:
            if not result.passed:
                reasons.extend(f"{result.name}: {failure}" for failure in result.failures)

        if reasons:
            return Action.SKIP, reasons

        if confidence >= thresholds.execute:
            return Action.EXECUTE, reasons

        if confidence >= thresholds.wait:
            reasons.append(
                f"Confidence {confidence:.1f} below execute threshold {thresholds.execute:.1f}"
            )
            return Action.WAIT, reasons

        reasons.append(f"Confidence {confidence:.1f} below wait threshold {thresholds.wait:.1f}")
        return Action.SKIP, reasons

    def get_stats(self) -> dict:
        """Engine configuration and decision counts."""
        return {
            "name": self.name,
            "rules_version": self.rules.version,
            "execute_threshold": self.rules.thresholds.execute,
            "wait_threshold": self.rules.thresholds.wait,
            "decisions_made": self.decisions_made,
            "actions": dict(self.action_counts),
        }


def decide(
    context: AggregatedContext,
    metrics: MarketMetrics,
    rules: Optional[RuleConfig] = None,
    now: Optional[float] = None,
) -> DecisionPacket:
    """Evaluate one context with a throwaway engine."""
    return DecisionEngine(rules).decide(context, metrics, now=now)
