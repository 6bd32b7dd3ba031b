"""
Structural gate.

No structural data at all is a critical failure with the lowest score;
an explicitly invalid setup fails with a less severe score. The reason
strings keep the two cases distinct.
"""

from ...context.models import AggregatedContext
from ...market_data.models import MarketMetrics
from ..models import GateResult
from .base import Gate


class StructuralGate(Gate):
    name = "structural"

    def evaluate(self, context: AggregatedContext, metrics: MarketMetrics) -> GateResult:
        structure = context.structure

        if structure is None:
            return self._failed(
                self.config.missing_structure_score,
                ["CRITICAL: no structural data received"],
            )

        failures = []
        scores = []

        if not structure.valid_setup:
            failures.append("Structural setup invalid (validSetup=false)")
            scores.append(self.config.invalid_structure_score)

        if not structure.liquidity_ok:
            failures.append("Structure check reports insufficient liquidity")
            scores.append(self.config.illiquid_structure_score)

        if failures:
            return self._failed(min(scores), failures)

        grade = structure.execution_quality
        return self._passed(
            self.config.grade_scores.get(grade, 60.0),
            f"Valid setup with execution quality {grade.value}",
        )
