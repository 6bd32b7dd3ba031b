"""
Base class for decision gates.

Gates are independent pass/fail + score evaluators over one concern. Every
gate always runs and reports every violated condition, never stopping at
the first failure.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from ...config.settings import GateConfig
from ...context.models import AggregatedContext
from ...market_data.models import MarketMetrics
from ...utils.math_utils import clamp
from ..models import GateResult


class Gate(ABC):
    """
    Base class for gates.

    Subclasses implement ``evaluate``; scores are clamped to [0, 100] and
    rounded here so every gate reports on the same scale.
    """

    name = "gate"

    def __init__(self, config: GateConfig):
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @abstractmethod
    def evaluate(self, context: AggregatedContext, metrics: MarketMetrics) -> GateResult:
        """
        Evaluate the gate.

        Returns:
            GateResult with pass/fail, score and all failure reasons
        """
        pass

    def _passed(self, score: float, reason: str) -> GateResult:
        return GateResult(
            name=self.name,
            passed=True,
            score=round(clamp(score, 0.0, 100.0), 2),
            reason=reason,
        )

    def _failed(self, score: float, failures: Iterable[str]) -> GateResult:
        failures = tuple(failures)
        return GateResult(
            name=self.name,
            passed=False,
            score=round(clamp(score, 0.0, 100.0), 2),
            reason="; ".join(failures),
            failures=failures,
        )

    def log_result(self, result: GateResult) -> None:
        if result.passed:
            self.logger.debug(f"✅ {self.name}: {result.reason} (score={result.score:.1f})")
        else:
            self.logger.debug(f"❌ {self.name}: {result.reason} (score={result.score:.1f})")
