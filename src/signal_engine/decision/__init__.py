"""
Decision layer: gates, confidence, sizing and the DecisionEngine.
"""

from .models import (
    GateResult,
    GateResults,
    ConfidenceBreakdown,
    SizingBreakdown,
    DecisionPacket,
)
from .factors import ScoringFactors, compute_factors
from .confidence import ConfidenceCalculator
from .sizing import PositionSizer
from .engine import DecisionEngine, decide

__all__ = [
    "GateResult",
    "GateResults",
    "ConfidenceBreakdown",
    "SizingBreakdown",
    "DecisionPacket",
    "ScoringFactors",
    "compute_factors",
    "ConfidenceCalculator",
    "PositionSizer",
    "DecisionEngine",
    "decide",
]
