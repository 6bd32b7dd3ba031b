"""Logging, metrics, time and math helpers."""

from .logger import setup_logging, JSONFormatter, PerformanceLogger, DecisionLogger, get_decision_logger
from .math_utils import clamp, tier_lookup, StatisticalUtils, PriceAnalysis
from .metrics import MetricsCollector, MetricSummary

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "PerformanceLogger",
    "DecisionLogger",
    "get_decision_logger",
    "clamp",
    "tier_lookup",
    "StatisticalUtils",
    "PriceAnalysis",
    "MetricsCollector",
    "MetricSummary",
]
