"""Core types, errors and lifecycle primitives shared by every package."""

from .errors import (
    SignalEngineError,
    ClassificationFailure,
    NormalizationFailure,
    ProviderFailure,
    ConfigurationError,
    UnknownSymbolError,
    InvalidContextError,
)
from .types import (
    SourceName,
    Direction,
    Bias,
    QualityTier,
    ExecutionGrade,
    Action,
    MetricSection,
    ProviderErrorType,
)

__all__ = [
    "SignalEngineError",
    "ClassificationFailure",
    "NormalizationFailure",
    "ProviderFailure",
    "ConfigurationError",
    "UnknownSymbolError",
    "InvalidContextError",
    "SourceName",
    "Direction",
    "Bias",
    "QualityTier",
    "ExecutionGrade",
    "Action",
    "MetricSection",
    "ProviderErrorType",
]
