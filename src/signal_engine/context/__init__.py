"""Payload classification, normalization and per-symbol context aggregation."""

from .models import (
    Instrument,
    RegimeSection,
    ExpertSection,
    AlignmentSection,
    StructureSection,
    ContextFragment,
    ContextMeta,
    AggregatedContext,
    ContextState,
    Unrecognized,
)
from .classifier import SourceClassifier, sanitize_payload
from .normalizer import FieldNormalizer
from .aggregator import ContextAggregator
from .sweeper import ContextSweeper

__all__ = [
    "Instrument",
    "RegimeSection",
    "ExpertSection",
    "AlignmentSection",
    "StructureSection",
    "ContextFragment",
    "ContextMeta",
    "AggregatedContext",
    "ContextState",
    "Unrecognized",
    "SourceClassifier",
    "sanitize_payload",
    "FieldNormalizer",
    "ContextAggregator",
    "ContextSweeper",
]
