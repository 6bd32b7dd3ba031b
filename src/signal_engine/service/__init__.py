"""
Service layer: the ``ingest`` / ``decide`` call-in surfaces and decision sinks.
"""

from .sinks import DecisionSink, LoggingDecisionSink, JSONLinesSink, CallbackSink
from .service import DecisionService, IngestResult, IngestStatus

__all__ = [
    "DecisionSink",
    "LoggingDecisionSink",
    "JSONLinesSink",
    "CallbackSink",
    "DecisionService",
    "IngestResult",
    "IngestStatus",
]
