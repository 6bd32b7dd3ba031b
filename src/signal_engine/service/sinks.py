"""
Decision sinks.

A sink receives every DecisionPacket after it is produced. Hand-off is
fire-and-forget: the service schedules each delivery as its own task and
only logs sink failures.
"""

import asyncio
import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TextIO

from ..decision.models import DecisionPacket
from ..utils.logger import get_decision_logger

logger = logging.getLogger(__name__)


class DecisionSink(ABC):
    """Consumer of decision packets (audit ledger, notifier, ...)."""

    name = "sink"

    @abstractmethod
    async def handle(self, packet: DecisionPacket) -> None:
        pass


class LoggingDecisionSink(DecisionSink):
    """Writes one structured audit line per decision."""

    name = "log"

    def __init__(self, logger_name: str = "signal_engine.decisions"):
        self.audit = get_decision_logger(logger_name)

    async def handle(self, packet: DecisionPacket) -> None:
        self.audit.decision(
            symbol=packet.symbol,
            action=packet.action.value,
            confidence=packet.confidence_score,
            size_multiplier=packet.size_multiplier,
            reasons=packet.reasons,
        )


class JSONLinesSink(DecisionSink):
    """Writes ``packet.to_dict()`` as one JSON line per decision."""

    name = "jsonl"

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout

    async def handle(self, packet: DecisionPacket) -> None:
        self.stream.write(json.dumps(packet.to_dict(), default=str) + "\n")
        self.stream.flush()


class CallbackSink(DecisionSink):
    """
    Adapts a plain callable to the sink interface.

    Both ``def cb(packet)`` and ``async def cb(packet)`` are accepted.
    """

    def __init__(self, callback: Callable[[DecisionPacket], Any]):
        self.callback = callback
        self.name = getattr(callback, "__name__", "callback")

    async def handle(self, packet: DecisionPacket) -> None:
        result = self.callback(packet)
        if asyncio.iscoroutine(result):
            await result
