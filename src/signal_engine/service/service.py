"""
Decision Service - ingest and decide call-in surfaces.

Workflow:
1. ingest(payload): classify -> normalize -> merge -> completeness check
2. decide(symbol): snapshot -> market metrics fetch -> DecisionEngine
3. Every packet is handed to the registered sinks as background tasks

The service owns no global state; everything it uses is passed in by the
composition root (see ``core.bootstrap``).
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..context.aggregator import ContextAggregator
from ..context.classifier import SourceClassifier, Unrecognized, sanitize_payload
from ..context.models import AggregatedContext, ContextState
from ..context.normalizer import FieldNormalizer
from ..context.sweeper import ContextSweeper
from ..core.errors import ClassificationFailure, NormalizationFailure
from ..core.types import SourceName
from ..decision.engine import DecisionEngine
from ..decision.models import DecisionPacket
from ..market_data.fetcher import MarketMetricsFetcher
from ..utils.logger import get_decision_logger
from ..utils.metrics import MetricsCollector
from .sinks import CallbackSink, DecisionSink

logger = logging.getLogger(__name__)


class IngestStatus(str, Enum):
    PENDING = "pending"
    SNAPSHOT_READY = "snapshot_ready"


@dataclass(frozen=True)
class IngestResult:
    """
    Outcome of one ingest.

    ``snapshot`` is the deep-copied context taken at the moment completeness
    was confirmed; it is None while PENDING.
    """
    status: IngestStatus
    source: SourceName
    symbol: str
    state: ContextState
    snapshot: Optional[AggregatedContext] = None

    @property
    def ready(self) -> bool:
        return self.status is IngestStatus.SNAPSHOT_READY


class DecisionService:
    """
    Orchestrates the context and decision layers for inbound events.

    Example:
        service = build_decision_service()
        result = await service.ingest(payload)
        if result.ready:
            packet = await service.decide_snapshot(result.snapshot)
    """

    def __init__(
        self,
        aggregator: ContextAggregator,
        fetcher: MarketMetricsFetcher,
        engine: DecisionEngine,
        classifier: Optional[SourceClassifier] = None,
        normalizer: Optional[FieldNormalizer] = None,
        sinks: Optional[List[DecisionSink]] = None,
        metrics: Optional[MetricsCollector] = None,
        sweeper: Optional[ContextSweeper] = None,
    ):
        self.aggregator = aggregator
        self.sweeper = sweeper
        self.fetcher = fetcher
        self.engine = engine
        self.classifier = classifier or SourceClassifier()
        self.normalizer = normalizer or FieldNormalizer()
        self.sinks: List[DecisionSink] = list(sinks or [])
        self.metrics = metrics or MetricsCollector()

        self.audit = get_decision_logger(__name__)
        self._handoffs: Set[asyncio.Task] = set()

        logger.info(
            f"DecisionService initialized with {len(self.sinks)} sink(s), "
            f"rules v{self.engine.rules.version}"
        )

    # ========================================================================
    # Sinks
    # ========================================================================

    def add_sink(self, sink: DecisionSink) -> None:
        self.sinks.append(sink)
        logger.info(f"Registered decision sink: {sink.name}")

    def on_decision(self, callback: Callable[[DecisionPacket], Any]) -> None:
        """Register a plain or async callback as a sink."""
        self.add_sink(CallbackSink(callback))

    def _dispatch(self, packet: DecisionPacket) -> None:
        for sink in self.sinks:
            task = asyncio.create_task(
                self._deliver(sink, packet), name=f"sink_{sink.name}_{packet.symbol}"
            )
            self._handoffs.add(task)
            task.add_done_callback(self._handoffs.discard)

    async def _deliver(self, sink: DecisionSink, packet: DecisionPacket) -> None:
        try:
            await sink.handle(packet)
        except Exception as e:
            self.metrics.increment("sink.failures", tags={"sink": sink.name})
            logger.error(f"Error in decision sink {sink.name}: {e}")
            logger.exception("Full traceback:")

    async def drain(self) -> None:
        """Wait for in-flight sink deliveries."""
        while self._handoffs:
            await asyncio.gather(*list(self._handoffs), return_exceptions=True)

    # ========================================================================
    # Ingest
    # ========================================================================

    async def ingest(self, payload: Dict[str, Any]) -> IngestResult:
        """
        Classify, normalize and merge one inbound payload.

        Raises:
            ClassificationFailure: payload matches no known producer
            NormalizationFailure: mandatory fields are missing
        """
        source = self.classifier.classify(payload)
        if isinstance(source, Unrecognized):
            self.metrics.increment("ingest.rejected", tags={"reason": "classification"})
            self.audit.rejected(source.hint, payload=sanitize_payload(payload))
            raise ClassificationFailure(source.hint)

        try:
            fragment = self.normalizer.normalize(payload, source)
        except NormalizationFailure as e:
            self.metrics.increment("ingest.rejected", tags={"reason": "normalization"})
            self.audit.rejected(str(e), source=source.value, payload=sanitize_payload(payload))
            raise

        await self.aggregator.merge(fragment)
        symbol = fragment.symbol
        self.metrics.increment("ingest.accepted", tags={"source": source.value})

        snapshot = await self.aggregator.snapshot_if_complete(symbol)

        status = self.aggregator.completeness_stats(symbol)
        state = ContextState(status["state"])
        self.audit.ingested(
            symbol=symbol,
            source=source.value,
            state=state.value,
            completeness=status["completeness"],
        )

        return IngestResult(
            status=IngestStatus.SNAPSHOT_READY if snapshot is not None else IngestStatus.PENDING,
            source=source,
            symbol=symbol,
            state=state,
            snapshot=snapshot,
        )

    # ========================================================================
    # Decide
    # ========================================================================

    async def decide(self, symbol: str, budget: Optional[float] = None) -> DecisionPacket:
        """
        Decide on the current snapshot for ``symbol``.

        Raises:
            UnknownSymbolError: no fragments have been merged for the symbol
        """
        snapshot = await self.aggregator.snapshot(symbol.upper())
        return await self.decide_snapshot(snapshot, budget=budget)

    async def decide_snapshot(
        self,
        context: AggregatedContext,
        budget: Optional[float] = None,
    ) -> DecisionPacket:
        """Fetch market metrics and evaluate an already-copied snapshot."""
        started = time.perf_counter()
        symbol = context.instrument.symbol

        metrics = await self.fetcher.fetch(symbol, budget=budget)
        with self.audit.performance.timer("decide", symbol=symbol):
            packet = self.engine.decide(context, metrics)

        self.metrics.increment("decisions", tags={"action": packet.action.value})
        self.metrics.timer("decision.latency", time.perf_counter() - started)

        self._dispatch(packet)
        return packet

    async def process(
        self,
        payload: Dict[str, Any],
        budget: Optional[float] = None,
    ) -> Tuple[IngestResult, Optional[DecisionPacket]]:
        """Ingest a payload and decide immediately when its snapshot is ready."""
        result = await self.ingest(payload)
        if not result.ready:
            return result, None
        packet = await self.decide_snapshot(result.snapshot, budget=budget)
        return result, packet

    # ========================================================================
    # Status
    # ========================================================================

    def get_context_status(self, symbol: str) -> Dict[str, Any]:
        return self.aggregator.completeness_stats(symbol.upper())

    def get_stats(self) -> Dict[str, Any]:
        latency = self.metrics.get_summary("decision.latency")
        return {
            "engine": self.engine.get_stats(),
            "symbols": self.aggregator.symbols(),
            "sinks": [sink.name for sink in self.sinks],
            "pending_handoffs": len(self._handoffs),
            "cache": self.fetcher.cache.stats(),
            "rate_limits": self.fetcher.rate_limiter.stats(),
            "metrics": self.metrics.get_current_values(),
            "latency": asdict(latency) if latency else None,
        }

    async def start(self) -> None:
        """Start background expiry sweeps, if a sweeper is configured."""
        if self.sweeper is not None and not self.sweeper.is_running:
            await self.sweeper.start()

    async def close(self) -> None:
        if self.sweeper is not None and self.sweeper.is_running:
            await self.sweeper.stop()
        await self.drain()
        await self.fetcher.close()
        logger.info("DecisionService closed")
