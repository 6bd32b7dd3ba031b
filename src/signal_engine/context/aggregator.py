"""
Context Aggregator - per-symbol merge of context fragments.

Each symbol owns its sections, per-source last-update times and an
asyncio.Lock, so merges for one symbol are serialized while different
symbols proceed independently. Freshness is always evaluated against the
injected clock; a source older than ``max_age_seconds`` is treated exactly
as if it had never been received.

Merge rules:
- A fragment overwrites only its own source's section.
- An older fragment (by payload timestamp) never replaces a newer section
  and does not refresh its freshness.
- The instrument follows the newest fragment; ties are broken by source
  rank, and fields a fragment does not carry are filled from the other.
"""

import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .. import ENGINE_VERSION
from ..config.settings import ContextRulesConfig
from ..core.errors import UnknownSymbolError
from ..core.types import SourceName
from .models import (
    AggregatedContext,
    ContextFragment,
    ContextMeta,
    ContextState,
    Instrument,
    SECTION_FIELD,
    Section,
)

logger = logging.getLogger(__name__)


# Instrument tie-break on equal timestamps: higher rank wins
SOURCE_RANK = {
    SourceName.STRUCTURE_CHECK: 0,
    SourceName.TREND_ALIGNMENT: 1,
    SourceName.REGIME: 2,
    SourceName.EXPERT_SIGNAL: 3,
}


@dataclass
class _SymbolState:
    """Mutable per-symbol state, only touched under the symbol's lock."""
    sections: Dict[SourceName, Section] = field(default_factory=dict)
    section_times: Dict[SourceName, float] = field(default_factory=dict)
    last_updated: Dict[SourceName, float] = field(default_factory=dict)
    instrument: Optional[Instrument] = None
    instrument_key: Tuple[float, int] = (float("-inf"), -1)


class ContextAggregator:
    """
    Merges fragments per symbol and evaluates completeness.

    Example:
        aggregator = ContextAggregator(ContextRulesConfig(required_sources=[SourceName.REGIME]))
        await aggregator.merge(fragment)
        context = await aggregator.snapshot_if_complete("SPY")
    """

    def __init__(
        self,
        rules: Optional[ContextRulesConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rules = rules if rules is not None else ContextRulesConfig()
        self._clock = clock
        self._states: Dict[str, _SymbolState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

        logger.info(
            f"ContextAggregator initialized (required={[s.value for s in self.rules.required_sources]}, "
            f"primary={[s.value for s in self.rules.primary_sources]}, "
            f"max_age={self.rules.max_age_seconds:.0f}s)"
        )

    # ========================================================================
    # Configuration
    # ========================================================================

    def update_rules(
        self,
        required_sources: Optional[List[SourceName]] = None,
        optional_sources: Optional[List[SourceName]] = None,
        primary_sources: Optional[List[SourceName]] = None,
        max_age_seconds: Optional[float] = None,
    ) -> ContextRulesConfig:
        """Apply only the supplied rule overrides and return the new rules."""
        self.rules = self.rules.with_overrides(
            required_sources=required_sources,
            optional_sources=optional_sources,
            primary_sources=primary_sources,
            max_age_seconds=max_age_seconds,
        )
        logger.info(f"Completeness rules updated: {self.rules.model_dump(mode='json')}")
        return self.rules

    # ========================================================================
    # Merge
    # ========================================================================

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[symbol] = lock
        return lock

    async def merge(self, fragment: ContextFragment) -> ContextState:
        """
        Merge one fragment into its symbol's context.

        Returns:
            The symbol's state after the merge
        """
        symbol = fragment.symbol
        async with self._lock_for(symbol):
            state = self._states.setdefault(symbol, _SymbolState())
            self._apply(state, fragment, self._clock())
            result = self._state_of(symbol, state)

        logger.debug(f"Merged {fragment.source.value} for {symbol} -> {result.value}")
        return result

    @staticmethod
    def _apply(state: _SymbolState, fragment: ContextFragment, now: float) -> None:
        source = fragment.source

        previous = state.section_times.get(source)
        if previous is None or fragment.timestamp >= previous:
            state.sections[source] = fragment.section
            state.section_times[source] = fragment.timestamp
            state.last_updated[source] = max(now, state.last_updated.get(source, now))
        else:
            # out-of-order fragments leave freshness untouched
            logger.debug(
                f"Ignoring out-of-order {source.value} section for {fragment.symbol} "
                f"({fragment.timestamp} < {previous})"
            )

        key = (fragment.timestamp, SOURCE_RANK.get(source, -1))
        incoming = fragment.instrument
        if state.instrument is None:
            state.instrument = incoming
            state.instrument_key = key
        elif key >= state.instrument_key:
            state.instrument = incoming.filled_from(state.instrument)
            state.instrument_key = key
        else:
            state.instrument = state.instrument.filled_from(incoming)

    # ========================================================================
    # Freshness & Completeness
    # ========================================================================

    def _is_fresh(self, state: _SymbolState, source: SourceName, now: float) -> bool:
        updated = state.last_updated.get(source)
        return updated is not None and now - updated <= self.rules.max_age_seconds

    def _fresh_sources(self, state: _SymbolState, now: float) -> List[SourceName]:
        return [s for s in state.last_updated if self._is_fresh(state, s, now)]

    def _complete(self, state: _SymbolState, now: float) -> bool:
        if state.instrument is None:
            return False
        if not all(self._is_fresh(state, s, now) for s in self.rules.required_sources):
            return False
        return any(self._is_fresh(state, s, now) for s in self.rules.primary_sources)

    def _completeness_ratio(self, state: _SymbolState, now: float) -> float:
        known = self.rules.known_sources
        if not known:
            return 0.0
        fresh = sum(1 for s in known if self._is_fresh(state, s, now))
        return round(fresh / len(known), 4)

    def is_complete(self, symbol: str) -> bool:
        """True iff every required source and at least one primary source is fresh."""
        self.expire(symbol)
        state = self._states.get(symbol)
        if state is None:
            return False
        return self._complete(state, self._clock())

    def _state_of(self, symbol: str, state: Optional[_SymbolState]) -> ContextState:
        if state is None:
            return ContextState.EMPTY
        now = self._clock()
        if not self._fresh_sources(state, now):
            return ContextState.EXPIRED
        if self._complete(state, now):
            return ContextState.COMPLETE
        return ContextState.PARTIAL

    def state(self, symbol: str) -> ContextState:
        self.expire(symbol)
        return self._state_of(symbol, self._states.get(symbol))

    # ========================================================================
    # Snapshot
    # ========================================================================

    async def snapshot(self, symbol: str) -> AggregatedContext:
        """
        Deep-copied merged context for ``symbol``.

        Raises:
            UnknownSymbolError: If no fragments have been merged for the symbol
        """
        async with self._lock_for(symbol):
            self.expire(symbol)
            state = self._states.get(symbol)
            if state is None or state.instrument is None or not state.sections:
                raise UnknownSymbolError(symbol)
            return self._build_snapshot(state, self._clock())

    async def snapshot_if_complete(self, symbol: str) -> Optional[AggregatedContext]:
        """
        Check completeness and copy the context under one lock acquisition.

        Returns:
            The snapshot, or None when the context is not complete
        """
        async with self._lock_for(symbol):
            self.expire(symbol)
            state = self._states.get(symbol)
            now = self._clock()
            if state is None or not state.sections or not self._complete(state, now):
                return None
            return self._build_snapshot(state, now)

    def _build_snapshot(self, state: _SymbolState, now: float) -> AggregatedContext:
        sections = {
            SECTION_FIELD[source]: copy.deepcopy(section)
            for source, section in state.sections.items()
        }
        meta = ContextMeta(
            received_at=now,
            completeness=self._completeness_ratio(state, now),
            fresh_sources=tuple(sorted(self._fresh_sources(state, now), key=lambda s: s.value)),
            engine_version=ENGINE_VERSION,
        )
        return AggregatedContext(
            instrument=copy.deepcopy(state.instrument),
            meta=meta,
            **sections,
        )

    # ========================================================================
    # Expiry
    # ========================================================================

    def expire(self, symbol: str) -> List[SourceName]:
        """
        Drop sections whose source is older than max age.

        Returns:
            Sources removed
        """
        state = self._states.get(symbol)
        if state is None:
            return []

        now = self._clock()
        expired = [s for s in state.last_updated if not self._is_fresh(state, s, now)]
        for source in expired:
            state.last_updated.pop(source, None)
            state.sections.pop(source, None)
            state.section_times.pop(source, None)

        if expired:
            logger.info(f"Expired {[s.value for s in expired]} for {symbol}")
        return expired

    def sweep(self) -> int:
        """
        Expire every symbol and forget symbols with nothing left.

        Returns:
            Number of symbols removed
        """
        removed = 0
        for symbol in list(self._states):
            self.expire(symbol)
            state = self._states[symbol]
            lock = self._locks.get(symbol)
            if not state.last_updated and not (lock and lock.locked()):
                del self._states[symbol]
                self._locks.pop(symbol, None)
                removed += 1
        if removed:
            logger.debug(f"Sweep removed {removed} idle symbols")
        return removed

    def clear(self, symbol: str) -> None:
        self._states.pop(symbol, None)
        self._locks.pop(symbol, None)

    # ========================================================================
    # Introspection
    # ========================================================================

    def symbols(self) -> List[str]:
        return sorted(self._states)

    def completeness_stats(self, symbol: str) -> Dict[str, object]:
        """Per-source availability and age for ``symbol``."""
        self.expire(symbol)
        state = self._states.get(symbol)
        now = self._clock()
        sources = {}
        for source in self.rules.known_sources:
            updated = state.last_updated.get(source) if state else None
            sources[source.value] = {
                "available": updated is not None,
                "required": source in self.rules.required_sources,
                "age_seconds": round(now - updated, 3) if updated is not None else None,
            }
        return {
            "symbol": symbol,
            "state": self._state_of(symbol, state).value,
            "completeness": self._completeness_ratio(state, now) if state else 0.0,
            "sources": sources,
        }
