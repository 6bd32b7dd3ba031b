"""
Shared fixtures: fake clock, payload builders, context/metrics factories
and fake market data providers.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from signal_engine.config.settings import RuleConfig
from signal_engine.context.models import (
    AggregatedContext,
    AlignmentSection,
    ContextMeta,
    ExpertSection,
    Instrument,
    RegimeSection,
    StructureSection,
)
from signal_engine.core.errors import ProviderFailure
from signal_engine.core.types import (
    Bias,
    Direction,
    ExecutionGrade,
    ProviderErrorType,
    QualityTier,
)
from signal_engine.market_data.models import (
    DerivativesMetrics,
    LiquidityMetrics,
    MarketMetrics,
    StatisticsMetrics,
)
from signal_engine.market_data.providers.base import MetricsProvider


# Wednesday 2025-01-15 12:00 America/New_York (MIDDAY session)
WEDNESDAY_NOON = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc).timestamp()


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = WEDNESDAY_NOON):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rules():
    return RuleConfig()


# ============================================================================
# Raw Payloads
# ============================================================================

class PayloadFactory:
    """Builders for raw producer payloads in their native shapes."""

    @staticmethod
    def regime(symbol="SPY", bias="BULLISH", confidence=90, phase=None, timestamp=None):
        payload = {
            "symbol": symbol,
            "regime": {"bias": bias, "confidence": confidence},
        }
        if phase is not None:
            payload["regime"]["phase"] = phase
        if timestamp is not None:
            payload["timestamp"] = timestamp
        return payload

    @staticmethod
    def saty_regime(symbol="SPY", bias="BULLISH", confidence=85, event="ENTER_MARKUP"):
        return {
            "meta": {"engine": "SATY_PO", "engine_version": "1.0.0"},
            "instrument": {"symbol": symbol, "exchange": "AMEX", "current_price": 585.2},
            "event": {"name": event},
            "confidence": {"confidence_score": confidence},
            "regime_context": {"local_bias": bias, "volatility": "normal"},
        }

    @staticmethod
    def options_signal(symbol="SPY", direction="LONG", ai_score=9.5, quality="EXTREME",
                       rr_t1=3.0, timestamp=None):
        payload = {
            "symbol": symbol,
            "signal": {"type": direction, "ai_score": ai_score, "quality": quality},
            "risk": {"rr_ratio_t1": rr_t1, "rr_ratio_t2": rr_t1 * 1.5},
        }
        if timestamp is not None:
            payload["timestamp"] = timestamp
        return payload

    @staticmethod
    def chart_alert(symbol="SPY", direction="LONG", timeframe="15", price=585.0):
        return {
            "signal": {"type": direction, "timeframe": timeframe, "quality": "HIGH"},
            "instrument": {"ticker": symbol, "exchange": "NYSE", "current_price": price},
            "components": ["ema_cross", "volume_spike"],
        }

    @staticmethod
    def trend(symbol="SPY", bias="bullish", timeframes=None):
        keys = timeframes or ("tf3min", "tf5min", "tf15min", "tf30min", "tf60min", "tf240min")
        return {
            "ticker": symbol,
            "timeframes": {key: {"direction": bias} for key in keys},
        }

    @staticmethod
    def structure(symbol="SPY", valid=True, liquidity_ok=True, quality="A"):
        return {
            "symbol": symbol,
            "setup_valid": valid,
            "liquidity_ok": liquidity_ok,
            "quality": quality,
        }


@pytest.fixture
def payloads():
    return PayloadFactory()


# ============================================================================
# Context & Metrics Factories
# ============================================================================

ABSENT = object()


def build_context(
    symbol: str = "SPY",
    regime=ABSENT,
    expert=ABSENT,
    alignment=ABSENT,
    structure=ABSENT,
    received_at: float = WEDNESDAY_NOON,
) -> AggregatedContext:
    """Scenario A context by default; pass None to make a section absent."""
    if regime is ABSENT:
        regime = RegimeSection(bias=Bias.BULLISH, phase_confidence=90.0)
    if expert is ABSENT:
        expert = ExpertSection(
            direction=Direction.LONG,
            ai_score=9.5,
            quality=QualityTier.EXTREME,
            rr_ratio_t1=3.0,
        )
    if alignment is ABSENT:
        alignment = AlignmentSection(
            tf_states={
                "tf5min": Bias.BULLISH,
                "tf15min": Bias.BULLISH,
                "tf30min": Bias.BULLISH,
                "tf60min": Bias.BULLISH,
                "tf240min": Bias.BULLISH,
            },
            bullish_pct=100.0,
            bearish_pct=0.0,
        )
    if structure is ABSENT:
        structure = StructureSection(valid_setup=True, execution_quality=ExecutionGrade.A)

    return AggregatedContext(
        instrument=Instrument(symbol=symbol, exchange="NYSE", price=585.0),
        regime=regime,
        expert=expert,
        alignment=alignment,
        structure=structure,
        meta=ContextMeta(received_at=received_at, completeness=1.0),
    )


def build_metrics(
    spread_bps: float = 3.0,
    depth_score: float = 85.0,
    atr14: float = 1.2,
    trend_slope: float = 0.0,
    volume_ratio: float = 1.0,
) -> MarketMetrics:
    """Fully live metrics (Scenario A market conditions by default)."""
    return MarketMetrics(
        derivatives=DerivativesMetrics(
            put_call_ratio=0.9,
            iv_percentile=45.0,
            gamma_bias="NEUTRAL",
            option_volume=120000.0,
            max_pain=580.0,
        ),
        liquidity=LiquidityMetrics(
            spread_bps=spread_bps,
            depth_score=depth_score,
            trade_velocity="FAST",
            bid_size=800.0,
            ask_size=700.0,
        ),
        statistics=StatisticsMetrics(
            atr14=atr14,
            rv20=18.0,
            trend_slope=trend_slope,
            rsi=55.0,
            volume=1_000_000.0,
            volume_ratio=volume_ratio,
        ),
        completeness=1.0,
        timestamp=WEDNESDAY_NOON,
    )


@pytest.fixture
def make_context():
    return build_context


@pytest.fixture
def make_metrics():
    return build_metrics


# ============================================================================
# Fake Providers
# ============================================================================

class FakeProvider(MetricsProvider):
    """Serves fixed sections after an optional delay, counting calls."""

    name = "fake"

    def __init__(self, metrics: Optional[MarketMetrics] = None, delay: float = 0.0,
                 timeout_seconds: float = 1.0, cache_ttl_seconds: float = 0.0, name: str = "fake"):
        super().__init__(timeout_seconds=timeout_seconds, cache_ttl_seconds=cache_ttl_seconds)
        self.name = name
        self.metrics = metrics or build_metrics()
        self.delay = delay
        self.calls = 0
        self.cancelled = 0
        self.closed = False

    async def _serve(self, value):
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return value

    async def fetch_options(self, symbol):
        return await self._serve(self.metrics.derivatives)

    async def fetch_liquidity(self, symbol):
        return await self._serve(self.metrics.liquidity)

    async def fetch_stats(self, symbol):
        return await self._serve(self.metrics.statistics)

    async def close(self):
        self.closed = True


class FailingProvider(MetricsProvider):
    """Raises the given error type on every call."""

    def __init__(self, error_type: ProviderErrorType = ProviderErrorType.API_ERROR, name: str = "broken"):
        super().__init__(timeout_seconds=1.0)
        self.name = name
        self.error_type = error_type

    async def _fail(self):
        raise ProviderFailure(self.name, self.error_type, "simulated failure", status_code=503)

    async def fetch_options(self, symbol):
        await self._fail()

    async def fetch_liquidity(self, symbol):
        await self._fail()

    async def fetch_stats(self, symbol):
        await self._fail()
