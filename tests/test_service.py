"""
Integration tests for DecisionService wired by the composition root.

Tests:
- Ingest lifecycle: PENDING until required sources arrive, then SNAPSHOT_READY
- Scenario A end to end from raw payloads
- Scenario D with every provider failing
- Sink hand-off, including failing sinks
- Rejections surface as typed errors
- Composition root wires quotas, the sweeper and system logging settings
"""

import asyncio
import io
import json
import logging

import pytest

from signal_engine.config.settings import AppConfig, MarketFeedsConfig
from signal_engine.context.models import ContextState
from signal_engine.core import bootstrap
from signal_engine.core.bootstrap import build_decision_service, build_providers, build_rate_limiter
from signal_engine.core.errors import ClassificationFailure, NormalizationFailure, UnknownSymbolError
from signal_engine.core.types import Action, MetricSection, ProviderErrorType
from signal_engine.market_data.providers.http import AlpacaProvider, TradierProvider, TwelveDataProvider
from signal_engine.service import IngestStatus, JSONLinesSink, LoggingDecisionSink
from signal_engine.utils.metrics import MetricsCollector

from conftest import FailingProvider, FakeProvider


def all_sections(provider):
    return {section: provider for section in MetricSection}


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def service(clock, metrics):
    return build_decision_service(
        config=AppConfig(),
        providers=all_sections(FakeProvider()),
        sinks=[],
        metrics=metrics,
        clock=clock,
    )


async def feed_context(service, payloads):
    """Regime, trend and structure for SPY (everything but the expert signal)."""
    results = []
    for payload in (payloads.regime(), payloads.trend(), payloads.structure()):
        results.append(await service.ingest(payload))
    return results


# ============================================================================
# Ingest Lifecycle
# ============================================================================

@pytest.mark.asyncio
async def test_optional_sources_stay_pending(service, payloads):
    results = await feed_context(service, payloads)

    assert [r.status for r in results] == [IngestStatus.PENDING] * 3
    assert all(r.snapshot is None for r in results)
    assert results[-1].state is ContextState.PARTIAL


@pytest.mark.asyncio
async def test_expert_signal_completes_context(service, payloads):
    await feed_context(service, payloads)

    result = await service.ingest(payloads.options_signal())

    assert result.ready
    assert result.state is ContextState.COMPLETE
    assert result.snapshot.meta.completeness == 1.0
    assert result.snapshot.regime is not None
    assert result.snapshot.structure is not None


@pytest.mark.asyncio
async def test_unrecognized_payload_rejected(service, metrics):
    with pytest.raises(ClassificationFailure):
        await service.ingest({"foo": 1})

    assert metrics.counter("ingest.rejected", tags={"reason": "classification"}) == 1
    assert service.aggregator.symbols() == []


@pytest.mark.asyncio
async def test_incomplete_payload_rejected(service, metrics):
    with pytest.raises(NormalizationFailure) as exc_info:
        await service.ingest({"signal": {"ai_score": 9.0, "quality": "HIGH"}})

    assert set(exc_info.value.missing_fields) == {"symbol", "direction"}
    assert metrics.counter("ingest.rejected", tags={"reason": "normalization"}) == 1


@pytest.mark.asyncio
async def test_context_status(service, payloads):
    await service.ingest(payloads.regime())

    status = service.get_context_status("spy")

    assert status["state"] == "PARTIAL"
    assert status["sources"]["REGIME"]["available"] is True
    assert status["sources"]["EXPERT_SIGNAL"]["required"] is True


# ============================================================================
# Decisions
# ============================================================================

@pytest.mark.asyncio
async def test_scenario_a_from_raw_payloads(service, payloads):
    await feed_context(service, payloads)

    result, packet = await service.process(payloads.options_signal())

    assert result.ready
    assert packet.action is Action.EXECUTE
    assert packet.confidence_score == 94.7
    assert packet.size_multiplier == 1.96
    assert packet.symbol == "SPY"


@pytest.mark.asyncio
async def test_process_returns_no_packet_while_pending(service, payloads):
    result, packet = await service.process(payloads.regime())

    assert result.status is IngestStatus.PENDING
    assert packet is None


@pytest.mark.asyncio
async def test_decide_on_demand_by_symbol(service, payloads):
    await service.ingest(payloads.options_signal())

    packet = await service.decide("spy")

    # no structure check yet
    assert packet.action is Action.SKIP
    assert "structural: CRITICAL: no structural data received" in packet.reasons


@pytest.mark.asyncio
async def test_decide_snapshot_skips_ingest(service, make_context):
    packet = await service.decide_snapshot(make_context())

    assert packet.action is Action.EXECUTE
    assert service.aggregator.symbols() == []


@pytest.mark.asyncio
async def test_decide_unknown_symbol(service):
    with pytest.raises(UnknownSymbolError):
        await service.decide("QQQ")


@pytest.mark.asyncio
async def test_scenario_d_providers_down(clock, payloads):
    service = build_decision_service(
        config=AppConfig(),
        providers=all_sections(FailingProvider(ProviderErrorType.TIMEOUT)),
        sinks=[],
        clock=clock,
    )
    await feed_context(service, payloads)

    _, packet = await service.process(payloads.options_signal())

    assert packet.action is Action.SKIP
    assert packet.market.completeness == 0.0
    assert len(packet.market.errors) == 3
    assert packet.confidence.penalty == 15.0
    assert "market: Spread 15.0bps exceeds max 12.0bps" in packet.reasons


# ============================================================================
# Sinks
# ============================================================================

@pytest.mark.asyncio
async def test_sinks_receive_packets(service, payloads):
    received = []
    awaited = []

    async def record_async(packet):
        awaited.append(packet)

    service.on_decision(received.append)
    service.on_decision(record_async)
    await feed_context(service, payloads)

    _, packet = await service.process(payloads.options_signal())
    await service.drain()

    assert received == [packet]
    assert awaited == [packet]


@pytest.mark.asyncio
async def test_failing_sink_does_not_break_decision(service, payloads, metrics):
    received = []

    def explode(packet):
        raise RuntimeError("sink down")

    service.on_decision(explode)
    service.on_decision(received.append)
    await feed_context(service, payloads)

    _, packet = await service.process(payloads.options_signal())
    await service.drain()

    assert packet.action is Action.EXECUTE
    assert len(received) == 1
    assert metrics.counter("sink.failures", tags={"sink": "explode"}) == 1


@pytest.mark.asyncio
async def test_jsonl_sink_writes_one_line_per_decision(service, payloads):
    stream = io.StringIO()
    service.add_sink(JSONLinesSink(stream))
    await feed_context(service, payloads)

    await service.process(payloads.options_signal())
    await service.decide("SPY")
    await service.drain()

    lines = stream.getvalue().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["action"] == "EXECUTE"


@pytest.mark.asyncio
async def test_logging_sink_writes_audit_line(service, payloads, caplog):
    service.add_sink(LoggingDecisionSink())
    await feed_context(service, payloads)

    with caplog.at_level(logging.INFO, logger="signal_engine.decisions"):
        await service.process(payloads.options_signal())
        await service.drain()

    records = [r for r in caplog.records if r.name == "signal_engine.decisions"]
    assert len(records) == 1
    assert records[0].action == "EXECUTE"
    assert "Decision EXECUTE for SPY" in records[0].getMessage()


# ============================================================================
# Stats & Wiring
# ============================================================================

@pytest.mark.asyncio
async def test_service_stats(service, payloads):
    await feed_context(service, payloads)
    await service.process(payloads.options_signal())
    await service.drain()

    stats = service.get_stats()

    assert stats["engine"]["decisions_made"] == 1
    assert stats["symbols"] == ["SPY"]
    assert stats["pending_handoffs"] == 0
    assert stats["latency"]["count"] == 1
    assert stats["rate_limits"]["twelvedata"] == {"minute": 8, "day": 800, "refused": 0}
    assert stats["metrics"]["counters"]["decisions[action=EXECUTE]"] == 1
    assert stats["metrics"]["counters"]["ingest.accepted[source=REGIME]"] == 1


@pytest.mark.asyncio
async def test_close_drains_and_closes_providers(clock):
    provider = FakeProvider()
    service = build_decision_service(
        config=AppConfig(), providers=all_sections(provider), sinks=[], clock=clock
    )

    await service.close()

    assert provider.closed


def test_build_providers_from_feed_config():
    providers = build_providers(MarketFeedsConfig())

    assert isinstance(providers[MetricSection.DERIVATIVES], TradierProvider)
    assert isinstance(providers[MetricSection.STATISTICS], TwelveDataProvider)
    assert isinstance(providers[MetricSection.LIQUIDITY], AlpacaProvider)
    assert providers[MetricSection.LIQUIDITY].cache_ttl_seconds == 5.0


def test_disabled_feed_leaves_section_unserved():
    defaults = MarketFeedsConfig().feeds
    feeds = MarketFeedsConfig(feeds={
        **defaults,
        "alpaca": defaults["alpaca"].model_copy(update={"enabled": False}),
    })

    providers = build_providers(feeds)

    assert MetricSection.LIQUIDITY not in providers
    assert len(providers) == 2


def test_rate_limiter_tracks_enabled_feeds():
    defaults = MarketFeedsConfig().feeds
    feeds = MarketFeedsConfig(feeds={
        **defaults,
        "alpaca": defaults["alpaca"].model_copy(update={"enabled": False}),
    })

    tracker = build_rate_limiter(feeds)

    assert tracker.remaining("tradier") == {"minute": 60, "day": 10000}
    assert tracker.remaining("twelvedata") == {"minute": 8, "day": 800}
    assert tracker.remaining("alpaca") is None


def test_fetcher_receives_retry_settings(clock):
    config = AppConfig(market_feeds={"max_retries": 3, "retry_delay_seconds": 0.2})

    service = build_decision_service(config=config, providers=all_sections(FakeProvider()), sinks=[], clock=clock)

    assert service.fetcher.max_retries == 3
    assert service.fetcher.retry_delay_seconds == 0.2


@pytest.mark.asyncio
async def test_future_dated_payload_does_not_block_later_updates(service, payloads, clock):
    await service.ingest(payloads.options_signal(ai_score=2.0, timestamp=clock.now + 86400))
    clock.advance(60)

    result = await service.ingest(payloads.options_signal(ai_score=9.5))

    assert result.ready
    assert result.snapshot.expert.ai_score == 9.5


# ============================================================================
# Sweeper & Logging Wiring
# ============================================================================

def test_no_sweeper_by_default(service):
    assert service.sweeper is None


@pytest.mark.asyncio
async def test_sweeper_wired_to_aggregator_and_cache(clock):
    service = build_decision_service(
        config=AppConfig(),
        providers=all_sections(FakeProvider()),
        sinks=[],
        clock=clock,
        sweep_interval_seconds=0.01,
    )

    assert service.sweeper.aggregator is service.aggregator
    assert service.sweeper.cache is service.fetcher.cache

    await service.start()
    await asyncio.sleep(0.05)
    assert service.sweeper.is_running
    assert service.sweeper.sweeps >= 1

    await service.close()
    assert not service.sweeper.is_running


def test_configure_logs_applies_system_settings(clock, monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(bootstrap, "setup_logging", lambda **kwargs: calls.append(kwargs))
    log_file = str(tmp_path / "engine.log")
    config = AppConfig(system={"log_level": "DEBUG", "json_logs": True, "log_file": log_file})

    build_decision_service(
        config=config, providers=all_sections(FakeProvider()), sinks=[], clock=clock, configure_logs=True
    )

    assert calls == [{"log_level": "DEBUG", "log_file": log_file, "json_format": True, "stream": None}]


def test_configure_logging_explicit_values_win(monkeypatch):
    calls = []
    monkeypatch.setattr(bootstrap, "setup_logging", lambda **kwargs: calls.append(kwargs))

    bootstrap.configure_logging(AppConfig().system, log_level="ERROR", json_logs=True)

    assert calls[0]["log_level"] == "ERROR"
    assert calls[0]["json_format"] is True
    assert calls[0]["log_file"] is None


def test_configure_logging_defaults_from_system_config(monkeypatch):
    calls = []
    monkeypatch.setattr(bootstrap, "setup_logging", lambda **kwargs: calls.append(kwargs))

    bootstrap.configure_logging(AppConfig().system)

    assert calls[0]["log_level"] == "INFO"
    assert calls[0]["json_format"] is False
