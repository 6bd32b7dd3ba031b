"""
Unit tests for FieldNormalizer.

Tests:
- Canonical fragments for every source shape
- Fallback inference (quality from score, score from tier, phase from event)
- Clamping of out-of-range scores
- Timestamp parsing and receipt-time default
- Future timestamps beyond the skew tolerance fall back to receipt time
- Non-finite numbers count as missing
- NormalizationFailure lists every missing mandatory field
"""

from datetime import datetime, timezone

import pytest

from signal_engine.context.aggregator import ContextAggregator
from signal_engine.context.models import (
    AlignmentSection,
    ExpertSection,
    RegimeSection,
    StructureSection,
)
from signal_engine.context.normalizer import (
    FieldNormalizer,
    infer_grade,
    infer_quality,
    parse_timestamp,
)
from signal_engine.core.errors import NormalizationFailure
from signal_engine.core.types import (
    Bias,
    Direction,
    ExecutionGrade,
    QualityTier,
    SourceName,
)


@pytest.fixture
def normalizer(clock):
    return FieldNormalizer(clock=clock)


# ============================================================================
# Regime
# ============================================================================

def test_regime_block(normalizer, payloads, clock):
    fragment = normalizer.normalize(payloads.regime(confidence=72.5), SourceName.REGIME)

    assert fragment.source is SourceName.REGIME
    assert fragment.symbol == "SPY"
    assert fragment.timestamp == clock.now
    assert isinstance(fragment.section, RegimeSection)
    assert fragment.section.bias is Bias.BULLISH
    assert fragment.section.phase_confidence == 72.5


def test_saty_regime_infers_phase_from_event(normalizer, payloads):
    fragment = normalizer.normalize(payloads.saty_regime(), SourceName.REGIME)

    section = fragment.section
    assert section.phase == 2
    assert section.phase_name == "MARKUP"
    assert section.volatility == "NORMAL"
    assert section.phase_confidence == 85
    assert fragment.instrument.exchange == "AMEX"
    assert fragment.instrument.price == 585.2


def test_regime_confidence_is_clamped(normalizer, payloads):
    fragment = normalizer.normalize(payloads.regime(confidence=140), SourceName.REGIME)

    assert fragment.section.phase_confidence == 100.0


def test_regime_missing_bias_defaults_neutral(normalizer):
    fragment = normalizer.normalize(
        {"symbol": "qqq", "regime": {"confidence": "64"}}, SourceName.REGIME
    )

    assert fragment.symbol == "QQQ"
    assert fragment.section.bias is Bias.NEUTRAL
    assert fragment.section.phase_confidence == 64.0


def test_regime_phase_by_name(normalizer, payloads):
    fragment = normalizer.normalize(payloads.regime(phase="distribution"), SourceName.REGIME)

    assert fragment.section.phase == 3


def test_regime_without_confidence_fails(normalizer):
    with pytest.raises(NormalizationFailure) as exc_info:
        normalizer.normalize({"symbol": "SPY", "regime": {"bias": "BULLISH"}}, SourceName.REGIME)

    assert exc_info.value.missing_fields == ("phase confidence",)


def test_infinite_phase_is_ignored(normalizer, payloads):
    fragment = normalizer.normalize(payloads.regime(phase=float("inf")), SourceName.REGIME)

    assert fragment.section.phase is None
    assert fragment.section.phase_confidence == 90.0


def test_infinite_confidence_is_missing(normalizer, payloads):
    with pytest.raises(NormalizationFailure) as exc_info:
        normalizer.normalize(payloads.regime(confidence=float("inf")), SourceName.REGIME)

    assert exc_info.value.missing_fields == ("phase confidence",)


# ============================================================================
# Expert Signal
# ============================================================================

def test_options_signal(normalizer, payloads):
    fragment = normalizer.normalize(payloads.options_signal(), SourceName.EXPERT_SIGNAL)

    section = fragment.section
    assert isinstance(section, ExpertSection)
    assert section.direction is Direction.LONG
    assert section.ai_score == 9.5
    assert section.quality is QualityTier.EXTREME
    assert section.rr_ratio_t1 == 3.0
    assert section.rr_ratio_t2 == 4.5


def test_chart_alert_infers_score_from_tier(normalizer, payloads):
    fragment = normalizer.normalize(payloads.chart_alert(direction="sell"), SourceName.EXPERT_SIGNAL)

    section = fragment.section
    assert section.direction is Direction.SHORT
    assert section.quality is QualityTier.HIGH
    assert section.ai_score == 8.0
    assert section.timeframe == "15"
    assert section.components == ("ema_cross", "volume_spike")
    assert section.rr_ratio_t1 is None
    assert fragment.symbol == "SPY"
    assert fragment.instrument.price == 585.0


def test_quality_inferred_from_score(normalizer):
    payload = {"symbol": "SPY", "signal": {"type": "LONG", "ai_score": 7.8}}

    fragment = normalizer.normalize(payload, SourceName.EXPERT_SIGNAL)

    assert fragment.section.quality is QualityTier.HIGH


def test_ai_score_clamped_to_scale(normalizer):
    payload = {"symbol": "SPY", "signal": {"type": "LONG", "ai_score": 14, "quality": "EXTREME"}}

    fragment = normalizer.normalize(payload, SourceName.EXPERT_SIGNAL)

    assert fragment.section.ai_score == 10.5


def test_negative_risk_ratio_floored(normalizer):
    payload = {"symbol": "SPY", "signal": {"type": "LONG"}, "risk": {"rr_ratio_t1": -2}}

    fragment = normalizer.normalize(payload, SourceName.EXPERT_SIGNAL)

    assert fragment.section.rr_ratio_t1 == 0.0
    assert fragment.section.quality is QualityTier.MEDIUM


def test_expert_missing_symbol_and_direction_lists_both(normalizer):
    with pytest.raises(NormalizationFailure) as exc_info:
        normalizer.normalize({"signal": {"ai_score": 9.0, "quality": "HIGH"}}, SourceName.EXPERT_SIGNAL)

    assert set(exc_info.value.missing_fields) == {"symbol", "direction"}
    assert "direction" in str(exc_info.value)


def test_unknown_direction_is_missing(normalizer):
    with pytest.raises(NormalizationFailure) as exc_info:
        normalizer.normalize({"symbol": "SPY", "signal": {"type": "SIDEWAYS"}}, SourceName.EXPERT_SIGNAL)

    assert exc_info.value.missing_fields == ("direction",)


# ============================================================================
# Trend Alignment
# ============================================================================

def test_trend_alignment_percentages(normalizer):
    payload = {
        "ticker": "SPY",
        "timeframes": {
            "tf3min": {"direction": "bullish"},
            "tf5min": {"direction": "bullish"},
            "tf15min": {"direction": "bearish"},
            "tf60min": "neutral",
        },
    }

    fragment = normalizer.normalize(payload, SourceName.TREND_ALIGNMENT)

    section = fragment.section
    assert isinstance(section, AlignmentSection)
    assert section.tf_states["tf60min"] is Bias.NEUTRAL
    assert section.bullish_pct == 50.0
    assert section.bearish_pct == 25.0
    assert section.aligned_count(Direction.LONG) == 2
    assert section.pct_for(Direction.SHORT) == 25.0


def test_trend_without_readable_states_fails(normalizer):
    payload = {"ticker": "SPY", "timeframes": {"tf3min": {}, "tf5min": {"direction": "?"}}}

    with pytest.raises(NormalizationFailure) as exc_info:
        normalizer.normalize(payload, SourceName.TREND_ALIGNMENT)

    assert exc_info.value.missing_fields == ("timeframe states",)


# ============================================================================
# Structure Check
# ============================================================================

def test_structure_check(normalizer, payloads):
    fragment = normalizer.normalize(payloads.structure(quality="b"), SourceName.STRUCTURE_CHECK)

    section = fragment.section
    assert isinstance(section, StructureSection)
    assert section.valid_setup is True
    assert section.execution_quality is ExecutionGrade.B


def test_structure_string_flags_and_score_grade(normalizer):
    payload = {"symbol": "SPY", "setup_valid": "false", "liquidity_ok": "no", "score": 85}

    section = normalizer.normalize(payload, SourceName.STRUCTURE_CHECK).section

    assert section.valid_setup is False
    assert section.liquidity_ok is False
    assert section.execution_quality is ExecutionGrade.A


def test_structure_unreadable_flag_fails(normalizer):
    with pytest.raises(NormalizationFailure) as exc_info:
        normalizer.normalize({"symbol": "SPY", "setup_valid": "maybe", "liquidity_ok": True},
                             SourceName.STRUCTURE_CHECK)

    assert exc_info.value.missing_fields == ("setup_valid",)


# ============================================================================
# Helpers
# ============================================================================

def test_payload_timestamp_is_used(normalizer, payloads):
    fragment = normalizer.normalize(payloads.regime(timestamp=1736960400), SourceName.REGIME)

    assert fragment.timestamp == 1736960400.0


def test_parse_timestamp_formats():
    expected = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc).timestamp()

    assert parse_timestamp(expected) == expected
    assert parse_timestamp(expected * 1000) == expected
    assert parse_timestamp("2025-01-15T17:00:00Z") == expected
    assert parse_timestamp("2025-01-15T12:00:00-05:00") == expected
    assert parse_timestamp("not a time") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp(float("inf")) is None
    assert parse_timestamp("nan") is None


@pytest.mark.parametrize("score,tier", [
    (10.5, QualityTier.EXTREME),
    (9.0, QualityTier.EXTREME),
    (8.99, QualityTier.HIGH),
    (7.5, QualityTier.HIGH),
    (5.0, QualityTier.MEDIUM),
    (4.99, QualityTier.LOW),
    (0.0, QualityTier.LOW),
])
def test_infer_quality_breakpoints(score, tier):
    assert infer_quality(score) is tier


@pytest.mark.parametrize("score,grade", [(95, ExecutionGrade.A), (60, ExecutionGrade.B), (59.9, ExecutionGrade.C)])
def test_infer_grade_breakpoints(score, grade):
    assert infer_grade(score) is grade


def test_non_dict_payload_fails(normalizer):
    with pytest.raises(NormalizationFailure):
        normalizer.normalize(["SPY"], SourceName.REGIME)


# ============================================================================
# Clock Skew
# ============================================================================

def test_future_timestamp_falls_back_to_receipt_time(normalizer, payloads, clock):
    fragment = normalizer.normalize(payloads.regime(timestamp=clock.now + 86400), SourceName.REGIME)

    assert fragment.timestamp == clock.now


def test_timestamp_within_skew_tolerance_is_kept(normalizer, payloads, clock):
    fragment = normalizer.normalize(payloads.regime(timestamp=clock.now + 30), SourceName.REGIME)

    assert fragment.timestamp == clock.now + 30


def test_skew_tolerance_is_configurable(payloads, clock):
    strict = FieldNormalizer(clock=clock, max_clock_skew_seconds=0.0)

    fragment = strict.normalize(payloads.regime(timestamp=clock.now + 30), SourceName.REGIME)

    assert fragment.timestamp == clock.now


@pytest.mark.asyncio
async def test_future_dated_fragment_does_not_pin_section(normalizer, payloads, clock):
    aggregator = ContextAggregator(clock=clock)
    await aggregator.merge(
        normalizer.normalize(payloads.options_signal(ai_score=2.0, timestamp=clock.now + 86400),
                             SourceName.EXPERT_SIGNAL)
    )

    clock.advance(60)
    await aggregator.merge(
        normalizer.normalize(payloads.options_signal(ai_score=9.5), SourceName.EXPERT_SIGNAL)
    )
    snapshot = await aggregator.snapshot("SPY")

    assert snapshot.expert.ai_score == 9.5
