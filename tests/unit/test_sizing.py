"""
Unit tests for the position size multiplier.

Tests:
- Each factor function against its table
- Phase boost only applies when the regime agrees
- Product clamping at both bounds
- Scenario A multiplier
"""

import pytest

from signal_engine.config.settings import HTFAlignment, Session, SizingConfig
from signal_engine.core.types import Direction
from signal_engine.decision.factors import ScoringFactors
from signal_engine.decision.sizing import (
    PositionSizer,
    confluence_factor,
    day_factor,
    htf_factor,
    phase_boost,
    rr_factor,
    session_factor,
    trend_factor,
    volume_factor,
)


@pytest.fixture
def config():
    return SizingConfig()


def scoring(**overrides) -> ScoringFactors:
    """Scenario A factors unless overridden."""
    values = dict(
        direction=Direction.LONG,
        quality_multiplier=1.3,
        expert_strength=100.0,
        alignment_pct=100.0,
        aligned_count=5,
        htf_alignment=HTFAlignment.PERFECT,
        trend_strength=0.0,
        volume_ratio=1.0,
        rr_ratio=3.0,
        regime_confidence=90.0,
        regime_agrees=True,
        session=Session.MIDDAY,
        day="WED",
    )
    values.update(overrides)
    return ScoringFactors(**values)


# ============================================================================
# Factor Functions
# ============================================================================

@pytest.mark.parametrize("count,factor", [(6, 1.25), (5, 1.25), (4, 1.15), (3, 1.0), (2, 0.9), (1, 0.75), (0, 0.75), (None, 1.0)])
def test_confluence_factor(config, count, factor):
    assert confluence_factor(count, config) == factor


@pytest.mark.parametrize("alignment,factor", [
    (HTFAlignment.PERFECT, 1.3),
    (HTFAlignment.GOOD, 1.15),
    (HTFAlignment.WEAK, 0.85),
    (HTFAlignment.COUNTER, 0.5),
    (None, 1.0),
])
def test_htf_factor(config, alignment, factor):
    assert htf_factor(alignment, config) == factor


@pytest.mark.parametrize("rr,factor", [(5.0, 1.2), (4.2, 1.15), (3.0, 1.1), (2.0, 1.0), (1.6, 0.85), (1.0, 0.5), (None, 1.0)])
def test_rr_factor(config, rr, factor):
    assert rr_factor(rr, config) == factor


@pytest.mark.parametrize("ratio,factor", [(2.0, 1.1), (1.5, 1.1), (1.0, 1.0), (0.5, 0.7)])
def test_volume_factor(config, ratio, factor):
    assert volume_factor(ratio, config) == factor


@pytest.mark.parametrize("strength,factor", [(85.0, 1.2), (70.0, 1.0), (10.0, 0.8)])
def test_trend_factor(config, strength, factor):
    assert trend_factor(strength, config) == factor


def test_session_and_day_factors(config):
    assert session_factor(Session.OPEN, config) == 0.9
    assert session_factor(Session.MIDDAY, config) == 1.0
    assert session_factor(Session.WEEKEND, config) == 0.5
    assert day_factor("TUE", config) == 1.1
    assert day_factor("FRI", config) == 0.85
    assert day_factor("SAT", config) == 1.0


@pytest.mark.parametrize("confidence,agrees,boost", [
    (92.0, True, 0.10),
    (85.0, True, 0.05),
    (70.0, True, 0.0),
    (92.0, False, 0.0),
    (None, True, 0.0),
])
def test_phase_boost(config, confidence, agrees, boost):
    assert phase_boost(confidence, agrees, config) == boost


def test_tier_tables_sorted_regardless_of_input_order():
    config = SizingConfig(rr_tiers=[{"min": 0.0, "factor": 0.5}, {"min": 3.0, "factor": 1.5}])

    assert [t.min for t in config.rr_tiers] == [3.0, 0.0]
    assert rr_factor(4.0, config) == 1.5


# ============================================================================
# Position Sizer
# ============================================================================

def test_scenario_a_multiplier(config):
    sizing = PositionSizer(config).calculate(scoring())

    assert sizing.factors == {
        "quality": 1.3,
        "confluence": 1.25,
        "htf": 1.3,
        "rr": 1.1,
        "volume": 1.0,
        "trend": 0.8,
        "session": 1.0,
        "day": 1.0,
    }
    assert sizing.phase_boost == 0.10
    assert sizing.raw == pytest.approx(1.959, abs=1e-4)
    assert sizing.final == 1.96
    assert not sizing.clamped


def test_multiplier_clamped_to_max(config):
    sizing = PositionSizer(config).calculate(scoring(
        rr_ratio=5.0,
        volume_ratio=2.0,
        trend_strength=85.0,
        day="TUE",
    ))

    assert sizing.raw == pytest.approx(3.7808, abs=1e-3)
    assert sizing.final == 3.0
    assert sizing.clamped


def test_multiplier_clamped_to_min(config):
    sizing = PositionSizer(config).calculate(scoring(
        quality_multiplier=0.85,
        aligned_count=0,
        htf_alignment=HTFAlignment.COUNTER,
        rr_ratio=1.0,
        volume_ratio=0.5,
        trend_strength=10.0,
        session=Session.PREMARKET,
        day="FRI",
        regime_agrees=False,
    ))

    assert sizing.phase_boost == 0.0
    assert sizing.raw < 0.5
    assert sizing.final == 0.5
    assert sizing.clamped


def test_neutral_factors_without_optional_sections(config):
    sizing = PositionSizer(config).calculate(scoring(
        quality_multiplier=1.0,
        aligned_count=None,
        alignment_pct=None,
        htf_alignment=None,
        rr_ratio=None,
        trend_strength=70.0,
        regime_confidence=None,
        regime_agrees=False,
    ))

    assert sizing.final == 1.0
    assert sizing.phase_boost == 0.0


@pytest.mark.parametrize("overrides", [
    {},
    {"quality_multiplier": 0.85, "session": Session.AFTERHOURS},
    {"rr_ratio": 10.0, "volume_ratio": 5.0, "trend_strength": 100.0, "day": "TUE"},
])
def test_multiplier_always_within_bounds(config, overrides):
    final = PositionSizer(config).calculate(scoring(**overrides)).final

    assert config.min_multiplier <= final <= config.max_multiplier
