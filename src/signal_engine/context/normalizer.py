"""
Field normalization from raw producer payloads to ContextFragments.

Each source has a minimal mandatory field set:

- REGIME:          symbol, phase confidence
- EXPERT_SIGNAL:   symbol, direction
- TREND_ALIGNMENT: symbol, at least one readable timeframe state
- STRUCTURE_CHECK: symbol, setup_valid

Everything else is inferred or defaulted: numeric scores are clamped into
range, qualitative tiers are derived from numeric scores, and a missing
timestamp (or one too far ahead of the receipt time) becomes the receipt
time. Non-finite numbers count as missing. If a mandatory field cannot be
resolved a NormalizationFailure names it; nothing is guessed.
"""

import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.errors import NormalizationFailure
from ..core.types import Bias, Direction, ExecutionGrade, QualityTier, SourceName
from ..utils.math_utils import clamp
from .models import (
    AlignmentSection,
    ContextFragment,
    ExpertSection,
    Instrument,
    PHASE_NAMES,
    RegimeSection,
    StructureSection,
)

logger = logging.getLogger(__name__)


TIMEFRAME_KEYS = ("tf3min", "tf5min", "tf15min", "tf30min", "tf60min", "tf240min")

SYMBOL_PATHS = (
    ("instrument", "ticker"),
    ("instrument", "symbol"),
    ("symbol",),
    ("ticker",),
    ("data", "symbol"),
)

TIMESTAMP_PATHS = (
    ("timestamp",),
    ("time",),
    ("meta", "generated_at"),
    ("signal", "timestamp"),
    ("generated_at",),
)

DIRECTION_ALIASES = {
    "LONG": Direction.LONG,
    "BUY": Direction.LONG,
    "BULL": Direction.LONG,
    "BULLISH": Direction.LONG,
    "CALL": Direction.LONG,
    "SHORT": Direction.SHORT,
    "SELL": Direction.SHORT,
    "BEAR": Direction.SHORT,
    "BEARISH": Direction.SHORT,
    "PUT": Direction.SHORT,
}

BIAS_ALIASES = {
    "BULLISH": Bias.BULLISH,
    "BULL": Bias.BULLISH,
    "LONG": Bias.BULLISH,
    "UP": Bias.BULLISH,
    "UPSIDE_POTENTIAL": Bias.BULLISH,
    "BEARISH": Bias.BEARISH,
    "BEAR": Bias.BEARISH,
    "SHORT": Bias.BEARISH,
    "DOWN": Bias.BEARISH,
    "DOWNSIDE_POTENTIAL": Bias.BEARISH,
    "NEUTRAL": Bias.NEUTRAL,
    "FLAT": Bias.NEUTRAL,
}

PHASE_NUMBERS = {name: number for number, name in PHASE_NAMES.items()}

# ai_score breakpoints, highest first
QUALITY_BREAKPOINTS = (
    (9.0, QualityTier.EXTREME),
    (7.5, QualityTier.HIGH),
    (5.0, QualityTier.MEDIUM),
)

# Representative ai_score when only the tier is known
TIER_AI_SCORES = {
    QualityTier.EXTREME: 9.5,
    QualityTier.HIGH: 8.0,
    QualityTier.MEDIUM: 6.0,
    QualityTier.LOW: 3.0,
}

AI_SCORE_MAX = 10.5


# ============================================================================
# Field Helpers
# ============================================================================

def _get(payload: Any, path: Tuple[str, ...]) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first(payload: Dict[str, Any], paths) -> Any:
    """First non-empty value among ``paths``."""
    for path in paths:
        value = _get(payload, path)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1", "y"):
            return True
        if lowered in ("false", "no", "0", "n"):
            return False
    return None


def _non_negative(value: Any) -> Optional[float]:
    number = _to_float(value)
    return None if number is None else max(0.0, number)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def parse_timestamp(value: Any) -> Optional[float]:
    """Epoch seconds from epoch seconds, epoch milliseconds or ISO-8601 text."""
    number = _to_float(value)
    if number is not None:
        return number / 1000.0 if number > 1e12 else number
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return None


def parse_direction(value: Any) -> Optional[Direction]:
    if not isinstance(value, str):
        return None
    return DIRECTION_ALIASES.get(value.strip().upper())


def parse_bias(value: Any) -> Optional[Bias]:
    if not isinstance(value, str):
        return None
    return BIAS_ALIASES.get(value.strip().upper())


def infer_quality(ai_score: float) -> QualityTier:
    for breakpoint, tier in QUALITY_BREAKPOINTS:
        if ai_score >= breakpoint:
            return tier
    return QualityTier.LOW


def infer_grade(score: float) -> ExecutionGrade:
    if score >= 80:
        return ExecutionGrade.A
    if score >= 60:
        return ExecutionGrade.B
    return ExecutionGrade.C


# ============================================================================
# Field Normalizer
# ============================================================================

class FieldNormalizer:
    """
    Maps raw payloads into canonical ContextFragments, one method per source.
    """

    def __init__(self, clock: Callable[[], float] = time.time, max_clock_skew_seconds: float = 60.0):
        self._clock = clock
        self.max_clock_skew_seconds = max_clock_skew_seconds
        self._handlers = {
            SourceName.REGIME: self._normalize_regime,
            SourceName.EXPERT_SIGNAL: self._normalize_expert,
            SourceName.TREND_ALIGNMENT: self._normalize_alignment,
            SourceName.STRUCTURE_CHECK: self._normalize_structure,
        }

    def normalize(self, payload: Dict[str, Any], source: SourceName) -> ContextFragment:
        """
        Normalize ``payload`` as coming from ``source``.

        Raises:
            NormalizationFailure: If mandatory fields cannot be resolved
        """
        if not isinstance(payload, dict):
            raise NormalizationFailure(source.value, ["payload"])

        handler = self._handlers.get(source)
        if handler is None:
            raise NormalizationFailure(source.value, ["source handler"])

        missing: List[str] = []
        symbol = _first(payload, SYMBOL_PATHS)
        if not isinstance(symbol, str) or not symbol.strip():
            missing.append("symbol")
            symbol = None

        section, section_missing = handler(payload)
        missing.extend(section_missing)
        if missing:
            raise NormalizationFailure(source.value, missing)

        instrument = Instrument(
            symbol=symbol.strip().upper(),
            exchange=_first(payload, (("instrument", "exchange"), ("exchange",))),
            price=_to_float(_first(payload, (
                ("instrument", "current_price"),
                ("instrument", "price"),
                ("price",),
                ("signal", "price"),
            ))),
        )

        received_at = self._clock()
        timestamp = parse_timestamp(_first(payload, TIMESTAMP_PATHS))
        if timestamp is None:
            timestamp = received_at
        elif timestamp > received_at + self.max_clock_skew_seconds:
            logger.warning(
                f"{source.value} timestamp for {instrument.symbol} is {timestamp - received_at:.0f}s "
                f"ahead of receipt time; using receipt time"
            )
            timestamp = received_at

        return ContextFragment(
            source=source,
            instrument=instrument,
            section=section,
            timestamp=timestamp,
        )

    # ------------------------------------------------------------------
    # Per-source mappings: return (section or None, missing field names)
    # ------------------------------------------------------------------

    def _normalize_regime(self, payload: Dict[str, Any]):
        confidence = _to_float(_first(payload, (
            ("confidence", "confidence_score"),
            ("regime", "confidence"),
            ("data", "confidence"),
            ("confidence",),
        )))
        if confidence is None:
            return None, ["phase confidence"]

        bias = parse_bias(_first(payload, (
            ("regime_context", "local_bias"),
            ("regime", "bias"),
            ("data", "bias"),
            ("bias",),
            ("event", "directional_implication"),
        ))) or Bias.NEUTRAL

        phase = self._parse_phase(_first(payload, (
            ("regime", "phase"),
            ("data", "phase"),
            ("phase",),
        )))
        if phase is None:
            phase = self._phase_from_event(_get(payload, ("event", "name")))

        volatility = _first(payload, (
            ("regime_context", "volatility"),
            ("regime", "volatility"),
            ("data", "volatility"),
        ))
        if isinstance(volatility, str):
            volatility = volatility.upper()
            if volatility not in ("LOW", "NORMAL", "HIGH"):
                volatility = "NORMAL"
        else:
            volatility = None

        return RegimeSection(
            bias=bias,
            phase_confidence=clamp(confidence, 0.0, 100.0),
            phase=phase,
            volatility=volatility,
        ), []

    @staticmethod
    def _parse_phase(value: Any) -> Optional[int]:
        if isinstance(value, dict):
            value = value.get("name", value.get("number"))
        number = _to_float(value)
        if number is not None:
            return int(number) if int(number) in PHASE_NAMES else None
        if isinstance(value, str):
            return PHASE_NUMBERS.get(value.strip().upper())
        return None

    @staticmethod
    def _phase_from_event(name: Any) -> Optional[int]:
        if not isinstance(name, str) or not name.upper().startswith("ENTER_"):
            return None
        return PHASE_NUMBERS.get(name.upper()[len("ENTER_"):])

    def _normalize_expert(self, payload: Dict[str, Any]):
        direction = parse_direction(_first(payload, (
            ("signal", "type"),
            ("signal", "direction"),
            ("direction",),
            ("side",),
        )))
        if direction is None:
            return None, ["direction"]

        ai_score = _to_float(_first(payload, (
            ("signal", "ai_score"),
            ("ai_score",),
            ("signal", "score"),
        )))
        quality_raw = _first(payload, (("signal", "quality"), ("quality",)))
        quality = None
        if isinstance(quality_raw, str):
            try:
                quality = QualityTier(quality_raw.strip().upper())
            except ValueError:
                logger.debug(f"Unknown quality tier {quality_raw!r}, inferring from score")

        if ai_score is None:
            ai_score = TIER_AI_SCORES[quality or QualityTier.MEDIUM]
        ai_score = clamp(ai_score, 0.0, AI_SCORE_MAX)
        if quality is None:
            quality = infer_quality(ai_score)

        components = _first(payload, (("components",), ("signal", "components")))
        if not isinstance(components, list):
            components = []

        return ExpertSection(
            direction=direction,
            ai_score=ai_score,
            quality=quality,
            rr_ratio_t1=_non_negative(_get(payload, ("risk", "rr_ratio_t1"))),
            rr_ratio_t2=_non_negative(_get(payload, ("risk", "rr_ratio_t2"))),
            timeframe=_optional_str(_get(payload, ("signal", "timeframe"))),
            components=tuple(str(c) for c in components),
        ), []

    def _normalize_alignment(self, payload: Dict[str, Any]):
        timeframes = payload.get("timeframes")
        if not isinstance(timeframes, dict):
            return None, ["timeframes"]

        states: Dict[str, Bias] = {}
        for key in TIMEFRAME_KEYS:
            entry = timeframes.get(key)
            if isinstance(entry, dict):
                raw = entry.get("direction", entry.get("bias", entry.get("trend")))
            else:
                raw = entry
            bias = parse_bias(raw)
            if bias is not None:
                states[key] = bias

        if not states:
            return None, ["timeframe states"]

        total = len(states)
        bullish = sum(1 for b in states.values() if b is Bias.BULLISH)
        bearish = sum(1 for b in states.values() if b is Bias.BEARISH)

        return AlignmentSection(
            tf_states=states,
            bullish_pct=round(bullish / total * 100, 2),
            bearish_pct=round(bearish / total * 100, 2),
        ), []

    def _normalize_structure(self, payload: Dict[str, Any]):
        valid = _to_bool(payload.get("setup_valid"))
        if valid is None:
            return None, ["setup_valid"]

        liquidity_ok = _to_bool(payload.get("liquidity_ok"))

        grade = None
        grade_raw = payload.get("quality", payload.get("execution_quality"))
        if isinstance(grade_raw, str):
            try:
                grade = ExecutionGrade(grade_raw.strip().upper())
            except ValueError:
                grade = None
        if grade is None:
            score = _to_float(payload.get("score"))
            grade = infer_grade(score) if score is not None else ExecutionGrade.C

        return StructureSection(
            valid_setup=valid,
            execution_quality=grade,
            liquidity_ok=True if liquidity_ok is None else liquidity_ok,
        ), []
