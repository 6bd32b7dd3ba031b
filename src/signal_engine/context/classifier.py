"""
Source classification for inbound payloads.

Identifies which producer sent a payload from its shape alone. Fingerprints
are checked in order and the first match wins:

1. REGIME           - ``meta.engine == "SATY_PO"`` or a top-level ``regime`` block
2. TREND_ALIGNMENT  - ``timeframes`` with both ``tf3min`` and ``tf5min``
3. EXPERT_SIGNAL    - chart alert: ``signal.type`` + ``signal.timeframe`` + ``instrument.ticker``
4. EXPERT_SIGNAL    - options scorer: ``signal.ai_score`` + ``signal.quality`` (no timeframe)
5. STRUCTURE_CHECK  - ``setup_valid`` + ``liquidity_ok``
"""

import logging
from typing import Any, Callable, Dict, List, Tuple, Union

from ..core.types import SourceName
from .models import Unrecognized

logger = logging.getLogger(__name__)


SENSITIVE_KEYS = ("apikey", "api_key", "secret", "token", "password", "auth")


# ============================================================================
# Fingerprint Predicates
# ============================================================================

def _get(payload: Any, *path: str) -> Any:
    """Nested dict lookup that returns None on any non-dict step."""
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _is_regime(payload: Dict[str, Any]) -> bool:
    if _get(payload, "meta", "engine") == "SATY_PO":
        return True
    return isinstance(payload.get("regime"), dict) and "bias" in payload["regime"]


def _is_trend_alignment(payload: Dict[str, Any]) -> bool:
    timeframes = payload.get("timeframes")
    return (
        isinstance(timeframes, dict)
        and isinstance(timeframes.get("tf3min"), dict)
        and isinstance(timeframes.get("tf5min"), dict)
    )


def _is_chart_alert(payload: Dict[str, Any]) -> bool:
    return (
        _get(payload, "signal", "type") is not None
        and _get(payload, "signal", "timeframe") is not None
        and _get(payload, "instrument", "ticker") is not None
    )


def _is_options_signal(payload: Dict[str, Any]) -> bool:
    return (
        _get(payload, "signal", "ai_score") is not None
        and _get(payload, "signal", "quality") is not None
        and _get(payload, "signal", "timeframe") is None
    )


def _is_structure_check(payload: Dict[str, Any]) -> bool:
    return "setup_valid" in payload and "liquidity_ok" in payload


FINGERPRINTS: List[Tuple[str, SourceName, Callable[[Dict[str, Any]], bool]]] = [
    ("meta.engine == SATY_PO or regime.bias", SourceName.REGIME, _is_regime),
    ("timeframes.tf3min + timeframes.tf5min", SourceName.TREND_ALIGNMENT, _is_trend_alignment),
    ("signal.type + signal.timeframe + instrument.ticker", SourceName.EXPERT_SIGNAL, _is_chart_alert),
    ("signal.ai_score + signal.quality, no timeframe", SourceName.EXPERT_SIGNAL, _is_options_signal),
    ("setup_valid + liquidity_ok", SourceName.STRUCTURE_CHECK, _is_structure_check),
]


# ============================================================================
# Source Classifier
# ============================================================================

class SourceClassifier:
    """
    Side-effect free payload classifier.

    ``classify`` never raises: malformed input yields ``Unrecognized`` with a
    best-guess hint that callers can log or route manually.
    """

    def __init__(self):
        self._fingerprints = list(FINGERPRINTS)

    def classify(self, payload: Any) -> Union[SourceName, Unrecognized]:
        if not isinstance(payload, dict):
            return Unrecognized(f"payload is not a JSON object (got {type(payload).__name__})")
        if not payload:
            return Unrecognized("payload is empty")

        for _, source, predicate in self._fingerprints:
            try:
                if predicate(payload):
                    return source
            except Exception as e:
                # A predicate blowing up on odd input is a non-match
                logger.debug(f"Fingerprint check for {source.value} failed: {e}")

        return Unrecognized(self._best_guess(payload))

    def _best_guess(self, payload: Dict[str, Any]) -> str:
        keys = sorted(str(k) for k in payload.keys())
        signal = payload.get("signal")

        if isinstance(signal, dict):
            present = sorted(str(k) for k in signal.keys())
            return (
                f"looks like an expert signal but 'signal' has {present}; "
                "expected type+timeframe (with instrument.ticker) or ai_score+quality"
            )
        if "timeframes" in payload:
            return "looks like trend alignment but timeframes.tf3min/tf5min are missing"
        if "meta" in payload:
            return f"meta.engine={_get(payload, 'meta', 'engine')!r} is not a known regime engine"
        if "setup_valid" in payload or "liquidity_ok" in payload:
            return "looks like a structure check but needs both setup_valid and liquidity_ok"
        return f"no known fingerprint matches top-level keys {keys[:10]}"

    @staticmethod
    def detection_hints() -> Dict[str, List[str]]:
        """Fingerprints per source, in match order."""
        hints: Dict[str, List[str]] = {}
        for description, source, _ in FINGERPRINTS:
            hints.setdefault(source.value, []).append(description)
        return hints


def sanitize_payload(payload: Any) -> Any:
    """Copy of ``payload`` with credential-like values masked for logging."""
    if isinstance(payload, dict):
        clean = {}
        for key, value in payload.items():
            if any(marker in str(key).lower() for marker in SENSITIVE_KEYS):
                clean[key] = "***"
            else:
                clean[key] = sanitize_payload(value)
        return clean
    if isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    return payload
