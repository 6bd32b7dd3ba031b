"""
Mathematical Utilities

Provides mathematical functions for:
- Statistical calculations
- Price analysis (returns, volatility, RSI, ATR)
- Bounded scores and tier lookups
"""

import math
from typing import Iterable, List, Sequence, Tuple

import numpy as np


class StatisticalUtils:
    """Statistical calculation utilities."""

    @staticmethod
    def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
        """Safe division that handles zero denominators."""
        if denominator == 0 or math.isnan(denominator):
            return default
        return numerator / denominator

    @staticmethod
    def percentile_rank(data: Sequence[float], value: float) -> float:
        """Percentage of ``data`` at or below ``value`` (0-100)."""
        if len(data) == 0:
            return 50.0
        values = np.asarray(data, dtype=float)
        return float(np.count_nonzero(values <= value) / values.size * 100.0)

    @staticmethod
    def linear_regression(x: Sequence[float], y: Sequence[float]) -> Tuple[float, float, float]:
        """
        Least-squares linear regression.

        Returns:
            Tuple of (slope, intercept, r_squared)
        """
        if len(x) != len(y) or len(x) < 2:
            return 0.0, 0.0, 0.0

        xs = np.asarray(x, dtype=float)
        ys = np.asarray(y, dtype=float)
        if np.ptp(xs) == 0:
            return 0.0, float(ys.mean()), 0.0

        slope, intercept = np.polyfit(xs, ys, 1)
        predicted = slope * xs + intercept
        ss_res = float(np.sum((ys - predicted) ** 2))
        ss_tot = float(np.sum((ys - ys.mean()) ** 2))
        r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0
        return float(slope), float(intercept), r_squared


class PriceAnalysis:
    """Price analysis utilities."""

    @staticmethod
    def log_returns(prices: Sequence[float]) -> List[float]:
        """Calculate logarithmic returns."""
        if len(prices) < 2:
            return []
        values = np.asarray(prices, dtype=float)
        return list(np.diff(np.log(values)))

    @staticmethod
    def volatility(prices: Sequence[float], periods_per_year: int = 252) -> float:
        """Annualized volatility of log returns (fraction, not percent)."""
        returns = PriceAnalysis.log_returns(prices)
        if len(returns) < 2:
            return 0.0
        return float(np.std(returns, ddof=1) * math.sqrt(periods_per_year))

    @staticmethod
    def rsi(prices: Sequence[float], window: int = 14) -> float:
        """Wilder RSI of the latest bar; 50.0 when there is not enough data."""
        if len(prices) < window + 1:
            return 50.0

        changes = np.diff(np.asarray(prices, dtype=float))
        gains = np.clip(changes, 0, None)
        losses = np.clip(-changes, 0, None)

        avg_gain = gains[:window].mean()
        avg_loss = losses[:window].mean()
        for i in range(window, len(changes)):
            avg_gain = (avg_gain * (window - 1) + gains[i]) / window
            avg_loss = (avg_loss * (window - 1) + losses[i]) / window

        if avg_loss == 0:
            return 100.0 if avg_gain > 0 else 50.0
        rs = avg_gain / avg_loss
        return float(100 - (100 / (1 + rs)))

    @staticmethod
    def atr(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> float:
        """Average True Range over the last ``period`` bars."""
        if len(highs) != len(lows) or len(highs) != len(closes) or len(highs) < 2:
            return 0.0

        high = np.asarray(highs, dtype=float)
        low = np.asarray(lows, dtype=float)
        close = np.asarray(closes, dtype=float)
        true_ranges = np.maximum.reduce([
            high[1:] - low[1:],
            np.abs(high[1:] - close[:-1]),
            np.abs(low[1:] - close[:-1]),
        ])
        return float(true_ranges[-period:].mean())


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max."""
    return max(min_val, min(value, max_val))


def tier_lookup(value: float, tiers: Iterable, default: float) -> float:
    """
    Factor of the first tier whose ``min`` the value reaches.

    ``tiers`` must be ordered by ``min`` descending (objects with ``min`` and
    ``factor`` attributes).
    """
    for tier in tiers:
        if value >= tier.min:
            return tier.factor
    return default
