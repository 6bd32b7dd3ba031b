"""
Market metric calculations shared by the HTTP providers.

Pure functions over raw provider numbers so they can be tested without
network access.
"""

import math
from typing import Iterable, Sequence, Tuple

import numpy as np

from ..utils.math_utils import PriceAnalysis, StatisticalUtils, clamp


def spread_bps(bid: float, ask: float) -> float:
    """Bid/ask spread in basis points of the mid price."""
    mid = (bid + ask) / 2
    if mid <= 0 or ask < bid:
        return 0.0
    return (ask - bid) / mid * 10_000


def depth_score(bid_size: float, ask_size: float) -> float:
    """0-100 depth score from top-of-book size."""
    total = max(0.0, bid_size) + max(0.0, ask_size)
    return min(100.0, math.sqrt(total) * 10)


def gamma_bias(put_call_ratio: float) -> str:
    if put_call_ratio > 1.2:
        return "NEGATIVE"
    if put_call_ratio < 0.8:
        return "POSITIVE"
    return "NEUTRAL"


def put_call_ratio(put_volume: float, call_volume: float) -> float:
    if call_volume <= 0:
        return 1.0
    return put_volume / call_volume


def max_pain(contracts: Iterable[Tuple[float, float, str]]) -> float:
    """
    Strike at which option holders' total intrinsic value is smallest.

    Args:
        contracts: (strike, open_interest, "call" | "put") tuples
    """
    rows = [(float(k), float(oi), kind) for k, oi, kind in contracts if oi and oi > 0]
    if not rows:
        return 0.0

    strikes = np.array(sorted({k for k, _, _ in rows}))
    call_k = np.array([k for k, _, kind in rows if kind == "call"])
    call_oi = np.array([oi for _, oi, kind in rows if kind == "call"])
    put_k = np.array([k for k, _, kind in rows if kind == "put"])
    put_oi = np.array([oi for _, oi, kind in rows if kind == "put"])

    pain = np.zeros(strikes.size)
    if call_k.size:
        pain += (np.clip(strikes[:, None] - call_k[None, :], 0, None) * call_oi).sum(axis=1)
    if put_k.size:
        pain += (np.clip(put_k[None, :] - strikes[:, None], 0, None) * put_oi).sum(axis=1)

    return float(strikes[int(np.argmin(pain))])


def iv_percentile(chain_ivs: Sequence[float], current_iv: float) -> float:
    """Rank of the at-the-money IV within the chain's IV distribution."""
    ivs = [iv for iv in chain_ivs if iv and iv > 0]
    return round(StatisticalUtils.percentile_rank(ivs, current_iv), 2)


def realized_volatility(closes: Sequence[float], window: int = 20) -> float:
    """Annualized realized volatility (percent) over the last ``window`` returns."""
    if len(closes) < 3:
        return 0.0
    return PriceAnalysis.volatility(closes[-(window + 1):]) * 100


def trend_slope(closes: Sequence[float]) -> float:
    """Regression slope as percent of mean price per bar, clamped to [-1, 1]."""
    if len(closes) < 2:
        return 0.0
    slope, _, _ = StatisticalUtils.linear_regression(list(range(len(closes))), closes)
    mean_price = float(np.mean(closes))
    if mean_price <= 0:
        return 0.0
    return round(clamp(slope / mean_price * 100, -1.0, 1.0), 4)


def volume_ratio(volumes: Sequence[float], lookback: int = 20) -> float:
    """Latest volume relative to the trailing average."""
    if len(volumes) < 2:
        return 1.0
    history = np.asarray(volumes[-(lookback + 1):-1], dtype=float)
    average = float(history.mean()) if history.size else 0.0
    return StatisticalUtils.safe_divide(float(volumes[-1]), average, default=1.0)


def trade_velocity(trade_times: Sequence[float], fast_per_minute: float = 30, slow_per_minute: float = 5) -> str:
    """FAST / NORMAL / SLOW from trade timestamps (epoch seconds)."""
    if len(trade_times) < 2:
        return "SLOW"
    span = max(trade_times) - min(trade_times)
    if span <= 0:
        return "FAST"
    per_minute = (len(trade_times) - 1) / span * 60
    if per_minute >= fast_per_minute:
        return "FAST"
    if per_minute <= slow_per_minute:
        return "SLOW"
    return "NORMAL"
