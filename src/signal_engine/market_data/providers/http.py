"""
HTTP market data providers (aiohttp).

- TradierProvider: options chain -> derivatives positioning
- TwelveDataProvider: daily bars -> ATR, realized volatility, trend, RSI, volume
- AlpacaProvider: latest quote and recent trades -> liquidity

Vendor errors are mapped onto ProviderErrorType so callers can tell
retryable failures (timeouts, network) from API-level ones.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ...config.settings import FeedConfig
from ...core.errors import ProviderFailure
from ...core.types import ProviderErrorType
from ...utils.math_utils import PriceAnalysis
from .. import calculations
from ..models import DerivativesMetrics, LiquidityMetrics, StatisticsMetrics
from .base import MetricsProvider, require_number

logger = logging.getLogger(__name__)


# ============================================================================
# HTTP Base
# ============================================================================

class HTTPMetricsProvider(MetricsProvider):
    """Shared aiohttp session handling and error mapping."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout_seconds: float = 1.0,
        cache_ttl_seconds: float = 0.0,
    ):
        super().__init__(timeout_seconds=timeout_seconds, cache_ttl_seconds=cache_ttl_seconds)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @classmethod
    def from_config(cls, feed: FeedConfig) -> "HTTPMetricsProvider":
        api_key = os.getenv(feed.api_key_env) if feed.api_key_env else None
        api_secret = os.getenv(feed.api_secret_env) if feed.api_secret_env else None
        if feed.api_key_env and not api_key:
            logger.warning(f"{feed.api_key_env} not set; {cls.name} calls will fail and use fallbacks")
        return cls(
            base_url=feed.base_url,
            api_key=api_key,
            api_secret=api_secret,
            timeout_seconds=feed.timeout_seconds,
            cache_ttl_seconds=feed.cache_ttl_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout, headers=self._headers())
        return self.session

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.get(url, params=params) as response:
                if response.status == 429:
                    raise ProviderFailure(
                        self.name, ProviderErrorType.RATE_LIMITED, "rate limited", status_code=429
                    )
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderFailure(
                        self.name,
                        ProviderErrorType.API_ERROR,
                        f"HTTP {response.status}: {error_text[:200]}",
                        status_code=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderFailure(
                        self.name, ProviderErrorType.INVALID_RESPONSE, f"invalid JSON: {e}"
                    ) from e
        except asyncio.TimeoutError as e:
            raise ProviderFailure(
                self.name, ProviderErrorType.TIMEOUT, f"timeout after {self.timeout_seconds}s"
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderFailure(self.name, ProviderErrorType.NETWORK_ERROR, str(e)) from e

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None


# ============================================================================
# Tradier - Options Positioning
# ============================================================================

class TradierProvider(HTTPMetricsProvider):
    name = "tradier"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def fetch_options(self, symbol: str) -> DerivativesMetrics:
        expirations = await self._get_json(
            "/markets/options/expirations", {"symbol": symbol}
        )
        dates = (expirations or {}).get("expirations") or {}
        dates = dates.get("date") if isinstance(dates, dict) else None
        if isinstance(dates, str):
            dates = [dates]
        if not dates:
            raise ProviderFailure(self.name, ProviderErrorType.INVALID_RESPONSE, "no option expirations")

        quote_data, chain_data = await asyncio.gather(
            self._get_json("/markets/quotes", {"symbols": symbol}),
            self._get_json(
                "/markets/options/chains",
                {"symbol": symbol, "expiration": dates[0], "greeks": "true"},
            ),
        )

        options = ((chain_data or {}).get("options") or {}).get("option") or []
        if isinstance(options, dict):
            options = [options]
        if not options:
            raise ProviderFailure(self.name, ProviderErrorType.INVALID_RESPONSE, "empty options chain")

        quote = ((quote_data or {}).get("quotes") or {}).get("quote") or {}
        if isinstance(quote, list):
            quote = quote[0] if quote else {}
        last = require_number(self.name, quote.get("last"), "last", default=0.0)

        return self._summarize_chain(options, last)

    def _summarize_chain(self, options: List[Dict[str, Any]], last: float) -> DerivativesMetrics:
        put_volume = sum(float(o.get("volume") or 0) for o in options if o.get("option_type") == "put")
        call_volume = sum(float(o.get("volume") or 0) for o in options if o.get("option_type") == "call")
        pcr = calculations.put_call_ratio(put_volume, call_volume)

        ivs = []
        atm_iv = 0.0
        atm_distance = None
        for option in options:
            iv = float((option.get("greeks") or {}).get("mid_iv") or 0)
            if iv <= 0:
                continue
            ivs.append(iv)
            distance = abs(float(option.get("strike") or 0) - last)
            if atm_distance is None or distance < atm_distance:
                atm_distance = distance
                atm_iv = iv

        contracts = [
            (o.get("strike") or 0, o.get("open_interest") or 0, o.get("option_type"))
            for o in options
        ]

        return DerivativesMetrics(
            put_call_ratio=round(pcr, 4),
            iv_percentile=calculations.iv_percentile(ivs, atm_iv) if ivs else 50.0,
            gamma_bias=calculations.gamma_bias(pcr),
            option_volume=put_volume + call_volume,
            max_pain=calculations.max_pain(contracts),
        )


# ============================================================================
# TwelveData - Volatility & Trend Statistics
# ============================================================================

class TwelveDataProvider(HTTPMetricsProvider):
    name = "twelvedata"

    async def fetch_stats(self, symbol: str) -> StatisticsMetrics:
        data = await self._get_json(
            "/time_series",
            {"symbol": symbol, "interval": "1day", "outputsize": 60, "apikey": self.api_key or ""},
        )
        if not isinstance(data, dict):
            raise ProviderFailure(self.name, ProviderErrorType.INVALID_RESPONSE, "unexpected payload")
        if data.get("status") == "error":
            code = data.get("code")
            error_type = ProviderErrorType.RATE_LIMITED if code == 429 else ProviderErrorType.API_ERROR
            raise ProviderFailure(self.name, error_type, str(data.get("message", "error")), status_code=code)

        values = data.get("values") or []
        if len(values) < 15:
            raise ProviderFailure(
                self.name, ProviderErrorType.INVALID_RESPONSE, f"only {len(values)} bars returned"
            )

        # TwelveData returns newest first
        bars = list(reversed(values))
        highs = [require_number(self.name, b.get("high"), "high") for b in bars]
        lows = [require_number(self.name, b.get("low"), "low") for b in bars]
        closes = [require_number(self.name, b.get("close"), "close") for b in bars]
        volumes = [require_number(self.name, b.get("volume"), "volume", default=0.0) for b in bars]

        return StatisticsMetrics(
            atr14=round(PriceAnalysis.atr(highs, lows, closes, 14), 4),
            rv20=round(calculations.realized_volatility(closes, 20), 4),
            trend_slope=calculations.trend_slope(closes[-20:]),
            rsi=round(PriceAnalysis.rsi(closes, 14), 2),
            volume=volumes[-1],
            volume_ratio=round(calculations.volume_ratio(volumes), 4),
        )


# ============================================================================
# Alpaca - Liquidity
# ============================================================================

class AlpacaProvider(HTTPMetricsProvider):
    name = "alpaca"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["APCA-API-KEY-ID"] = self.api_key
        if self.api_secret:
            headers["APCA-API-SECRET-KEY"] = self.api_secret
        return headers

    async def fetch_liquidity(self, symbol: str) -> LiquidityMetrics:
        start = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
        quote_data, trade_data = await asyncio.gather(
            self._get_json(f"/v2/stocks/{symbol}/quotes/latest"),
            self._get_json(f"/v2/stocks/{symbol}/trades", {"start": start, "limit": 100}),
        )

        quote = (quote_data or {}).get("quote") or {}
        bid = require_number(self.name, quote.get("bp"), "bp")
        ask = require_number(self.name, quote.get("ap"), "ap")
        bid_size = require_number(self.name, quote.get("bs"), "bs", default=0.0)
        ask_size = require_number(self.name, quote.get("as"), "as", default=0.0)
        if bid <= 0 or ask <= 0 or ask < bid:
            raise ProviderFailure(
                self.name, ProviderErrorType.INVALID_RESPONSE, f"crossed or empty quote bid={bid} ask={ask}"
            )

        trade_times = []
        for trade in (trade_data or {}).get("trades") or []:
            stamp = trade.get("t")
            if isinstance(stamp, str):
                try:
                    trade_times.append(datetime.fromisoformat(stamp[:26].rstrip("Z") + "+00:00").timestamp())
                except ValueError:
                    self.logger.debug(f"Skipping unparseable trade time {stamp!r}")

        return LiquidityMetrics(
            spread_bps=round(calculations.spread_bps(bid, ask), 4),
            depth_score=round(calculations.depth_score(bid_size, ask_size), 2),
            trade_velocity=calculations.trade_velocity(trade_times),
            bid_size=bid_size,
            ask_size=ask_size,
        )


PROVIDER_CLASSES = {
    TradierProvider.name: TradierProvider,
    TwelveDataProvider.name: TwelveDataProvider,
    AlpacaProvider.name: AlpacaProvider,
}
