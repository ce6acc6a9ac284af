from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable

import numpy as np

from trading_monitor.core.config import SynthesisConfig
from trading_monitor.core.timeframes import resolve_timeframe
from trading_monitor.core.utils import epoch_seconds, utc_now
from trading_monitor.market.models import Candle

DEFAULT_PRICES: dict[str, float] = {
    "XAUUSD": 1800.50,
    "EURUSD": 1.0850,
    "GBPUSD": 1.2650,
    "USDJPY": 110.20,
    "BTCUSD": 35200.00,
    "ETHUSD": 1950.00,
    "US30": 35000.00,
    "NAS100": 16000.00,
    "SPX500": 5000.00,
    "TEST": 100.00,
}

DEFAULT_VOLATILITIES: dict[str, float] = {
    "XAUUSD": 0.002,
    "EURUSD": 0.0001,
    "GBPUSD": 0.0001,
    "USDJPY": 0.0001,
    "BTCUSD": 0.005,
    "ETHUSD": 0.008,
    "US30": 0.001,
    "NAS100": 0.0015,
    "SPX500": 0.001,
    "TEST": 0.0005,
}

PRICE_DECIMALS = 5

# Weights of the random, trend and news components of a bar's change.
W_RANDOM = 0.7
W_TREND = 0.2
W_NEWS = 0.1
TREND_PERIOD_BARS = 20
TREND_AMPLITUDE = 0.1
NEWS_BARS = 4
NEWS_RANGE = 0.25
WICK_SCALE = 0.5
LAST_BAR_SCALE = 0.1
VOLUME_MIN = 100
VOLUME_MAX = 1100


class CandleSynthesizer:
    """
    Generates a synthetic OHLCV series ending at the current instant.

    The walk draws from an injected ``numpy.random.Generator`` so a seeded
    generator plus a fixed clock reproduces the same series.
    """

    def __init__(
        self,
        cfg: SynthesisConfig | None = None,
        *,
        rng: np.random.Generator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cfg = cfg or SynthesisConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock
        self._prices = {**DEFAULT_PRICES, **self.cfg.prices}
        self._volatilities = {**DEFAULT_VOLATILITIES, **self.cfg.volatilities}
        self._log = logging.getLogger("trading_monitor.synthesizer")

    def available_symbols(self) -> list[str]:
        return sorted(self._prices)

    def base_price(self, symbol: str, now: datetime) -> float:
        # Stable within a minute, drifts by at most 0.5% across the hour.
        price = self._prices.get(symbol, self.cfg.default_price)
        return price * (1 + (now.minute % 10 - 5) * 0.001)

    def volatility(self, symbol: str) -> float:
        return self._volatilities.get(symbol, self.cfg.default_volatility)

    def market_multiplier(self, now: datetime) -> float:
        if not self.cfg.market_hours_enabled:
            return 1.0
        hour = now.astimezone(self.cfg.tzinfo()).hour
        if self.cfg.active_hour_start <= hour <= self.cfg.active_hour_end:
            return 1.0
        return self.cfg.inactive_multiplier

    def generate(self, symbol: str, timeframe: str | int | None, count: int) -> list[Candle]:
        if count <= 0:
            return []
        now = self.clock()
        tf = resolve_timeframe(timeframe)
        vol = self.volatility(symbol)
        mult = self.market_multiplier(now)

        now_ts = epoch_seconds(now)
        step = tf.seconds
        first_time = now_ts - now_ts % step - (count - 1) * step

        candles: list[Candle] = []
        price = self.base_price(symbol, now)
        for i in range(count):
            random_walk = (self.rng.random() - 0.5) * 2
            trend = math.sin(i / TREND_PERIOD_BARS) * TREND_AMPLITUDE
            news = 0.0
            if i >= count - NEWS_BARS:
                news = self.rng.random() * 2 * NEWS_RANGE - NEWS_RANGE
            change = (random_walk * W_RANDOM + trend * W_TREND + news * W_NEWS) * vol * mult

            open_ = price
            close = open_ * (1 + change)
            high = max(open_, close) * (1 + self.rng.random() * vol * WICK_SCALE)
            low = min(open_, close) * (1 - self.rng.random() * vol * WICK_SCALE)
            candles.append(
                Candle(
                    time=first_time + i * step,
                    open=round(open_, PRICE_DECIMALS),
                    high=round(high, PRICE_DECIMALS),
                    low=round(low, PRICE_DECIMALS),
                    close=round(close, PRICE_DECIMALS),
                    volume=int(self.rng.integers(VOLUME_MIN, VOLUME_MAX)),
                )
            )
            price = close

        last = candles[-1]
        last_change = (self.rng.random() - 0.5) * 2 * vol * LAST_BAR_SCALE
        close = round(price * (1 + last_change), PRICE_DECIMALS)
        candles[-1] = Candle(
            time=now_ts,
            open=last.open,
            high=max(last.high, close),
            low=min(last.low, close),
            close=close,
            volume=last.volume,
        )
        self._log.debug(
            "candles generated",
            extra={"symbol": symbol, "timeframe": tf.code, "count": count},
        )
        return candles
