"""Price and volume indicators computed over a symbol's tick history."""

from __future__ import annotations

import math
import statistics
from typing import Iterable, NamedTuple

from gma.atomic_store import AtomicStore


class TickEntry(NamedTuple):
    """One sample of a symbol's history."""

    price: float
    volume: float


def compute_all_atomic_values(
    symbol: str, history: Iterable[tuple[float, float]], store: AtomicStore
) -> None:
    """Compute every indicator for ``history`` and write it into ``store``.

    Indicators that need more samples than ``history`` holds are not written.
    """
    hist = [TickEntry(*entry) for entry in history]
    n = len(hist)
    if n == 0:
        return
    prices = [e.price for e in hist]
    volumes = [e.volume for e in hist]

    open_ = prices[0]
    last = prices[-1]
    mean = sum(prices) / n

    store.set(symbol, "lastPrice", last)
    store.set(symbol, "openPrice", open_)
    store.set(symbol, "highPrice", max(prices))
    store.set(symbol, "lowPrice", min(prices))
    store.set(symbol, "mean", mean)
    store.set(symbol, "median", float(statistics.median(prices)))

    if n == 1:
        return

    store.set(symbol, "prevClose", prices[-2])

    cum_pv = sum(p * v for p, v in hist)
    cum_vol = sum(volumes)
    store.set(symbol, "vwap", cum_pv / cum_vol if cum_vol > 0.0 else 0.0)

    def sma(period: int) -> float:
        if n < period:
            return 0.0
        return sum(prices[-period:]) / period

    def ema(period: int) -> float:
        if n < period:
            return 0.0
        k = 2.0 / (period + 1)
        window = prices[-period:]
        value = window[0]
        for p in window[1:]:
            value = k * p + (1 - k) * value
        return value

    def stddev20() -> float:
        m20 = sma(20)
        return math.sqrt(sum((p - m20) ** 2 for p in prices[-20:]) / 20.0)

    store.set(symbol, "sma_5", sma(5))
    store.set(symbol, "sma_20", sma(20))
    store.set(symbol, "ema_12", ema(12))
    store.set(symbol, "ema_26", ema(26))

    diffs = [b - a for a, b in zip(prices, prices[1:])]

    if n >= 15:
        recent = diffs[-14:]
        gain = sum(d for d in recent if d > 0)
        loss = sum(-d for d in recent if d <= 0)
        rs = gain / (loss if loss > 0.0 else 1e-6)
        store.set(symbol, "rsi_14", 100.0 - (100.0 / (1.0 + rs)))

    store.set(symbol, "macd_line", ema(12) - ema(26))
    store.set(symbol, "macd_signal", ema(9))

    if n >= 20:
        m20 = sma(20)
        sd = stddev20()
        store.set(symbol, "bollinger_upper", m20 + 2.0 * sd)
        store.set(symbol, "bollinger_lower", m20 - 2.0 * sd)

    if n >= 11:
        prev10 = prices[-11]
        store.set(symbol, "momentum_10", last - prev10)
        store.set(symbol, "roc_10", 100.0 * (last - prev10) / (prev10 if prev10 != 0.0 else 1e-6))

    if n >= 15:
        store.set(symbol, "atr_14", sum(abs(d) for d in diffs[-14:]) / 14.0)

    store.set(symbol, "volume", volumes[-1])
    if n >= 20:
        store.set(symbol, "volume_avg_20", sum(volumes[-20:]) / 20.0)

    obv = 0.0
    for prev, cur in zip(hist, hist[1:]):
        if cur.price > prev.price:
            obv += cur.volume
        elif cur.price < prev.price:
            obv -= cur.volume
    store.set(symbol, "obv", obv)

    if mean != 0.0:
        sd20 = stddev20() if n >= 20 else 0.0
        store.set(symbol, "volatility_rank", min(sd20 / abs(mean), 1.0))

    store.set(symbol, "isHalted", 0)
    store.set(symbol, "marketState", "Open")
    store.set(symbol, "timeSinceOpen", 60)
    store.set(symbol, "timeUntilClose", 300)