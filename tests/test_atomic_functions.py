import pytest

from gma.atomic_functions import TickEntry, compute_all_atomic_values
from gma.atomic_store import AtomicStore


def _history(pairs):
    return [TickEntry(p, v) for p, v in pairs]


def test_basic_price_metrics():
    store = AtomicStore()
    compute_all_atomic_values("TEST", _history([(1.0, 10.0), (3.0, 20.0), (2.0, 5.0)]), store)
    assert store.get("TEST", "openPrice") == 1.0
    assert store.get("TEST", "lastPrice") == 2.0
    assert store.get("TEST", "highPrice") == 3.0
    assert store.get("TEST", "lowPrice") == 1.0
    assert store.get("TEST", "prevClose") == 3.0


def test_mean_median_and_vwap():
    store = AtomicStore()
    compute_all_atomic_values("STATS", _history([(1.0, 10.0), (3.0, 20.0), (2.0, 5.0)]), store)
    assert store.get("STATS", "mean") == pytest.approx(2.0)
    assert store.get("STATS", "median") == 2.0
    assert store.get("STATS", "vwap") == pytest.approx(80.0 / 35.0, abs=1e-10)


def test_median_of_even_count():
    store = AtomicStore()
    compute_all_atomic_values("EVEN", _history([(4.0, 1.0), (1.0, 1.0), (3.0, 1.0), (2.0, 1.0)]), store)
    assert store.get("EVEN", "median") == 2.5


def test_technical_indicators_presence():
    store = AtomicStore()
    hist = _history((float(i), float(2 * i)) for i in range(1, 26))
    compute_all_atomic_values("TECH", hist, store)

    assert store.get("TECH", "sma_5") == pytest.approx((21 + 22 + 23 + 24 + 25) / 5.0)
    assert store.get("TECH", "sma_20") == pytest.approx(15.5)
    for key in (
        "ema_12",
        "ema_26",
        "rsi_14",
        "macd_line",
        "macd_signal",
        "bollinger_upper",
        "bollinger_lower",
        "momentum_10",
        "roc_10",
        "atr_14",
        "volume_avg_20",
        "obv",
        "volatility_rank",
    ):
        assert store.get("TECH", key) is not None, key
    assert store.get("TECH", "volume") == 50.0
    assert store.get("TECH", "isHalted") == 0
    assert store.get("TECH", "marketState") == "Open"
    assert store.get("TECH", "timeSinceOpen") == 60
    assert store.get("TECH", "timeUntilClose") == 300


def test_rising_series_invariants():
    store = AtomicStore()
    hist = _history((float(i), float(2 * i)) for i in range(1, 26))
    compute_all_atomic_values("UP", hist, store)
    assert store.get("UP", "rsi_14") == pytest.approx(100.0, abs=1e-3)
    assert store.get("UP", "momentum_10") == 10.0
    assert store.get("UP", "atr_14") == pytest.approx(1.0)
    assert store.get("UP", "bollinger_upper") > store.get("UP", "sma_20") > store.get("UP", "bollinger_lower")
    assert 0.0 <= store.get("UP", "volatility_rank") <= 1.0
    assert store.get("UP", "obv") == pytest.approx(sum(2.0 * i for i in range(2, 26)))


def test_insufficient_history_triggers_partial_metrics():
    store = AtomicStore()
    compute_all_atomic_values("PARTIAL", _history([(10, 1), (12, 1), (11, 1)]), store)
    assert store.get("PARTIAL", "mean") is not None
    assert store.get("PARTIAL", "median") is not None
    assert store.get("PARTIAL", "rsi_14") is None
    assert store.get("PARTIAL", "atr_14") is None
    assert store.get("PARTIAL", "bollinger_upper") is None
    assert store.get("PARTIAL", "sma_5") == 0.0


def test_overwrite_on_second_call():
    store = AtomicStore()
    compute_all_atomic_values("DUP", _history([(2, 1), (4, 1)]), store)
    compute_all_atomic_values("DUP", _history([(10, 1), (20, 1)]), store)
    assert store.get("DUP", "lastPrice") == 20.0
    assert store.get("DUP", "mean") == 15.0


def test_single_sample_only_basic_metrics():
    store = AtomicStore()
    compute_all_atomic_values("ONE", [(5.0, 3.0)], store)
    assert store.get("ONE", "lastPrice") == 5.0
    assert store.get("ONE", "median") == 5.0
    assert store.get("ONE", "prevClose") is None
    assert store.get("ONE", "vwap") is None


def test_empty_history_stores_nothing():
    store = AtomicStore()
    compute_all_atomic_values("NONE", [], store)
    assert store.get("NONE", "lastPrice") is None


def test_zero_volume_vwap_is_zero():
    store = AtomicStore()
    compute_all_atomic_values("ZV", _history([(1.0, 0.0), (2.0, 0.0)]), store)
    assert store.get("ZV", "vwap") == 0.0