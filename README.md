# gma

Building blocks for processing market data in Python. The package has no
dependencies outside the standard library.

## Modules

- **`gma.atomic_store.AtomicStore`**: a thread-safe `symbol → field → value` store.
  `get` returns `None` when a symbol or field is missing.
- **`gma.atomic_functions.compute_all_atomic_values(symbol, history, store)`**: works
  out indicators from a history of `(price, volume)` samples (`TickEntry`) and writes
  them into an `AtomicStore`. The indicators are open, high, low and last price, mean,
  median, previous close, VWAP, SMA 5/20, EMA 12/26, RSI 14, MACD line and signal,
  Bollinger bands, momentum and ROC 10, ATR 14, volume, 20-sample average volume, OBV
  and volatility rank. An indicator is skipped when the history is too short for it.
- **`gma.function_map.FunctionMap`**: a thread-safe registry that maps names to
  functions of the form `list[float] -> float`. `FunctionMap.instance()` returns a
  process-wide shared map. `get_function` raises `FunctionNotFoundError` for an
  unknown name.
- **`gma.thread_pool.ThreadPool`**: a fixed-size worker pool that can be used as a
  context manager. `shutdown()` stops new posts from being accepted and waits for the
  queued tasks to finish.
- **`gma.market_dispatcher.MarketDispatcher`**: takes `SymbolTick`s (a symbol plus a
  field payload) and delivers `SymbolValue`s, on the pool, to listeners registered per
  symbol and field. A listener is any object with `on_value`. The dispatcher keeps a
  bounded history for each field. It runs every function in the `FunctionMap` over
  that history, stores each result and notifies the listeners subscribed to the
  function's name.
- **`gma.request_registry.RequestRegistry`**: holds request root nodes by id and calls
  their `shutdown()` when they are removed.
- **`gma.json_validator`**: `validate_request` and `validate_node` check the shape of
  request and node documents (plain dicts) and raise `ValidationError`.
- **`gma.order_book.OrderBook`**: a thread-safe price-time-priority order book with
  prices in integer ticks. It supports feed-scoped `OrderKey`s with synthetic ids,
  adds, updates, deletes, priority changes, trades, per-order and aggregated
  snapshots, level summaries and depth queries. `check_invariants()` raises
  `InvariantError` when the book is inconsistent.
- **`gma.book_manager.OrderBookManager`**: manages one `OrderBook` per symbol. It
  converts float prices to ticks using per-symbol tick sizes and validates input. It
  also tracks sequence gaps, resets and stale feeds, and can call an optional
  `request_snapshot` callback. Venue keys are resolved through a bounded map, each
  change is published to subscribers as a `BookDelta`, and event counters are kept
  (`get_stats()`). `dump_ladder()` returns a text view of the book.
- **`gma.feed_book.FeedBookManager`**: keeps simple per-symbol books that are built
  from feed messages given as mappings with keys such as `"Message Type"`,
  `"Symbol"`, `"Order ID"`, `"Side"`, `"Price"`, `"Order Size"` and
  `"Order Priority"`.

## Installation

```
pip install .
```

For the test suite:

```
pip install .[test]
pytest
```

## Examples

```python
from gma.atomic_store import AtomicStore
from gma.atomic_functions import TickEntry, compute_all_atomic_values

store = AtomicStore()
history = [TickEntry(1.0, 10.0), TickEntry(3.0, 20.0), TickEntry(2.0, 5.0)]
compute_all_atomic_values("TEST", history, store)
print(store.get("TEST", "vwap"))   # 80 / 35
```

```python
from gma.order_book import Aggressor, Order, OrderBook, Side

book = OrderBook()
book.apply_add(Order(1, Side.BID, 10025, 10))
book.apply_add(Order(2, Side.ASK, 10030, 5))
print(book.best_bid(), book.best_ask())          # 10025 10030
book.apply_trade(10030, 5, Aggressor.BUY)        # consumes the ask
print(book.best_ask())                           # None
```

```python
from gma.book_manager import OrderBookManager
from gma.order_book import Side, FeedScope

mgr = OrderBookManager()
mgr.set_tick_size("XYZ", 0.01)
mgr.subscribe_deltas("XYZ", lambda delta: print(delta))
mgr.on_add("XYZ", 1, Side.BID, 100.25, 10, 0, FeedScope(), False)
print(mgr.best_bid("XYZ"), mgr.best_bid_size("XYZ"))
print(mgr.dump_ladder("XYZ", 5))
```

```python
from gma.feed_book import FeedBookManager

feeds = FeedBookManager()
feeds.process({
    "Message Type": "3", "Symbol": "ABC", "Order ID": 1, "Side": "B",
    "Price": 10.5, "Order Size": 100, "Order Priority": 1,
})
print(feeds.book("ABC").bids()[0].total_size)    # 100
```

## What this package does not do

This is a library only. It has no command-line program, no network server or
client connection handling, no wire protocol, and no node types that build
request trees from JSON. `RequestRegistry` and `MarketDispatcher` work with any
objects that provide `shutdown()` or `on_value()`. Nothing is stored to disk:
all state lives in memory.