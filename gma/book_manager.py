"""Multi-symbol order book manager with feed sequencing and delta events.

Prices arrive as floats and are quantized to integer ticks using a per-symbol
tick size. Every change that alters a price level or the top of book is
published to subscribers as a :class:`BookDelta`.
"""

from __future__ import annotations

import math
import threading
from collections import Counter, OrderedDict
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Sequence

from gma.order_book import (
    Aggressor,
    FeedScope,
    LevelSnapshotEntry,
    Order,
    OrderBook,
    OrderKey,
    Side,
)

DEFAULT_TICK = 0.01
DEFAULT_RESOLVER_CAPACITY = 100_000

Quote = tuple[int, int]


@dataclass
class FeedState:
    """Sequencing state of one symbol's feed."""

    last_seq: int = 0
    epoch: int = 0
    stale: bool = False


@dataclass(frozen=True)
class LevelDelta:
    """A price level whose total size changed; ``price`` is in ticks."""

    side: Side
    price: int
    new_size: int


@dataclass
class BookDelta:
    """Changes to one symbol's book; ``bid``/``ask`` are new (ticks, size) tops."""

    symbol: str
    seq: int = 0
    levels: list[LevelDelta] = field(default_factory=list)
    bid: Quote | None = None
    ask: Quote | None = None


@dataclass
class DepthSnapshot:
    """The top levels of a book as (ticks, size) pairs."""

    symbol: str
    epoch: int = 0
    seq: int = 0
    bids: list[Quote] = field(default_factory=list)
    asks: list[Quote] = field(default_factory=list)


@dataclass(frozen=True)
class PricedLevelEntry:
    """An aggregated snapshot level with a float price."""

    side: Side
    price: float
    total_size: int
    order_count: int | None = None


@dataclass(frozen=True)
class MetricsSnapshot:
    """Counter values at one point in time."""

    adds: int = 0
    updates: int = 0
    deletes: int = 0
    priorities: int = 0
    trades: int = 0
    snapshots: int = 0
    summaries: int = 0
    dropped_stale: int = 0
    dropped_malformed: int = 0
    seq_gaps: int = 0
    seq_resets: int = 0
    stale_transitions: int = 0
    deltas_published: int = 0
    deltas_published_by_symbol: dict[str, int] = field(default_factory=dict)


class BookMetrics:
    """Thread-safe event counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()
        self._deltas: Counter[str] = Counter()

    def _increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def _increment_delta(self, symbol: str) -> None:
        with self._lock:
            self._counts["deltas_published"] += 1
            self._deltas[symbol] += 1

    def snapshot(self) -> MetricsSnapshot:
        """Return the current counter values."""
        with self._lock:
            return MetricsSnapshot(
                **dict(self._counts), deltas_published_by_symbol=dict(self._deltas)
            )


class _VenueKeyResolver:
    """Bounded map from venue order keys to book keys; oldest entries go first."""

    def __init__(self, capacity: int = DEFAULT_RESOLVER_CAPACITY) -> None:
        self._capacity = capacity
        self._entries: OrderedDict[str, OrderKey] = OrderedDict()

    def set_capacity(self, capacity: int) -> None:
        self._capacity = capacity
        self._evict()

    def put(self, venue_key: str, key: OrderKey) -> None:
        self._entries[venue_key] = key
        self._entries.move_to_end(venue_key)
        self._evict()

    def get(self, venue_key: str) -> OrderKey | None:
        return self._entries.get(venue_key)

    def _evict(self) -> None:
        while len(self._entries) > max(self._capacity, 0):
            self._entries.popitem(last=False)


DeltaHandler = Callable[[BookDelta], object]
_Target = OrderKey | int


def _quantize(price: float, tick: float) -> int:
    q = price / tick + 1e-12
    return int(math.copysign(math.floor(abs(q) + 0.5), q))


class OrderBookManager:
    """Owns one OrderBook per symbol and applies validated feed events to it."""

    def __init__(self, request_snapshot: Callable[[str], object] | None = None) -> None:
        self.request_snapshot = request_snapshot
        self._books_lock = threading.RLock()
        self._books: dict[str, OrderBook] = {}
        self._tick_size: dict[str, float] = {}
        self._state_lock = threading.RLock()
        self._feed: dict[str, FeedState] = {}
        self._resolver: dict[str, _VenueKeyResolver] = {}
        self._pub_seq: dict[str, int] = {}
        self._subs_lock = threading.Lock()
        self._subs: dict[str, dict[int, DeltaHandler]] = {}
        self._next_sub_id = 1
        self._metrics = BookMetrics()

    # ----- tick size -----

    def set_tick_size(self, symbol: str, tick_size: float) -> None:
        """Set the tick size; a non-positive value means the default tick."""
        with self._books_lock:
            self._tick_size[symbol] = tick_size if tick_size > 0 else DEFAULT_TICK

    def get_tick_size(self, symbol: str) -> float:
        with self._books_lock:
            return self._tick_size.get(symbol, DEFAULT_TICK)

    def to_ticks(self, symbol: str, price: float) -> int:
        """Quantize ``price`` to the nearest tick of ``symbol``."""
        return _quantize(price, self.get_tick_size(symbol))

    def to_price(self, symbol: str, ticks: int) -> float:
        return float(ticks) * self.get_tick_size(symbol)

    # ----- books -----

    def book(self, symbol: str) -> OrderBook:
        """Return the book for ``symbol``, creating it if needed."""
        with self._books_lock:
            book = self._books.get(symbol)
            if book is None:
                book = self._books[symbol] = OrderBook()
            return book

    def _valid_price(self, symbol: str, price: float) -> bool:
        if not price > 0.0:
            return False
        q = price / self.get_tick_size(symbol)
        return abs(q - round(q)) < 1e-8

    @staticmethod
    def _valid_size(size: int) -> bool:
        return size > 0

    @staticmethod
    def _valid_side(side: object) -> bool:
        return isinstance(side, Side)

    # ----- feed sequencing -----

    def on_seq(self, symbol: str, seq: int) -> bool:
        """Accept the next sequence number; a gap marks the feed stale."""
        with self._state_lock:
            state = self._feed.setdefault(symbol, FeedState())
            if state.stale:
                self._metrics._increment("dropped_stale")
                return False
            if state.last_seq == 0 or seq == state.last_seq + 1:
                state.last_seq = seq
                return True
            state.stale = True
        self._metrics._increment("seq_gaps")
        self._metrics._increment("stale_transitions")
        if self.request_snapshot is not None:
            self.request_snapshot(symbol)
        return False

    def on_reset(self, symbol: str, new_epoch: int) -> None:
        """Start a new epoch; the feed stays stale until the next snapshot."""
        with self._state_lock:
            state = self._feed.setdefault(symbol, FeedState())
            state.epoch = new_epoch
            state.stale = True
            state.last_seq = 0
        self._metrics._increment("seq_resets")
        self._metrics._increment("stale_transitions")
        if self.request_snapshot is not None:
            self.request_snapshot(symbol)

    def is_stale(self, symbol: str) -> bool:
        with self._state_lock:
            state = self._feed.get(symbol)
            return state is not None and state.stale

    def get_feed_state(self, symbol: str) -> FeedState:
        with self._state_lock:
            state = self._feed.get(symbol)
            return FeedState() if state is None else replace(state)

    def _gated(self, symbol: str) -> bool:
        if self.is_stale(symbol):
            self._metrics._increment("dropped_stale")
            return True
        return False

    def _malformed(self) -> bool:
        self._metrics._increment("dropped_malformed")
        return False

    # ----- venue-key resolver -----

    def resolver_set_capacity(self, capacity: int) -> None:
        """Change the capacity of every existing resolver."""
        with self._state_lock:
            for resolver in self._resolver.values():
                resolver.set_capacity(capacity)

    def resolver_put(self, symbol: str, venue_key: str, key: OrderKey) -> None:
        with self._state_lock:
            self._resolver.setdefault(symbol, _VenueKeyResolver()).put(venue_key, key)

    def resolver_get(self, symbol: str, venue_key: str) -> OrderKey | None:
        with self._state_lock:
            resolver = self._resolver.get(symbol)
            return None if resolver is None else resolver.get(venue_key)

    # ----- event bus -----

    def subscribe_deltas(self, symbol: str, handler: DeltaHandler) -> int:
        """Register ``handler`` for deltas of ``symbol``; returns its id."""
        with self._subs_lock:
            sub_id = self._next_sub_id
            self._next_sub_id += 1
            self._subs.setdefault(symbol, {})[sub_id] = handler
            return sub_id

    def unsubscribe_deltas(self, symbol: str, sub_id: int) -> None:
        with self._subs_lock:
            self._subs.get(symbol, {}).pop(sub_id, None)

    def _publish(
        self,
        symbol: str,
        levels: list[LevelDelta],
        bid: Quote | None,
        ask: Quote | None,
    ) -> None:
        if not levels and bid is None and ask is None:
            return
        with self._state_lock:
            seq = self._pub_seq.get(symbol, 0) + 1
            self._pub_seq[symbol] = seq
        delta = BookDelta(symbol, seq, list(levels), bid, ask)
        self._metrics._increment_delta(symbol)
        with self._subs_lock:
            handlers = list(self._subs.get(symbol, {}).values())
        for handler in handlers:
            handler(delta)

    def _mutate(
        self,
        symbol: str,
        candidates: Iterable[tuple[Side, int]],
        mutator: Callable[[], bool],
    ) -> bool:
        book = self.book(symbol)
        pre_bid = (book.best_bid(), book.best_bid_size())
        pre_ask = (book.best_ask(), book.best_ask_size())
        probes: dict[tuple[Side, int], int] = {}
        for side, price in candidates:
            if (side, price) not in probes:
                probes[(side, price)] = book.level_size(side, price)

        if not mutator():
            return False

        post_bid = (book.best_bid(), book.best_bid_size())
        post_ask = (book.best_ask(), book.best_ask_size())
        levels = []
        for (side, price), before in probes.items():
            after = book.level_size(side, price)
            if after != before:
                levels.append(LevelDelta(side, price, after))
        new_bid = post_bid if post_bid[0] is not None and post_bid != pre_bid else None
        new_ask = post_ask if post_ask[0] is not None and post_ask != pre_ask else None
        self._publish(symbol, levels, new_bid, new_ask)  # type: ignore[arg-type]
        return True

    def _key_for(
        self, target: _Target, scope: FeedScope | None, synthetic: bool
    ) -> OrderKey:
        if isinstance(target, OrderKey):
            return target
        scope = scope or FeedScope()
        return OrderKey(int(target), scope.feed_id, scope.epoch, synthetic)

    # ----- adds -----

    def on_add_get_key(
        self,
        symbol: str,
        order_id: int,
        side: Side,
        price: float,
        size: int,
        priority: int = 0,
        scope: FeedScope | None = None,
        id_missing: bool = False,
    ) -> OrderKey:
        """Add an order and return its key.

        A stale feed yields a synthetic key with id 0; invalid input yields
        the default key.
        """
        scope = scope or FeedScope()
        if self._gated(symbol):
            return OrderKey(0, scope.feed_id, scope.epoch, True)
        if not (
            self._valid_side(side)
            and self._valid_price(symbol, price)
            and self._valid_size(size)
        ):
            self._malformed()
            return OrderKey()
        self._metrics._increment("adds")
        order = Order(order_id, side, self.to_ticks(symbol, price), size, priority)
        result: list[OrderKey] = []

        def mutate() -> bool:
            result.append(self.book(symbol).apply_add_get_key(order, scope, id_missing))
            return True

        self._mutate(symbol, [(side, order.price)], mutate)
        return result[0]

    def on_add(
        self,
        symbol: str,
        order_id: int,
        side: Side,
        price: float,
        size: int,
        priority: int = 0,
        scope: FeedScope | None = None,
        id_missing: bool = False,
    ) -> bool:
        """Add an order; False if the feed is stale or the input is invalid."""
        scope = scope or FeedScope()
        if self._gated(symbol):
            return False
        if not (
            self._valid_side(side)
            and self._valid_price(symbol, price)
            and self._valid_size(size)
        ):
            return self._malformed()
        self._metrics._increment("adds")
        order = Order(order_id, side, self.to_ticks(symbol, price), size, priority)
        return self._mutate(
            symbol,
            [(side, order.price)],
            lambda: self.book(symbol).apply_add(order, scope, id_missing),
        )

    # ----- update / delete / priority -----

    def on_update(
        self,
        symbol: str,
        target: _Target,
        new_price: float | None = None,
        new_size: int | None = None,
        scope: FeedScope | None = None,
        synthetic: bool = False,
    ) -> bool:
        """Change an order's price and/or size.

        ``target`` is an OrderKey, or an id scoped by ``scope`` and ``synthetic``.
        """
        if self._gated(symbol):
            return False
        if new_price is None and new_size is None:
            return self._malformed()
        if new_price is not None and not self._valid_price(symbol, new_price):
            return self._malformed()
        if new_size is not None and not self._valid_size(new_size):
            return self._malformed()
        self._metrics._increment("updates")

        key = self._key_for(target, scope, synthetic)
        ticks = None if new_price is None else self.to_ticks(symbol, new_price)
        candidates: list[tuple[Side, int]] = []
        located = self.book(symbol).locate(key)
        if located is not None:
            old_side, old_price = located
            candidates.append((old_side, old_price))
            if ticks is not None:
                candidates.append((old_side, ticks))
        return self._mutate(
            symbol,
            candidates,
            lambda: self.book(symbol).apply_update(key, ticks, new_size),
        )

    def on_delete(
        self,
        symbol: str,
        target: _Target,
        scope: FeedScope | None = None,
        synthetic: bool = False,
    ) -> bool:
        """Remove an order identified by key or scoped id."""
        if self._gated(symbol):
            return False
        self._metrics._increment("deletes")
        key = self._key_for(target, scope, synthetic)
        located = self.book(symbol).locate(key)
        candidates = [] if located is None else [located]
        return self._mutate(symbol, candidates, lambda: self.book(symbol).apply_delete(key))

    def on_priority(
        self,
        symbol: str,
        target: _Target,
        new_priority: int,
        scope: FeedScope | None = None,
        synthetic: bool = False,
    ) -> bool:
        """Change an order's priority, moving it to the back of its level."""
        if self._gated(symbol):
            return False
        self._metrics._increment("priorities")
        key = self._key_for(target, scope, synthetic)
        return self._mutate(
            symbol, [], lambda: self.book(symbol).apply_priority(key, new_priority)
        )

    # ----- venue-key wrappers -----

    def on_add_with_venue_key(
        self,
        symbol: str,
        venue_key: str,
        order_id: int,
        side: Side,
        price: float,
        size: int,
        priority: int = 0,
        scope: FeedScope | None = None,
        id_missing: bool = False,
    ) -> bool:
        """Add an order and remember its key under ``venue_key``."""
        if self._gated(symbol):
            return False
        if not (
            self._valid_side(side)
            and self._valid_price(symbol, price)
            and self._valid_size(size)
        ):
            return self._malformed()
        self._metrics._increment("adds")
        key = self.on_add_get_key(
            symbol, order_id, side, price, size, priority, scope, id_missing
        )
        self.resolver_put(symbol, venue_key, key)
        return True

    def on_update_by_venue_key(
        self,
        symbol: str,
        venue_key: str,
        new_price: float | None = None,
        new_size: int | None = None,
    ) -> bool:
        if self._gated(symbol):
            return False
        key = self.resolver_get(symbol, venue_key)
        if key is None:
            return self._malformed()
        return self.on_update(symbol, key, new_price, new_size)

    def on_delete_by_venue_key(self, symbol: str, venue_key: str) -> bool:
        if self._gated(symbol):
            return False
        key = self.resolver_get(symbol, venue_key)
        if key is None:
            return self._malformed()
        return self.on_delete(symbol, key)

    # ----- trades -----

    def on_trade(
        self,
        symbol: str,
        trade_price: float,
        size: int,
        aggressor: Aggressor = Aggressor.UNKNOWN,
    ) -> bool:
        """Apply a trade against the resting orders at ``trade_price``."""
        if self._gated(symbol):
            return False
        if not (self._valid_price(symbol, trade_price) and self._valid_size(size)):
            return self._malformed()
        self._metrics._increment("trades")
        ticks = self.to_ticks(symbol, trade_price)
        book = self.book(symbol)
        candidates = [
            (side, ticks) for side in (Side.BID, Side.ASK) if book.level_size(side, ticks) > 0
        ]
        return self._mutate(
            symbol, candidates, lambda: book.apply_trade(ticks, size, aggressor)
        )

    # ----- snapshots / summaries -----

    def _finish_snapshot(self, symbol: str, snapshot_seq: int | None) -> None:
        with self._state_lock:
            state = self._feed.setdefault(symbol, FeedState())
            state.stale = False
            if snapshot_seq is not None:
                state.last_seq = snapshot_seq
        self._metrics._increment("snapshots")
        book = self.book(symbol)
        bid, ask = book.best_bid(), book.best_ask()
        new_bid = None if bid is None else (bid, book.best_bid_size())
        new_ask = None if ask is None else (ask, book.best_ask_size())
        self._publish(symbol, [], new_bid, new_ask)

    def on_snapshot_per_order(
        self, symbol: str, orders: Iterable[Order], snapshot_seq: int | None = None
    ) -> None:
        """Replace the per-order book with ``orders`` (prices in ticks)."""
        self.book(symbol).apply_snapshot_per_order(orders)
        self._finish_snapshot(symbol, snapshot_seq)

    def on_snapshot_aggregated(
        self,
        symbol: str,
        levels: Iterable[PricedLevelEntry],
        snapshot_seq: int | None = None,
    ) -> None:
        """Replace the aggregated book with ``levels`` (float prices)."""
        entries = [
            LevelSnapshotEntry(
                e.side, self.to_ticks(symbol, e.price), e.total_size, e.order_count
            )
            for e in levels
        ]
        self.book(symbol).apply_snapshot_aggregated(entries)
        self._finish_snapshot(symbol, snapshot_seq)

    def on_level_summary(
        self,
        symbol: str,
        side: Side,
        price: float,
        total_size: int,
        order_count: int | None = None,
    ) -> bool:
        """Set one aggregated level; a total of zero removes it."""
        if self._gated(symbol):
            return False
        if not (self._valid_side(side) and self._valid_price(symbol, price)):
            return self._malformed()
        self._metrics._increment("summaries")
        ticks = self.to_ticks(symbol, price)
        return self._mutate(
            symbol,
            [(side, ticks)],
            lambda: self.book(symbol).apply_level_summary(side, ticks, total_size, order_count),
        )

    # ----- queries -----

    def best_bid(self, symbol: str) -> float | None:
        ticks = self.book(symbol).best_bid()
        return None if ticks is None else self.to_price(symbol, ticks)

    def best_ask(self, symbol: str) -> float | None:
        ticks = self.book(symbol).best_ask()
        return None if ticks is None else self.to_price(symbol, ticks)

    def best_bid_size(self, symbol: str) -> int:
        return self.book(symbol).best_bid_size()

    def best_ask_size(self, symbol: str) -> int:
        return self.book(symbol).best_ask_size()

    def depth(
        self, symbol: str, n: int
    ) -> tuple[list[tuple[float, int]], list[tuple[float, int]]]:
        """The best ``n`` bid and ask levels as (price, size) pairs."""
        book = self.book(symbol)
        bids = [(self.to_price(symbol, p), s) for p, s in book.levels(Side.BID, n)]
        asks = [(self.to_price(symbol, p), s) for p, s in book.levels(Side.ASK, n)]
        return bids, asks

    def build_snapshot(self, symbol: str, levels: int) -> DepthSnapshot:
        """A snapshot of the top ``levels`` per side, in ticks."""
        with self._state_lock:
            state = self._feed.get(symbol)
            epoch = 0 if state is None else state.epoch
            seq = self._pub_seq.get(symbol, 0)
        book = self.book(symbol)
        return DepthSnapshot(
            symbol,
            epoch,
            seq,
            book.levels(Side.BID, levels),
            book.levels(Side.ASK, levels),
        )

    # ----- admin -----

    def get_stats(self) -> MetricsSnapshot:
        return self._metrics.snapshot()

    def assert_invariants(self, symbol: str) -> bool:
        """Check the symbol's book; raises InvariantError if inconsistent."""
        return self.book(symbol).check_invariants()

    def dump_ladder(self, symbol: str, max_levels_per_side: int = 10) -> str:
        """A human-readable dump of the feed state and top levels."""
        lines = [f"=== DUMP {symbol} ==="]
        with self._state_lock:
            state = self._feed.get(symbol)
            if state is not None:
                lines.append(
                    f"epoch={state.epoch} stale={'true' if state.stale else 'false'}"
                    f" feedSeq={state.last_seq}"
                )
        book = self.book(symbol)
        for title, side in (("[BIDS]", Side.BID), ("[ASKS]", Side.ASK)):
            lines.append(title)
            levels: Sequence[tuple[int, int]] = book.levels(side, max_levels_per_side)
            for ticks, size in levels:
                lines.append(f"  {self.to_price(symbol, ticks):12.10f}  x {size}")
            if not levels:
                lines.append("  (empty)")
        return "\n".join(lines) + "\n"