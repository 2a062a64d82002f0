"""Per-order and aggregated limit order book for one instrument.

Prices are integer tick counts. Bids are ordered best (highest) first and
asks best (lowest) first. Orders are identified by an :class:`OrderKey`, which
scopes a venue id to a feed and epoch and marks ids the book invented itself.
"""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Generic, Iterable, Iterator, TypeVar


class Side(Enum):
    BID = "bid"
    ASK = "ask"


class Aggressor(Enum):
    BUY = "buy"
    SELL = "sell"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FeedScope:
    """The feed and epoch an order id belongs to."""

    feed_id: int = 0
    epoch: int = 0


@dataclass(frozen=True)
class OrderKey:
    """Unique identity of an order inside a book."""

    id: int = 0
    feed_id: int = 0
    epoch: int = 0
    synthetic: bool = False


@dataclass
class Order:
    """A resting order; ``price`` is in ticks."""

    id: int
    side: Side
    price: int
    size: int
    priority: int = 0
    feed_id: int = 0
    epoch: int = 0
    synthetic: bool = False

    @property
    def key(self) -> OrderKey:
        return OrderKey(self.id, self.feed_id, self.epoch, self.synthetic)


@dataclass(frozen=True)
class LevelSnapshotEntry:
    """One price level of an aggregated snapshot; ``price`` is in ticks."""

    side: Side
    price: int
    total_size: int
    order_count: int | None = None


class InvariantError(RuntimeError):
    """Raised when the book's internal structures disagree."""


@dataclass
class _PriceLevel:
    orders: dict[OrderKey, Order] = field(default_factory=dict)
    total_size: int = 0


@dataclass
class _AggLevel:
    total_size: int = 0
    order_count: int = 0


L = TypeVar("L")


class _Ladder(Generic[L]):
    """Price levels of one side, kept in price order."""

    def __init__(self, descending: bool, factory: Callable[[], L]) -> None:
        self._descending = descending
        self._factory = factory
        self._levels: dict[int, L] = {}
        self._prices: list[int] = []

    def get(self, price: int) -> L | None:
        return self._levels.get(price)

    def get_or_create(self, price: int) -> L:
        level = self._levels.get(price)
        if level is None:
            level = self._levels[price] = self._factory()
            bisect.insort(self._prices, price)
        return level

    def remove(self, price: int) -> None:
        if self._levels.pop(price, None) is not None:
            del self._prices[bisect.bisect_left(self._prices, price)]

    def clear(self) -> None:
        self._levels.clear()
        self._prices.clear()

    def best(self) -> tuple[int, L] | None:
        if not self._prices:
            return None
        price = self._prices[-1] if self._descending else self._prices[0]
        return price, self._levels[price]

    def __bool__(self) -> bool:
        return bool(self._levels)

    def __iter__(self) -> Iterator[tuple[int, L]]:
        prices = reversed(self._prices) if self._descending else iter(self._prices)
        for price in prices:
            yield price, self._levels[price]


KeyLike = OrderKey | int


def _as_key(key: KeyLike) -> OrderKey:
    return key if isinstance(key, OrderKey) else OrderKey(int(key))


class OrderBook:
    """Thread-safe order book holding per-order and aggregated ladders.

    Keys may be given as a plain id, which means the unscoped key
    ``OrderKey(id, 0, 0, False)``.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._bids: _Ladder[_PriceLevel] = _Ladder(True, _PriceLevel)
        self._asks: _Ladder[_PriceLevel] = _Ladder(False, _PriceLevel)
        self._bids_agg: _Ladder[_AggLevel] = _Ladder(True, _AggLevel)
        self._asks_agg: _Ladder[_AggLevel] = _Ladder(False, _AggLevel)
        self._by_id: dict[OrderKey, tuple[Side, int]] = {}
        self._synth_counters: dict[tuple[int, int], int] = {}

    # ----- mutation -----

    def apply_add(
        self, order: Order, scope: FeedScope | None = None, id_missing: bool = False
    ) -> bool:
        """Add ``order``; an existing order with the same key is replaced.

        Without ``scope`` the order is stored unscoped. With a scope, a missing
        or zero id is replaced by a synthetic id unique within that scope.
        """
        with self._lock:
            if scope is None:
                return self._add(replace(order, feed_id=0, epoch=0))
            return self._add(self._scoped(order, scope, id_missing))

    def apply_add_get_key(
        self, order: Order, scope: FeedScope | None = None, id_missing: bool = False
    ) -> OrderKey:
        """Add ``order`` within ``scope`` and return the key it was stored under."""
        with self._lock:
            stored = self._scoped(order, scope or FeedScope(), id_missing)
            self._add(stored)
            return stored.key

    def apply_update(
        self, key: KeyLike, new_price: int | None = None, new_size: int | None = None
    ) -> bool:
        """Change an order's price and/or size; a size of zero removes it."""
        with self._lock:
            return self._update(_as_key(key), new_price, new_size)

    def apply_delete(self, key: KeyLike) -> bool:
        """Remove an order; False if it is not in the book."""
        with self._lock:
            return self._delete(_as_key(key))

    def apply_priority(self, key: KeyLike, new_priority: int) -> bool:
        """Set an order's priority, moving it to the back of its level."""
        with self._lock:
            return self._priority(_as_key(key), new_priority)

    def apply_trade(
        self, trade_price: int, qty: int, aggressor: Aggressor = Aggressor.UNKNOWN
    ) -> bool:
        """Consume ``qty`` from the passive side at ``trade_price``.

        With an unknown aggressor the passive side is inferred from the top of
        book; a trade inside the spread changes nothing.
        """
        if qty == 0:
            return False
        with self._lock:
            if aggressor is Aggressor.BUY:
                passive = Side.ASK
            elif aggressor is Aggressor.SELL:
                passive = Side.BID
            else:
                best_bid = self._bids.best()
                best_ask = self._asks.best()
                if best_bid is not None and trade_price <= best_bid[0]:
                    passive = Side.BID
                elif best_ask is not None and trade_price >= best_ask[0]:
                    passive = Side.ASK
                else:
                    return False
            return self._consume(passive, trade_price, qty) > 0

    def apply_snapshot_per_order(self, orders: Iterable[Order]) -> None:
        """Replace the per-order ladders with ``orders``, kept as given."""
        with self._lock:
            self._bids.clear()
            self._asks.clear()
            self._by_id.clear()
            for order in orders:
                self._add(replace(order))

    def apply_snapshot_aggregated(self, levels: Iterable[LevelSnapshotEntry]) -> None:
        """Replace the aggregated ladders; zero-size entries are skipped."""
        with self._lock:
            self._bids_agg.clear()
            self._asks_agg.clear()
            for entry in levels:
                if entry.total_size == 0:
                    continue
                level = self._agg_ladder(entry.side).get_or_create(entry.price)
                level.total_size = entry.total_size
                level.order_count = entry.order_count or 0

    def apply_level_summary(
        self, side: Side, price: int, total_size: int, order_count: int | None = None
    ) -> bool:
        """Set one aggregated level; a total of zero removes it.

        Returns whether anything changed (always True for a removal).
        """
        with self._lock:
            ladder = self._agg_ladder(side)
            if total_size == 0:
                ladder.remove(price)
                return True
            level = ladder.get_or_create(price)
            changed = level.total_size != total_size or (
                order_count is not None and level.order_count != order_count
            )
            level.total_size = total_size
            if order_count is not None:
                level.order_count = order_count
            return changed

    # ----- queries -----

    def best_bid(self) -> int | None:
        with self._lock:
            best = self._bids.best()
            return None if best is None else best[0]

    def best_ask(self) -> int | None:
        with self._lock:
            best = self._asks.best()
            return None if best is None else best[0]

    def best_bid_size(self) -> int:
        with self._lock:
            best = self._bids.best()
            return 0 if best is None else best[1].total_size

    def best_ask_size(self) -> int:
        with self._lock:
            best = self._asks.best()
            return 0 if best is None else best[1].total_size

    def level_size(self, side: Side, price: int) -> int:
        """Total size resting at ``price`` on ``side`` (0 if no such level)."""
        with self._lock:
            level = self._ladder(side).get(price)
            return 0 if level is None else level.total_size

    def best_bid_aggregated(self) -> int | None:
        with self._lock:
            best = self._bids_agg.best()
            return None if best is None else best[0]

    def best_ask_aggregated(self) -> int | None:
        with self._lock:
            best = self._asks_agg.best()
            return None if best is None else best[0]

    def level_size_aggregated(self, side: Side, price: int) -> int:
        with self._lock:
            level = self._agg_ladder(side).get(price)
            return 0 if level is None else level.total_size

    def levels(self, side: Side, n: int) -> list[tuple[int, int]]:
        """The best ``n`` per-order levels of ``side`` as (price, total size)."""
        with self._lock:
            out: list[tuple[int, int]] = []
            for price, level in self._ladder(side):
                if len(out) >= n:
                    break
                out.append((price, level.total_size))
            return out

    def check_invariants(self) -> bool:
        """Return True if the book is consistent, else raise InvariantError."""
        with self._lock:
            for ladder in (self._bids, self._asks):
                for _, level in ladder:
                    if sum(o.size for o in level.orders.values()) != level.total_size:
                        raise InvariantError(
                            "per-order: level.totalSize mismatch with order sum"
                        )
            for key, (side, price) in self._by_id.items():
                level = self._ladder(side).get(price)
                if level is None:
                    raise InvariantError("per-order: locator references missing level")
                order = level.orders.get(key)
                if order is None or order.key != key:
                    raise InvariantError("per-order: locator iterator does not match key")
            for ladder in (self._bids_agg, self._asks_agg):
                if any(level.total_size == 0 for _, level in ladder):
                    raise InvariantError("aggregated: zero-size level present")
            return True

    def locate(self, key: KeyLike) -> tuple[Side, int] | None:
        """Return (side, price) of the order with ``key``, or None."""
        with self._lock:
            return self._by_id.get(_as_key(key))

    # ----- internals -----

    def _ladder(self, side: Side) -> _Ladder[_PriceLevel]:
        return self._bids if side is Side.BID else self._asks

    def _agg_ladder(self, side: Side) -> _Ladder[_AggLevel]:
        return self._bids_agg if side is Side.BID else self._asks_agg

    def _next_synthetic_id(self, scope: FeedScope) -> int:
        scope_key = (scope.feed_id, scope.epoch)
        value = self._synth_counters.get(scope_key, 1)
        self._synth_counters[scope_key] = value + 1
        return value

    def _scoped(self, order: Order, scope: FeedScope, id_missing: bool) -> Order:
        stored = replace(order, feed_id=scope.feed_id, epoch=scope.epoch)
        if id_missing or stored.id == 0:
            stored = replace(stored, synthetic=True, id=self._next_synthetic_id(scope))
        return stored

    def _erase_if_empty(self, side: Side, price: int) -> None:
        ladder = self._ladder(side)
        level = ladder.get(price)
        if level is not None and not level.orders:
            ladder.remove(price)

    def _add(self, order: Order) -> bool:
        key = order.key
        if key in self._by_id:
            self._delete(key)
        level = self._ladder(order.side).get_or_create(order.price)
        level.orders[key] = order
        level.total_size += order.size
        self._by_id[key] = (order.side, order.price)
        return True

    def _remove_from_level(self, key: OrderKey, side: Side, price: int, level: _PriceLevel) -> Order:
        order = level.orders.pop(key)
        level.total_size = max(0, level.total_size - order.size)
        self._erase_if_empty(side, price)
        return order

    def _update(self, key: OrderKey, new_price: int | None, new_size: int | None) -> bool:
        loc = self._by_id.get(key)
        if loc is None:
            return False
        side, old_price = loc
        level = self._ladder(side).get(old_price)
        if level is None or key not in level.orders:
            del self._by_id[key]
            return False
        order = level.orders[key]
        old_size = order.size
        target_price = old_price if new_price is None else new_price
        target_size = old_size if new_size is None else new_size

        if target_size == 0:
            self._remove_from_level(key, side, old_price, level)
            del self._by_id[key]
            return True

        if target_price == old_price:
            if target_size == old_size:
                return False
            level.total_size += target_size - old_size
            order.size = target_size
            return True

        self._remove_from_level(key, side, old_price, level)
        new_level = self._ladder(side).get_or_create(target_price)
        new_level.orders[key] = replace(order, price=target_price, size=target_size)
        new_level.total_size += target_size
        self._by_id[key] = (side, target_price)
        return True

    def _delete(self, key: OrderKey) -> bool:
        loc = self._by_id.get(key)
        if loc is None:
            return False
        side, price = loc
        level = self._ladder(side).get(price)
        if level is None or key not in level.orders:
            del self._by_id[key]
            return False
        self._remove_from_level(key, side, price, level)
        del self._by_id[key]
        return True

    def _priority(self, key: OrderKey, new_priority: int) -> bool:
        loc = self._by_id.get(key)
        if loc is None:
            return False
        side, price = loc
        level = self._ladder(side).get(price)
        if level is None or key not in level.orders:
            del self._by_id[key]
            return False
        order = level.orders[key]
        if order.priority == new_priority:
            return False
        order.priority = new_priority
        level.orders[key] = level.orders.pop(key)
        return True

    def _consume(self, passive: Side, price: int, qty: int) -> int:
        level = self._ladder(passive).get(price)
        if level is None or qty == 0:
            return 0
        remaining = qty
        while remaining > 0 and level.orders:
            key, top = next(iter(level.orders.items()))
            take = min(top.size, remaining)
            top.size -= take
            remaining -= take
            level.total_size -= take
            if top.size != 0:
                break
            self._by_id.pop(key, None)
            del level.orders[key]
        self._erase_if_empty(passive, price)
        return qty - remaining