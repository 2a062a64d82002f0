"""Order books built from a JSON-style market data message feed.

Messages are mappings with a ``Message Type`` whose first character selects
the action: ``3`` and ``0`` add, ``4`` and ``6`` update, ``5`` delete.
Sides are characters, ``"B"`` for bids and anything else for asks.
"""

from __future__ import annotations

import copy
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Mapping


@dataclass
class FeedOrder:
    id: int = 0
    side: str = "B"
    price: float = 0.0
    size: int = 0
    priority: int = 0


@dataclass
class FeedPriceLevel:
    price: float
    orders: deque[FeedOrder] = field(default_factory=deque)
    total_size: int = 0


class FeedOrderBook:
    """Thread-safe order book keyed by order id and float price."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bids: dict[float, FeedPriceLevel] = {}
        self._asks: dict[float, FeedPriceLevel] = {}
        self._by_id: dict[int, FeedOrder] = {}

    def _levels(self, side: str) -> dict[float, FeedPriceLevel]:
        return self._bids if side == "B" else self._asks

    def apply_add(self, order: FeedOrder) -> None:
        """Append a copy of ``order`` to its price level."""
        with self._lock:
            levels = self._levels(order.side)
            level = levels.get(order.price)
            if level is None:
                level = levels[order.price] = FeedPriceLevel(order.price)
            stored = replace(order)
            level.orders.append(stored)
            level.total_size += stored.size
            self._by_id[stored.id] = stored

    def apply_update(self, order: FeedOrder) -> None:
        """Set size and priority of the order with ``order.id``.

        The level total is adjusted at the price and side carried by the
        message; unknown ids are ignored.
        """
        with self._lock:
            stored = self._by_id.get(order.id)
            if stored is None:
                return
            old_size = stored.size
            stored.size = order.size
            stored.priority = order.priority
            level = self._levels(order.side).get(order.price)
            if level is not None:
                level.total_size += order.size - old_size

    def apply_delete(self, order_id: int, side: str) -> None:
        """Remove the order with ``order_id`` from ``side``; unknown ids are ignored."""
        with self._lock:
            stored = self._by_id.get(order_id)
            if stored is None:
                return
            levels = self._levels(side)
            level = levels.get(stored.price)
            if level is not None:
                level.orders = deque(o for o in level.orders if o.id != order_id)
                level.total_size -= stored.size
                if not level.orders:
                    del levels[stored.price]
            del self._by_id[order_id]

    def apply_trade(self, price: float, size: int) -> None:
        """Consume ``size`` from the best level of each side priced at ``price``."""
        with self._lock:
            for levels, pick_best in ((self._bids, max), (self._asks, min)):
                if not levels:
                    continue
                best = pick_best(levels)
                if best != price:
                    continue
                level = levels[best]
                remaining = size
                while remaining > 0 and level.orders:
                    front = level.orders[0]
                    if front.size <= remaining:
                        remaining -= front.size
                        self._by_id.pop(front.id, None)
                        level.orders.popleft()
                    else:
                        front.size -= remaining
                        remaining = 0
                level.total_size = sum(o.size for o in level.orders)
                if not level.orders:
                    del levels[best]

    def bids(self) -> list[FeedPriceLevel]:
        """Copies of the bid levels, highest price first."""
        with self._lock:
            return [copy.deepcopy(self._bids[p]) for p in sorted(self._bids, reverse=True)]

    def asks(self) -> list[FeedPriceLevel]:
        """Copies of the ask levels, lowest price first."""
        with self._lock:
            return [copy.deepcopy(self._asks[p]) for p in sorted(self._asks)]


def _order_from(msg: Mapping[str, Any]) -> FeedOrder:
    return FeedOrder(
        id=int(msg["Order ID"]),
        side=str(msg["Side"])[:1],
        price=float(msg["Price"]),
        size=int(msg["Order Size"]),
        priority=int(msg["Order Priority"]),
    )


class FeedBookManager:
    """Keeps one FeedOrderBook per symbol and applies feed messages to them."""

    _instance: FeedBookManager | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._books: dict[str, FeedOrderBook] = {}

    @classmethod
    def instance(cls) -> FeedBookManager:
        """Return the process-wide shared manager."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def book(self, symbol: str) -> FeedOrderBook:
        """Return the book for ``symbol``, creating it if needed."""
        with self._lock:
            book = self._books.get(symbol)
            if book is None:
                book = self._books[symbol] = FeedOrderBook()
            return book

    def process(self, msg: Mapping[str, Any]) -> None:
        """Apply one feed message; messages without a type or symbol are ignored.

        A message of a known type that lacks a required field raises KeyError.
        """
        message_type = msg.get("Message Type")
        if not isinstance(message_type, str):
            return
        symbol = msg.get("Symbol")
        if not isinstance(symbol, str):
            return
        book = self.book(symbol)
        kind = message_type[:1]
        if kind in ("3", "0"):
            book.apply_add(_order_from(msg))
        elif kind in ("4", "6"):
            book.apply_update(_order_from(msg))
        elif kind == "5":
            book.apply_delete(int(msg["Order ID"]), str(msg["Side"])[:1])