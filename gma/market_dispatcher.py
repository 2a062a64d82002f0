"""Routes market ticks to subscribed nodes and keeps per-field histories."""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from gma.atomic_store import AtomicStore
from gma.function_map import FunctionMap
from gma.thread_pool import ThreadPool

MAX_HISTORY = 1000


@dataclass
class SymbolValue:
    """A value produced for a symbol."""

    symbol: str
    value: Any


@dataclass
class SymbolTick:
    """A raw market update: a symbol and its field payload."""

    symbol: str
    payload: Mapping[str, Any] = field(default_factory=dict)


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class MarketDispatcher:
    """Dispatches ticks to listeners registered per (symbol, field).

    Listeners are objects with ``on_value(SymbolValue)``. Work runs on the
    thread pool; each tick also recomputes every registered function over the
    field's history and notifies listeners subscribed to the function's name.
    """

    def __init__(
        self,
        thread_pool: ThreadPool,
        store: AtomicStore,
        function_map: FunctionMap | None = None,
    ) -> None:
        self._pool = thread_pool
        self._store = store
        self._functions = function_map if function_map is not None else FunctionMap.instance()
        self._lock = threading.Lock()
        self._listeners: dict[str, dict[str, list[Any]]] = {}
        self._history_lock = threading.Lock()
        self._histories: defaultdict[str, defaultdict[str, deque[float]]] = defaultdict(
            lambda: defaultdict(lambda: deque(maxlen=MAX_HISTORY))
        )

    def register_listener(self, symbol: str, field: str, listener: Any) -> None:
        """Subscribe ``listener`` to ``field`` of ``symbol``."""
        with self._lock:
            self._listeners.setdefault(symbol, {}).setdefault(field, []).append(listener)

    def unregister_listener(self, symbol: str, field: str, listener: Any) -> None:
        """Remove every subscription of ``listener`` to ``field`` of ``symbol``."""
        with self._lock:
            fields = self._listeners.get(symbol)
            if fields is None or field not in fields:
                return
            remaining = [node for node in fields[field] if node is not listener]
            if remaining:
                fields[field] = remaining
            else:
                del fields[field]
            if not fields:
                del self._listeners[symbol]

    def on_tick(self, tick: SymbolTick) -> None:
        """Queue delivery of ``tick`` to the listeners of its symbol."""
        with self._lock:
            targets = [
                (fld, node)
                for fld, nodes in self._listeners.get(tick.symbol, {}).items()
                for node in nodes
            ]
        self._pool.post(lambda: self._deliver(tick, targets))

    def _deliver(self, tick: SymbolTick, targets: list[tuple[str, Any]]) -> None:
        for fld, node in targets:
            raw = _numeric(tick.payload.get(fld))
            if raw is None:
                continue
            with self._history_lock:
                hist = self._histories[tick.symbol][fld]
                hist.append(raw)
                snapshot = list(hist)
            self.compute_and_store_atomics(tick.symbol, fld, snapshot)
            node.on_value(SymbolValue(tick.symbol, raw))

    def compute_and_store_atomics(
        self, symbol: str, field: str, history: Sequence[float]
    ) -> None:
        """Run every registered function over ``history`` and publish the results."""
        values = list(history)
        for name, func in self._functions.get_all():
            result = func(values)
            self._store.set(symbol, name, result)
            with self._lock:
                subscribers = list(self._listeners.get(symbol, {}).get(name, ()))
            for listener in subscribers:
                self._pool.post(
                    lambda listener=listener, result=result: listener.on_value(
                        SymbolValue(symbol, result)
                    )
                )