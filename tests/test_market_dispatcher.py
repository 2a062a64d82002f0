import threading

from gma.atomic_store import AtomicStore
from gma.function_map import FunctionMap
from gma.market_dispatcher import MAX_HISTORY, MarketDispatcher, SymbolTick, SymbolValue
from gma.thread_pool import ThreadPool


class Recorder:
    def __init__(self):
        self._lock = threading.Lock()
        self.received = []
        self.event = threading.Event()

    def on_value(self, sv):
        with self._lock:
            self.received.append(sv)
        self.event.set()

    def shutdown(self):
        pass


def _make(functions=None):
    pool = ThreadPool(1)
    store = AtomicStore()
    md = MarketDispatcher(pool, store, functions if functions is not None else FunctionMap())
    return pool, store, md


def test_single_listener():
    pool, _, md = _make()
    listener = Recorder()
    md.register_listener("A", "field", listener)
    md.on_tick(SymbolTick("A", {"field": 1.23}))
    pool.shutdown()
    assert listener.received == [SymbolValue("A", 1.23)]


def test_multiple_listeners():
    pool, _, md = _make()
    l1, l2 = Recorder(), Recorder()
    md.register_listener("A", "f1", l1)
    md.register_listener("A", "f2", l2)
    md.on_tick(SymbolTick("A", {"f1": 2.34, "f2": 5.0}))
    pool.shutdown()
    assert [sv.value for sv in l1.received] == [2.34]
    assert [sv.value for sv in l2.received] == [5.0]


def test_different_symbols():
    pool, _, md = _make()
    listener = Recorder()
    md.register_listener("A", "fld", listener)
    md.on_tick(SymbolTick("B", {"fld": 3.45}))
    pool.shutdown()
    assert listener.received == []


def test_unregister_listener():
    pool, _, md = _make()
    listener = Recorder()
    md.register_listener("A", "fld", listener)
    md.unregister_listener("A", "fld", listener)
    md.on_tick(SymbolTick("A", {"fld": 4.56}))
    pool.shutdown()
    assert listener.received == []


def test_unregister_keeps_other_listeners():
    pool, _, md = _make()
    keep, drop = Recorder(), Recorder()
    md.register_listener("A", "fld", keep)
    md.register_listener("A", "fld", drop)
    md.unregister_listener("A", "fld", drop)
    md.unregister_listener("Z", "fld", keep)
    md.on_tick(SymbolTick("A", {"fld": 1.0}))
    pool.shutdown()
    assert len(keep.received) == 1
    assert drop.received == []


def test_missing_or_non_numeric_field_is_skipped():
    pool, _, md = _make()
    listener = Recorder()
    md.register_listener("A", "px", listener)
    md.on_tick(SymbolTick("A", {"other": 1.0}))
    md.on_tick(SymbolTick("A", {"px": "abc"}))
    md.on_tick(SymbolTick("A", {"px": True}))
    md.on_tick(SymbolTick("A", {"px": 7}))
    pool.shutdown()
    assert listener.received == [SymbolValue("A", 7.0)]


def test_history_accumulates_in_order():
    functions = FunctionMap()
    functions.register_function("hist", lambda v: tuple(v))
    pool, store, md = _make(functions)
    md.register_listener("SYM", "px", Recorder())
    for i in range(1, 6):
        md.on_tick(SymbolTick("SYM", {"px": float(i)}))
    pool.shutdown()
    assert store.get("SYM", "hist") == (1.0, 2.0, 3.0, 4.0, 5.0)


def test_history_is_capped():
    functions = FunctionMap()
    functions.register_function("count", len)
    functions.register_function("first", lambda v: v[0])
    pool, store, md = _make(functions)
    md.register_listener("SYM", "px", Recorder())
    for i in range(MAX_HISTORY + 5):
        md.on_tick(SymbolTick("SYM", {"px": float(i)}))
    pool.shutdown()
    assert store.get("SYM", "count") == MAX_HISTORY
    assert store.get("SYM", "first") == 5.0


def test_atomic_subscriber_receives_result():
    functions = FunctionMap()
    functions.register_function("double_last", lambda v: v[-1] * 2)
    pool, store, md = _make(functions)
    md.register_listener("A", "px", Recorder())
    sub = Recorder()
    md.register_listener("A", "double_last", sub)
    md.on_tick(SymbolTick("A", {"px": 21.0}))
    assert sub.event.wait(5)
    pool.shutdown()
    assert sub.received == [SymbolValue("A", 42.0)]
    assert store.get("A", "double_last") == 42.0


def test_compute_and_store_atomics_directly():
    functions = FunctionMap()
    functions.register_function("total", lambda v: sum(v))
    pool, store, md = _make(functions)
    md.compute_and_store_atomics("S", "px", [1.0, 2.0, 3.0])
    pool.shutdown()
    assert store.get("S", "total") == 6.0