import threading
import time

from gma.thread_pool import ThreadPool


class Counter:
    def __init__(self):
        self._lock = threading.Lock()
        self.value = 0

    def inc(self):
        with self._lock:
            self.value += 1


def test_executes_tasks():
    pool = ThreadPool(4)
    counter = Counter()
    for _ in range(100):
        pool.post(counter.inc)
    pool.shutdown()
    assert counter.value == 100


def test_immediate_shutdown_then_post_is_ignored():
    pool = ThreadPool(2)
    pool.shutdown()
    counter = Counter()
    pool.post(counter.inc)
    pool.shutdown()
    assert counter.value == 0


def test_post_after_shutdown_does_nothing():
    pool = ThreadPool(2)
    counter = Counter()
    pool.shutdown()
    pool.post(counter.inc)
    time.sleep(0.05)
    assert counter.value == 0


def test_context_manager_shuts_down_and_executes_tasks():
    counter = Counter()
    with ThreadPool(3) as pool:
        for _ in range(50):
            pool.post(counter.inc)
    assert counter.value == 50


def test_concurrent_post():
    pool = ThreadPool(4)
    counter = Counter()

    def poster():
        for _ in range(25):
            pool.post(counter.inc)

    posters = [threading.Thread(target=poster) for _ in range(3)]
    for p in posters:
        p.start()
    for _ in range(25):
        pool.post(counter.inc)
    for p in posters:
        p.join()
    pool.shutdown()
    assert counter.value == 100


def test_failing_task_does_not_stop_worker():
    pool = ThreadPool(1)
    counter = Counter()

    def boom():
        raise RuntimeError("task failure")

    pool.post(boom)
    pool.post(counter.inc)
    pool.shutdown()
    assert counter.value == 1


def test_single_worker_preserves_order():
    pool = ThreadPool(1)
    seen = []
    for i in range(20):
        pool.post(lambda i=i: seen.append(i))
    pool.shutdown()
    assert seen == list(range(20))