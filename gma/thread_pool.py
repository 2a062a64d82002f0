"""Fixed-size pool of worker threads that run posted tasks in order."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

_log = logging.getLogger(__name__)


class ThreadPool:
    """Runs posted callables on a fixed set of worker threads.

    Shutting down stops new work from being accepted but lets the workers
    drain every task that was already queued.
    """

    def __init__(self, num_threads: int = 4) -> None:
        self._tasks: deque[Callable[[], object]] = deque()
        self._cond = threading.Condition()
        self._stop = False
        self._workers = [
            threading.Thread(target=self._worker_loop, name=f"gma-pool-{i}", daemon=True)
            for i in range(num_threads)
        ]
        for worker in self._workers:
            worker.start()

    def post(self, task: Callable[[], object]) -> None:
        """Queue ``task``; ignored once the pool is shutting down."""
        with self._cond:
            if self._stop:
                return
            self._tasks.append(task)
            self._cond.notify()

    def shutdown(self) -> None:
        """Stop accepting tasks and wait for the queued ones to finish."""
        with self._cond:
            self._stop = True
            self._cond.notify_all()
        current = threading.current_thread()
        for worker in self._workers:
            if worker is not current:
                worker.join()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._stop or bool(self._tasks))
                if self._stop and not self._tasks:
                    return
                task = self._tasks.popleft()
            try:
                task()
            except Exception:
                _log.exception("Task raised an exception")