"""Registry of named numeric functions over a value history."""

from __future__ import annotations

import threading
from typing import Callable, Sequence

Func = Callable[[Sequence[float]], float]


class FunctionNotFoundError(LookupError):
    """Raised when a function name has not been registered."""


class FunctionMap:
    """Thread-safe mapping of function names to callables."""

    _instance: FunctionMap | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._map: dict[str, Func] = {}

    @classmethod
    def instance(cls) -> FunctionMap:
        """Return the process-wide shared map."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def register_function(self, name: str, func: Func) -> None:
        """Register ``func`` under ``name``, replacing any earlier registration."""
        with self._lock:
            self._map[name] = func

    def get_function(self, name: str) -> Func:
        """Return the function registered under ``name``."""
        with self._lock:
            try:
                return self._map[name]
            except KeyError:
                raise FunctionNotFoundError(f"Function not found: {name}") from None

    def get_all(self) -> list[tuple[str, Func]]:
        """Return a snapshot of all (name, function) pairs."""
        with self._lock:
            return list(self._map.items())