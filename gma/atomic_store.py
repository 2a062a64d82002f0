"""Thread-safe store of per-symbol computed values."""

from __future__ import annotations

import threading
from typing import Any


class AtomicStore:
    """Keeps the latest value of each (symbol, field) pair."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}

    def set(self, symbol: str, field: str, value: Any) -> None:
        """Store ``value`` under ``symbol``/``field``, replacing any older value."""
        with self._lock:
            self._data.setdefault(symbol, {})[field] = value

    def get(self, symbol: str, field: str) -> Any | None:
        """Return the value stored under ``symbol``/``field``, or None if absent."""
        with self._lock:
            return self._data.get(symbol, {}).get(field)