"""Registry of live request trees, keyed by request id."""

from __future__ import annotations

import logging
import threading
from typing import Any

_log = logging.getLogger(__name__)


class RequestRegistry:
    """Keeps the root node of each request and shuts it down on removal."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, Any] = {}

    def register_request(self, request_id: str, root: Any) -> None:
        """Store ``root`` under ``request_id``, replacing any earlier entry."""
        with self._lock:
            self._requests[request_id] = root

    def unregister_request(self, request_id: str) -> None:
        """Remove ``request_id`` and shut its root down; unknown ids are ignored."""
        with self._lock:
            root = self._requests.pop(request_id, None)
        if root is not None:
            _log.info("Shutting down request %s", request_id)
            root.shutdown()

    def shutdown_all(self) -> None:
        """Shut down every registered root and forget them all."""
        with self._lock:
            roots = list(self._requests.values())
            self._requests.clear()
        for root in roots:
            if root is not None:
                root.shutdown()