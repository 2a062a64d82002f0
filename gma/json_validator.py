"""Structural checks for request and node JSON documents."""

from __future__ import annotations

import logging
from typing import Any

_log = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised when a request or node document is malformed."""


def validate_request(doc: Any) -> None:
    """Check that ``doc`` is an object with a string ``id`` and an object ``tree``."""
    if not isinstance(doc, dict):
        raise ValidationError("Request must be a JSON object")
    if not isinstance(doc.get("id"), str):
        raise ValidationError("Request missing string id")
    if not isinstance(doc.get("tree"), dict):
        raise ValidationError("Request missing tree object")
    _log.info("Request validated: id=%s", doc["id"])


def validate_node(node: Any) -> None:
    """Check that ``node`` is an object with a string ``type``."""
    if not isinstance(node, dict):
        raise ValidationError("Node must be an object")
    if not isinstance(node.get("type"), str):
        raise ValidationError("Node missing string 'type'")
    _log.info("Node validated: type=%s", node["type"])