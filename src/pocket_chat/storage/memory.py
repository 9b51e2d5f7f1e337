"""In-memory store implementation."""

import json
from typing import Any, Dict

import structlog

from .base import KeyValueStore

logger = structlog.get_logger()


class MemoryStore(KeyValueStore):
    """Store that keeps JSON snapshots in a dict.

    Values are serialized on write and parsed on read, so callers never share
    references with the stored data.
    """

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}
        logger.debug("memory_store_initialized")

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._items.get(key)
        if raw is None:
            return default
        value = json.loads(raw)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._items.pop(key, None)
