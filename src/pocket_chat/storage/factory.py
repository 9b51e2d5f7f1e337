"""Store selection from the environment."""

import os
from typing import Optional

import structlog

from .base import KeyValueStore
from .json_file import JsonFileStore
from .memory import MemoryStore

logger = structlog.get_logger()

STORE_PATH_ENV = "POCKET_CHAT_STORE_PATH"


def create_store(path: Optional[str] = None) -> KeyValueStore:
    """Open the JSON file store named by ``path`` or the environment.

    Falls back to an in-memory store when no path is configured.
    """
    path = path or os.getenv(STORE_PATH_ENV)
    if path:
        return JsonFileStore(path)
    logger.info("store_in_memory", reason=f"{STORE_PATH_ENV} not set")
    return MemoryStore()
