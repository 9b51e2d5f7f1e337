"""Base key-value store interface."""

from abc import ABC, abstractmethod
from typing import Any

CHATS_KEY = "chats"
CURRENT_CHAT_KEY = "currentChatId"
GLOBAL_SETTINGS_KEY = "globalSettings"
CHATS_SCHEMA_VERSION_KEY = "chatsSchemaVersion"


class KeyValueStore(ABC):
    """Abstract string-keyed store of JSON-serializable values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default``."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``; unknown keys are ignored."""
        pass
